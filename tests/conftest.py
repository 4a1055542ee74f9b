from __future__ import annotations

import sys
import threading
from pathlib import Path

import grpc
import pytest
import structlog
from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory, timestamp_pb2

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from fulfillment.core.errors import ExpressionError  # noqa: E402
from fulfillment.core.expressions import ExpressionEnv  # noqa: E402
from fulfillment.core.reflection import new_helper  # noqa: E402

PUBLIC_FILE = "fulfillment/v1/objects.proto"
PRIVATE_FILE = "private/v1/objects.proto"

_F = descriptor_pb2.FieldDescriptorProto


def _field(message, name, number, kind, *, type_name=None, repeated=False):
    field = message.field.add()
    field.name = name
    field.number = number
    field.type = kind
    field.label = _F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL
    if type_name:
        field.type_name = type_name
    return field


def _map_field(message, full_name, name, number):
    entry = message.nested_type.add()
    entry.name = f"{name.capitalize()}Entry"
    entry.options.map_entry = True
    _field(entry, "key", 1, _F.TYPE_STRING)
    _field(entry, "value", 2, _F.TYPE_STRING)
    _field(message, name, number, _F.TYPE_MESSAGE, type_name=f".{full_name}.{entry.name}", repeated=True)


def _message(file, name):
    message = file.message_type.add()
    message.name = name
    return message


def _object(file, name, *extra):
    """Add an object type with `id` and `metadata` fields, plus the extra (name, kind, type_name) fields."""
    message = _message(file, name)
    _field(message, "id", 1, _F.TYPE_STRING)
    _field(message, "metadata", 2, _F.TYPE_MESSAGE, type_name=".fulfillment.v1.Metadata")
    for number, (field_name, kind, type_name) in enumerate(extra, start=3):
        _field(message, field_name, number, kind, type_name=type_name)
    return message


def _service(
    file,
    service_name,
    object_name,
    *,
    limit=True,
    total=True,
    items_type=None,
    methods=("Get", "List", "Create", "Update", "Delete"),
):
    """Add the request and response messages and the service for one object type."""
    package = f".{file.package}"
    object_type = f"{package}.{object_name}"

    _field(_message(file, f"{service_name}GetRequest"), "id", 1, _F.TYPE_STRING)
    _field(_message(file, f"{service_name}GetResponse"), "object", 1, _F.TYPE_MESSAGE, type_name=object_type)

    request = _message(file, f"{service_name}ListRequest")
    _field(request, "filter", 1, _F.TYPE_STRING)
    if limit:
        _field(request, "limit", 2, _F.TYPE_INT32)
    response = _message(file, f"{service_name}ListResponse")
    _field(response, "items", 1, _F.TYPE_MESSAGE, type_name=items_type or object_type, repeated=True)
    if total:
        _field(response, "total", 2, _F.TYPE_INT32)

    for method in ("Create", "Update"):
        for suffix in ("Request", "Response"):
            message = _message(file, f"{service_name}{method}{suffix}")
            _field(message, "object", 1, _F.TYPE_MESSAGE, type_name=object_type)

    _field(_message(file, f"{service_name}DeleteRequest"), "id", 1, _F.TYPE_STRING)
    _message(file, f"{service_name}DeleteResponse")

    service = file.service.add()
    service.name = service_name
    for name in methods:
        method = service.method.add()
        method.name = name
        method.input_type = f"{package}.{service_name}{name}Request"
        method.output_type = f"{package}.{service_name}{name}Response"


def _public_file() -> descriptor_pb2.FileDescriptorProto:
    file = descriptor_pb2.FileDescriptorProto()
    file.name = PUBLIC_FILE
    file.package = "fulfillment.v1"
    file.syntax = "proto3"
    file.dependency.append("google/protobuf/timestamp.proto")

    metadata = _message(file, "Metadata")
    _field(metadata, "name", 1, _F.TYPE_STRING)
    _map_field(metadata, "fulfillment.v1.Metadata", "labels", 2)
    _map_field(metadata, "fulfillment.v1.Metadata", "annotations", 3)
    _field(metadata, "creation_timestamp", 4, _F.TYPE_MESSAGE, type_name=".google.protobuf.Timestamp")
    _field(metadata, "deletion_timestamp", 5, _F.TYPE_MESSAGE, type_name=".google.protobuf.Timestamp")

    state = file.enum_type.add()
    state.name = "ClusterState"
    for number, name in enumerate(("UNSPECIFIED", "PROGRESSING", "READY", "FAILED")):
        value = state.value.add()
        value.name = f"CLUSTER_STATE_{name}"
        value.number = number

    _field(_message(file, "ClusterSpec"), "template", 1, _F.TYPE_STRING)
    status = _message(file, "ClusterStatus")
    _field(status, "state", 1, _F.TYPE_ENUM, type_name=".fulfillment.v1.ClusterState")
    _field(status, "api_url", 2, _F.TYPE_STRING)
    _field(status, "node_count", 3, _F.TYPE_INT32)

    _object(
        file,
        "Cluster",
        ("spec", _F.TYPE_MESSAGE, ".fulfillment.v1.ClusterSpec"),
        ("status", _F.TYPE_MESSAGE, ".fulfillment.v1.ClusterStatus"),
    )
    _object(file, "ClusterTemplate", ("title", _F.TYPE_STRING, None))
    _object(file, "Host")
    _object(file, "HostClass", ("title", _F.TYPE_STRING, None))
    _object(file, "Widget")
    _object(file, "Gadget")

    _service(file, "Clusters", "Cluster")
    _service(file, "ClusterTemplates", "ClusterTemplate")
    _service(file, "Hosts", "Host", limit=False, total=False)
    _service(file, "HostClasses", "HostClass")

    # Services that don't manage objects:
    _service(file, "Widgets", "Widget", methods=("Get", "List", "Create", "Update"))
    _service(file, "Gadgets", "Gadget", items_type=".fulfillment.v1.Host")
    return file


def _private_file() -> descriptor_pb2.FileDescriptorProto:
    file = descriptor_pb2.FileDescriptorProto()
    file.name = PRIVATE_FILE
    file.package = "private.v1"
    file.syntax = "proto3"
    file.dependency.append(PUBLIC_FILE)

    _object(file, "Cluster", ("hub", _F.TYPE_STRING, None))
    _object(file, "Hub", ("address", _F.TYPE_STRING, None))

    _service(file, "Clusters", "Cluster")
    _service(file, "Hubs", "Hub")
    return file


def build_pool() -> descriptor_pool.DescriptorPool:
    """Create a descriptor pool containing the test schemas."""
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(timestamp_pb2.DESCRIPTOR.serialized_pb)
    pool.AddSerializedFile(_public_file().SerializeToString())
    pool.AddSerializedFile(_private_file().SerializeToString())
    return pool


class FakeRpcError(grpc.RpcError):
    def __init__(self, code: grpc.StatusCode, details: str):
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self) -> grpc.StatusCode:
        return self._code

    def details(self) -> str:
        return self._details


class FakeChannel:
    """
    In memory replacement for a gRPC channel.

    It stores objects per type, serves the Get, List, Create, Update and Delete
    methods of the object services, evaluates list filters with the CEL engine
    and records the path of every call.
    """

    def __init__(self, pool: descriptor_pool.DescriptorPool):
        self.pool = pool
        self.calls: list[str] = []
        self.requests: list = []
        self.objects: dict[str, dict[str, object]] = {}
        self.failures: dict[str, FakeRpcError] = {}
        self._lock = threading.Lock()
        self._next_id = 0

    def add(self, *objects) -> None:
        for obj in objects:
            self.objects.setdefault(obj.DESCRIPTOR.full_name, {})[obj.id] = obj

    def fail(self, path: str, code: grpc.StatusCode, details: str) -> None:
        self.failures[path] = FakeRpcError(code, details)

    def count(self, method: str) -> int:
        return sum(1 for path in self.calls if path.endswith(f"/{method}"))

    def unary_unary(self, path, request_serializer=None, response_deserializer=None, **kwargs):
        def call(request, timeout=None, metadata=None):
            with self._lock:
                self.calls.append(path)
                self.requests.append(request)
            if path in self.failures:
                raise self.failures[path]
            service_name, _, method_name = path.lstrip("/").rpartition("/")
            service = self.pool.FindServiceByName(service_name)
            method = service.methods_by_name[method_name]
            request = message_factory.GetMessageClass(method.input_type).FromString(
                request_serializer(request)
            )
            response = message_factory.GetMessageClass(method.output_type)()
            object_type = service.methods_by_name["Get"].output_type.fields_by_name["object"].message_type
            handler = getattr(self, f"_{method_name.lower()}")
            handler(object_type, request, response)
            return response_deserializer(response.SerializeToString())

        return call

    def _store(self, object_type) -> dict:
        return self.objects.setdefault(object_type.full_name, {})

    def _require(self, object_type, id):
        store = self._store(object_type)
        if id not in store:
            raise FakeRpcError(grpc.StatusCode.NOT_FOUND, f"object with identifier '{id}' doesn't exist")
        return store[id]

    def _get(self, object_type, request, response):
        response.object.CopyFrom(self._require(object_type, request.id))

    def _list(self, object_type, request, response):
        items = list(self._store(object_type).values())
        if request.filter:
            try:
                program = ExpressionEnv(object_type, "this").compile(request.filter)
                items = [item for item in items if program.matches(item)]
            except ExpressionError as exc:
                raise FakeRpcError(grpc.StatusCode.INVALID_ARGUMENT, str(exc)) from exc
        total = len(items)
        if "limit" in request.DESCRIPTOR.fields_by_name and request.limit > 0:
            items = items[: request.limit]
        response.items.extend(items)
        if "total" in response.DESCRIPTOR.fields_by_name:
            response.total = total

    def _create(self, object_type, request, response):
        obj = type(request.object)()
        obj.CopyFrom(request.object)
        if not obj.id:
            self._next_id += 1
            obj.id = f"generated-{self._next_id}"
        self._store(object_type)[obj.id] = obj
        response.object.CopyFrom(obj)

    def _update(self, object_type, request, response):
        self._require(object_type, request.object.id)
        obj = type(request.object)()
        obj.CopyFrom(request.object)
        self._store(object_type)[obj.id] = obj
        response.object.CopyFrom(obj)

    def _delete(self, object_type, request, response):
        self._require(object_type, request.id)
        del self._store(object_type)[request.id]


@pytest.fixture(scope="session")
def pool():
    return build_pool()


@pytest.fixture
def make(pool):
    """Return a function that creates a message of the given type from a dictionary."""

    def _make(type_name: str, data: dict | None = None):
        message_class = message_factory.GetMessageClass(pool.FindMessageTypeByName(type_name))
        return json_format.ParseDict(data or {}, message_class())

    return _make


@pytest.fixture
def logger():
    return structlog.get_logger("tests")


@pytest.fixture
def channel(pool):
    return FakeChannel(pool)


@pytest.fixture
def helper(pool, channel, logger):
    return (
        new_helper()
        .set_logger(logger)
        .set_connection(channel)
        .set_pool(pool)
        .add_package("fulfillment.v1", 1)
        .add_files([pool.FindFileByName(PUBLIC_FILE), pool.FindFileByName(PRIVATE_FILE)])
        .build()
    )


@pytest.fixture
def private_helper(pool, channel, logger):
    return (
        new_helper()
        .set_logger(logger)
        .set_connection(channel)
        .set_pool(pool)
        .add_packages({"fulfillment.v1": 1, "private.v1": 0})
        .add_files([pool.FindFileByName(PUBLIC_FILE), pool.FindFileByName(PRIVATE_FILE)])
        .build()
    )
