"""Generic access to the objects managed by the server.

An ObjectHelper is created by the reflection helper for each message type whose
service has the Get, List, Create, Update and Delete methods with the expected
shapes. It knows the paths of those methods and the names of the fields of the
requests and responses, so it can build requests and extract results for any
object type without generated client code.

Every operation performs exactly one remote call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import grpc
from google.protobuf.descriptor import Descriptor
from google.protobuf.message import Message

from fulfillment.core.errors import NotFoundError, RequestError


@dataclass(frozen=True)
class MethodInfo:
    """
    Describes how to invoke one remote method.

    Attributes:
        path: Path used to invoke the method, like `/fulfillment.v1.Clusters/Get`.
        request_class: Message class of the request.
        response_class: Message class of the response.
    """

    path: str
    request_class: type[Message]
    response_class: type[Message]


@dataclass(frozen=True)
class GetInfo(MethodInfo):
    id_field: str = "id"
    object_field: str = "object"


@dataclass(frozen=True)
class ListInfo(MethodInfo):
    filter_field: str = "filter"
    limit_field: str | None = None
    items_field: str = "items"
    total_field: str | None = None


@dataclass(frozen=True)
class CreateInfo(MethodInfo):
    in_field: str = "object"
    out_field: str = "object"


@dataclass(frozen=True)
class UpdateInfo(MethodInfo):
    in_field: str = "object"
    out_field: str = "object"


@dataclass(frozen=True)
class DeleteInfo(MethodInfo):
    id_field: str = "id"


@dataclass(frozen=True)
class ListOptions:
    """Options for the list operation. Empty filter and zero limit mean no value."""

    filter: str = ""
    limit: int = 0


@dataclass(frozen=True)
class ListResult:
    """Result of the list operation."""

    items: list[Message] = field(default_factory=list)
    total: int = 0


class ObjectHelper:
    """Uniform get/list/create/update/delete operations for one object type."""

    def __init__(
        self,
        *,
        connection: Any,
        descriptor: Descriptor,
        message_class: type[Message],
        singular: str,
        plural: str,
        get_info: GetInfo,
        list_info: ListInfo,
        create_info: CreateInfo,
        update_info: UpdateInfo,
        delete_info: DeleteInfo,
        id_field: str | None,
        metadata_field: str | None,
    ) -> None:
        self._connection = connection
        self._descriptor = descriptor
        self._message_class = message_class
        self._singular = singular
        self._plural = plural
        self._get = get_info
        self._list = list_info
        self._create = create_info
        self._update = update_info
        self._delete = delete_info
        self._id_field = id_field
        self._metadata_field = metadata_field

    @property
    def descriptor(self) -> Descriptor:
        return self._descriptor

    @property
    def full_name(self) -> str:
        return self._descriptor.full_name

    @property
    def package(self) -> str:
        return self._descriptor.full_name.rpartition(".")[0]

    @property
    def singular(self) -> str:
        return self._singular

    @property
    def plural(self) -> str:
        return self._plural

    def __str__(self) -> str:
        return self.full_name

    def __repr__(self) -> str:
        return f"ObjectHelper({self.full_name!r})"

    def instance(self) -> Message:
        """Return a new empty instance of the object type."""
        return self._message_class()

    def get(self, id: str, *, timeout: float | None = None) -> Message:
        """
        Fetch one object by identifier.

        Raises:
            NotFoundError: If the server says that the object doesn't exist.
            RequestError: For any other failure of the remote call.
        """
        request = self._get.request_class()
        setattr(request, self._get.id_field, id)
        response = self._invoke(self._get, request, "get", timeout=timeout, ref=id)
        return getattr(response, self._get.object_field)

    def list(self, options: ListOptions | None = None, *, timeout: float | None = None) -> ListResult:
        """
        Fetch the objects that match the filter, in a single round trip.

        The filter is only sent when not empty, and the limit only when it is
        positive and the list request has a `limit` field. When the response
        doesn't have a `total` field the total is the number of items returned.
        """
        options = options or ListOptions()
        request = self._list.request_class()
        if options.filter:
            setattr(request, self._list.filter_field, options.filter)
        if options.limit > 0 and self._list.limit_field is not None:
            setattr(request, self._list.limit_field, options.limit)
        response = self._invoke(self._list, request, "list", timeout=timeout)
        items = [item for item in getattr(response, self._list.items_field)]
        if self._list.total_field is not None:
            total = int(getattr(response, self._list.total_field))
        else:
            total = len(items)
        return ListResult(items=items, total=total)

    def create(self, object: Message, *, timeout: float | None = None) -> Message:
        """Create an object and return the version returned by the server."""
        request = self._create.request_class()
        getattr(request, self._create.in_field).CopyFrom(object)
        response = self._invoke(self._create, request, "create", timeout=timeout)
        return getattr(response, self._create.out_field)

    def update(self, object: Message, *, timeout: float | None = None) -> Message:
        """Update an object and return the version returned by the server."""
        request = self._update.request_class()
        getattr(request, self._update.in_field).CopyFrom(object)
        response = self._invoke(
            self._update, request, "update", timeout=timeout, ref=self.get_id(object)
        )
        return getattr(response, self._update.out_field)

    def delete(self, id: str, *, timeout: float | None = None) -> None:
        """
        Delete an object by identifier. The response is discarded.

        Raises:
            NotFoundError: If the server says that the object doesn't exist.
            RequestError: For any other failure of the remote call.
        """
        request = self._delete.request_class()
        setattr(request, self._delete.id_field, id)
        self._invoke(self._delete, request, "delete", timeout=timeout, ref=id)

    def get_id(self, object: Message) -> str:
        """Return the identifier of the object, or an empty string if it has none."""
        if self._id_field is None:
            return ""
        return getattr(object, self._id_field)

    def get_metadata(self, object: Message) -> Message | None:
        """
        Return the metadata of the object.

        The returned message is a reference, so changes to labels or annotations
        are reflected in the object. Returns None if the type has no metadata.
        """
        if self._metadata_field is None:
            return None
        return getattr(object, self._metadata_field)

    def get_name(self, object: Message) -> str:
        """Return the name from the metadata, or an empty string."""
        metadata = self.get_metadata(object)
        if metadata is None or "name" not in metadata.DESCRIPTOR.fields_by_name:
            return ""
        return metadata.name

    def _invoke(
        self,
        method: MethodInfo,
        request: Message,
        operation: str,
        *,
        timeout: float | None,
        ref: str | None = None,
    ) -> Message:
        call = self._connection.unary_unary(
            method.path,
            request_serializer=method.request_class.SerializeToString,
            response_deserializer=method.response_class.FromString,
        )
        try:
            return call(request, timeout=timeout)
        except grpc.RpcError as exc:
            raise self._request_error(exc, operation, ref) from exc

    def _request_error(self, exc: grpc.RpcError, operation: str, ref: str | None) -> RequestError:
        code = exc.code() if callable(getattr(exc, "code", None)) else None
        details = exc.details() if callable(getattr(exc, "details", None)) else None
        subject = f"object of type '{self.full_name}'"
        if ref:
            subject = f"{subject} with identifier '{ref}'"
        message = f"failed to {operation} {subject}: {details or exc}"
        error_class = NotFoundError if code == grpc.StatusCode.NOT_FOUND else RequestError
        return error_class(
            message,
            code=code,
            operation=operation,
            type_name=self.full_name,
        )
