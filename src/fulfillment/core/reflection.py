"""Discovery of the object types supported by the server.

The reflection helper scans the protobuf descriptors of the enabled packages
looking for services that have the Get, List, Create, Update and Delete methods
with the shapes described in `fulfillment.core.fields`. For each of them it
creates an ObjectHelper that can then be used to manipulate objects of that
type without generated client code.

The scan happens only once, the first time that the helper is used, and it is
safe to share the helper between threads.
"""

from __future__ import annotations

import threading
from typing import Any, Iterable, Mapping

import inflect
from google.protobuf import descriptor_pool, message_factory
from google.protobuf.descriptor import (
    Descriptor,
    EnumDescriptor,
    FileDescriptor,
    MethodDescriptor,
    ServiceDescriptor,
)

from fulfillment.core import fields
from fulfillment.core.objects import (
    CreateInfo,
    DeleteInfo,
    GetInfo,
    ListInfo,
    ObjectHelper,
    UpdateInfo,
)


class HelperBuilder:
    """Collects the configuration needed to create a reflection helper."""

    def __init__(self) -> None:
        self._logger = None
        self._connection = None
        self._pool = None
        self._packages: dict[str, int] = {}
        self._files: list[FileDescriptor] = []

    def set_logger(self, value) -> HelperBuilder:
        """Set the logger. This is mandatory."""
        self._logger = value
        return self

    def set_connection(self, value) -> HelperBuilder:
        """Set the gRPC channel used to invoke methods. This is mandatory."""
        self._connection = value
        return self

    def set_pool(self, value: descriptor_pool.DescriptorPool) -> HelperBuilder:
        """Set the descriptor pool used to find enum types. Defaults to the global pool."""
        self._pool = value
        return self

    def add_package(self, name: str, order: int) -> HelperBuilder:
        """
        Enable a protobuf package.

        The order is used to sort the types when they are presented to the
        user: types of packages with lower order go first.
        """
        self._packages[name] = order
        return self

    def add_packages(self, values: Mapping[str, int]) -> HelperBuilder:
        """Enable several packages at once, the values are the orders."""
        self._packages.update(values)
        return self

    def add_file(self, value: FileDescriptor | Any) -> HelperBuilder:
        """
        Add a file to scan.

        Accepts a file descriptor, or a generated `_pb2` module, in which case
        its `DESCRIPTOR` is used.
        """
        file = getattr(value, "DESCRIPTOR", value)
        if not isinstance(file, FileDescriptor):
            raise TypeError(f"expected a file descriptor or a generated module, got {type(value).__name__}")
        self._files.append(file)
        return self

    def add_files(self, values: Iterable[FileDescriptor | Any]) -> HelperBuilder:
        for value in values:
            self.add_file(value)
        return self

    def build(self) -> Helper:
        """
        Create the reflection helper.

        Raises:
            ValueError: If the logger, the connection or the packages are missing.
        """
        if self._logger is None:
            raise ValueError("logger is mandatory")
        if self._connection is None:
            raise ValueError("gRPC connection is mandatory")
        if not self._packages:
            raise ValueError("at least one package is mandatory")
        return Helper(
            logger=self._logger,
            connection=self._connection,
            pool=self._pool or descriptor_pool.Default(),
            packages=dict(self._packages),
            files=list(self._files),
        )


def new_helper() -> HelperBuilder:
    """Return a builder for a reflection helper."""
    return HelperBuilder()


class Helper:
    """
    Registry of the object types supported by the server.

    Don't create instances directly, use `new_helper()` instead.
    """

    def __init__(
        self,
        *,
        logger,
        connection,
        pool: descriptor_pool.DescriptorPool,
        packages: dict[str, int],
        files: list[FileDescriptor],
    ) -> None:
        self._logger = logger
        self._connection = connection
        self._pool = pool
        self._packages = packages
        self._files = files
        self._inflector = inflect.engine()
        self._helpers: list[ObjectHelper] = []
        self._scan_lock = threading.Lock()
        self._scanned = False

    def names(self) -> list[str]:
        """Return the full names of the object types, sorted by package order and then by name."""
        self._scan_if_needed()
        return [h.full_name for h in self._helpers]

    def singulars(self) -> list[str]:
        """Return the singular names of the object types, lower case and sorted."""
        self._scan_if_needed()
        return sorted({h.singular for h in self._helpers})

    def plurals(self) -> list[str]:
        """Return the plural names of the object types, lower case and sorted."""
        self._scan_if_needed()
        return sorted({h.plural for h in self._helpers})

    def helpers(self) -> list[ObjectHelper]:
        """Return the object helpers in presentation order."""
        self._scan_if_needed()
        return list(self._helpers)

    def lookup(self, object_type: str) -> ObjectHelper | None:
        """
        Find the helper for an object type.

        The type can be given as the full name (exact match) or as the singular
        or plural name (case insensitive). When several types share a name the
        first one in presentation order wins. Returns None if there is no match.
        """
        self._scan_if_needed()
        folded = object_type.casefold()
        for helper in self._helpers:
            if object_type == helper.full_name:
                return helper
            if folded == helper.singular or folded == helper.plural:
                return helper
        return None

    def find_enum(self, name: str) -> EnumDescriptor | None:
        """Return the descriptor of the enum type with the given full name, or None."""
        try:
            return self._pool.FindEnumTypeByName(name)
        except KeyError:
            return None

    def _scan_if_needed(self) -> None:
        if self._scanned:
            return
        with self._scan_lock:
            if self._scanned:
                return
            self._scan()
            self._scanned = True

    def _scan(self) -> None:
        seen: set[str] = set()
        for file in self._files:
            if file.name in seen:
                continue
            seen.add(file.name)
            self._scan_file(file)
        self._helpers.sort(key=lambda h: (self._packages.get(h.package, 0), h.full_name))

    def _scan_file(self, file: FileDescriptor) -> None:
        if file.package not in self._packages:
            self._logger.debug(
                "Ignoring file because it isn't in the list of enabled packages",
                file=file.name,
                package=file.package,
            )
            return
        self._logger.debug("Scanning file", file=file.name)
        for service in file.services_by_name.values():
            helper = self._scan_service(service)
            if helper is None:
                self._logger.debug(
                    "Service doesn't have the shape of an object service",
                    service=service.full_name,
                )
                continue
            self._helpers.append(helper)

    def _scan_service(self, service: ServiceDescriptor) -> ObjectHelper | None:
        self._logger.debug("Scanning service", service=service.full_name)

        # All the methods are required:
        methods = service.methods_by_name
        if any(name not in methods for name in fields.CRUD_METHODS):
            return None
        get_desc = methods[fields.GET_METHOD]
        list_desc = methods[fields.LIST_METHOD]
        create_desc = methods[fields.CREATE_METHOD]
        update_desc = methods[fields.UPDATE_METHOD]
        delete_desc = methods[fields.DELETE_METHOD]

        # The get method defines the object type:
        get_id = fields.id_field(get_desc.input_type)
        if get_id is None:
            return None
        get_object = fields.object_field(get_desc.output_type)
        if get_object is None:
            return None
        object_desc = get_object.message_type

        # List needs a filter and items of the object type, limit and total are optional:
        list_filter = fields.filter_field(list_desc.input_type)
        if list_filter is None:
            return None
        list_limit = fields.limit_field(list_desc.input_type)
        list_items = fields.items_field(list_desc.output_type)
        if list_items is None or not fields.same_type(list_items.message_type, object_desc):
            return None
        list_total = fields.total_field(list_desc.output_type)

        # Create and update receive and return the object:
        create_in = fields.object_field_of(create_desc.input_type, object_desc)
        create_out = fields.object_field_of(create_desc.output_type, object_desc)
        if create_in is None or create_out is None:
            return None
        update_in = fields.object_field_of(update_desc.input_type, object_desc)
        update_out = fields.object_field_of(update_desc.output_type, object_desc)
        if update_in is None or update_out is None:
            return None

        # Delete receives the identifier:
        delete_id = fields.id_field(delete_desc.input_type)
        if delete_id is None:
            return None

        singular = object_desc.name.lower()
        plural = self._inflector.plural_noun(singular).lower()
        object_fields = object_desc.fields_by_name
        id_field = object_fields.get(fields.ID_FIELD)
        metadata_field = object_fields.get(fields.METADATA_FIELD)

        return ObjectHelper(
            connection=self._connection,
            descriptor=object_desc,
            message_class=_message_class(object_desc),
            singular=singular,
            plural=plural,
            get_info=GetInfo(
                **_method_classes(get_desc),
                id_field=get_id.name,
                object_field=get_object.name,
            ),
            list_info=ListInfo(
                **_method_classes(list_desc),
                filter_field=list_filter.name,
                limit_field=list_limit.name if list_limit else None,
                items_field=list_items.name,
                total_field=list_total.name if list_total else None,
            ),
            create_info=CreateInfo(
                **_method_classes(create_desc),
                in_field=create_in.name,
                out_field=create_out.name,
            ),
            update_info=UpdateInfo(
                **_method_classes(update_desc),
                in_field=update_in.name,
                out_field=update_out.name,
            ),
            delete_info=DeleteInfo(
                **_method_classes(delete_desc),
                id_field=delete_id.name,
            ),
            id_field=id_field.name if id_field else None,
            metadata_field=metadata_field.name if metadata_field else None,
        )


def _method_path(method: MethodDescriptor) -> str:
    return f"/{method.containing_service.full_name}/{method.name}"


def _method_classes(method: MethodDescriptor) -> dict[str, Any]:
    return {
        "path": _method_path(method),
        "request_class": _message_class(method.input_type),
        "response_class": _message_class(method.output_type),
    }


def _message_class(descriptor: Descriptor):
    return message_factory.GetMessageClass(descriptor)
