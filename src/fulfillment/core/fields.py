"""Field shape rules used to recognize object services.

A service is only considered to manage objects when its request and response
messages contain fields with well known names and shapes. The functions in
this module check one of those rules each. They are pure functions over
protobuf descriptors: they return the matching field descriptor, or None when
the message doesn't satisfy the rule.
"""

from __future__ import annotations

from google.protobuf.descriptor import Descriptor, FieldDescriptor

# Method names:
CREATE_METHOD = "Create"
DELETE_METHOD = "Delete"
GET_METHOD = "Get"
LIST_METHOD = "List"
UPDATE_METHOD = "Update"

CRUD_METHODS = (GET_METHOD, LIST_METHOD, CREATE_METHOD, UPDATE_METHOD, DELETE_METHOD)

# Field names:
FILTER_FIELD = "filter"
ID_FIELD = "id"
ITEMS_FIELD = "items"
LIMIT_FIELD = "limit"
METADATA_FIELD = "metadata"
OBJECT_FIELD = "object"
TOTAL_FIELD = "total"


def is_repeated(field: FieldDescriptor) -> bool:
    """Return True if the field is repeated (this includes map fields)."""
    return field.is_repeated


def is_map(field: FieldDescriptor) -> bool:
    """Return True if the field is a map field."""
    message_type = field.message_type
    return (
        is_repeated(field)
        and message_type is not None
        and message_type.GetOptions().map_entry
    )


def _find(
    message: Descriptor,
    name: str,
    kind: int,
    *,
    repeated: bool = False,
) -> FieldDescriptor | None:
    field = message.fields_by_name.get(name)
    if field is None:
        return None
    if is_repeated(field) != repeated:
        return None
    if field.type != kind:
        return None
    return field


def id_field(message: Descriptor) -> FieldDescriptor | None:
    """Return the non repeated string `id` field."""
    return _find(message, ID_FIELD, FieldDescriptor.TYPE_STRING)


def object_field(message: Descriptor) -> FieldDescriptor | None:
    """Return the non repeated message `object` field."""
    return _find(message, OBJECT_FIELD, FieldDescriptor.TYPE_MESSAGE)


def filter_field(message: Descriptor) -> FieldDescriptor | None:
    """Return the non repeated string `filter` field."""
    return _find(message, FILTER_FIELD, FieldDescriptor.TYPE_STRING)


def limit_field(message: Descriptor) -> FieldDescriptor | None:
    """Return the non repeated int32 `limit` field."""
    return _find(message, LIMIT_FIELD, FieldDescriptor.TYPE_INT32)


def items_field(message: Descriptor) -> FieldDescriptor | None:
    """Return the repeated message `items` field."""
    field = _find(message, ITEMS_FIELD, FieldDescriptor.TYPE_MESSAGE, repeated=True)
    if field is None or is_map(field):
        return None
    return field


def total_field(message: Descriptor) -> FieldDescriptor | None:
    """Return the non repeated int32 `total` field."""
    return _find(message, TOTAL_FIELD, FieldDescriptor.TYPE_INT32)


def object_field_of(message: Descriptor, object_type: Descriptor) -> FieldDescriptor | None:
    """Return the `object` field only if its type is the given object type."""
    field = object_field(message)
    if field is None or not same_type(field.message_type, object_type):
        return None
    return field


def same_type(first: Descriptor | None, second: Descriptor | None) -> bool:
    """Compare two message descriptors by full name."""
    if first is None or second is None:
        return False
    return first.full_name == second.full_name
