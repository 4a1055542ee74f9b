"""Changes to the labels and annotations of objects."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, MutableMapping

from google.protobuf.message import Message

from fulfillment.core.objects import ObjectHelper

_KEY = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9._/-]*[A-Za-z0-9])?$")


@dataclass(frozen=True)
class MapOperation:
    """
    One change to a map of strings.

    A `value` of None means that the key is removed.
    """

    key: str
    value: str | None = None

    @property
    def remove(self) -> bool:
        return self.value is None


def parse_map_operations(values: Iterable[str], kind: str = "label") -> list[MapOperation]:
    """
    Parse operations in the `key=value` (set) or `key-` (remove) format.

    Raises:
        ValueError: If an operation doesn't have one of those formats, or the
            key isn't valid.
    """
    operations: list[MapOperation] = []
    for raw in values:
        text = raw.strip()
        if "=" in text:
            key, value = text.split("=", 1)
            operation = MapOperation(key=key.strip(), value=value)
        elif text.endswith("-"):
            operation = MapOperation(key=text[:-1].strip())
        else:
            raise ValueError(f"Invalid {kind} '{raw}', expected 'key=value' or 'key-'")
        if not _KEY.match(operation.key):
            raise ValueError(f"Invalid {kind} key '{operation.key}' in '{raw}'")
        operations.append(operation)
    return operations


def apply_map_operations(
    mapping: MutableMapping[str, str],
    operations: Iterable[MapOperation],
) -> bool:
    """Apply the operations in order. Returns True if the mapping changed."""
    changed = False
    for operation in operations:
        if operation.remove:
            if operation.key in mapping:
                del mapping[operation.key]
                changed = True
        elif mapping.get(operation.key) != operation.value:
            mapping[operation.key] = operation.value
            changed = True
    return changed


def is_deleted(helper: ObjectHelper, object: Message) -> bool:
    """Return True if the object has the deletion timestamp set."""
    metadata = helper.get_metadata(object)
    if metadata is None or "deletion_timestamp" not in metadata.DESCRIPTOR.fields_by_name:
        return False
    return metadata.HasField("deletion_timestamp")


NOT_DELETED_FILTER = "!has(this.metadata.deletion_timestamp)"


def tracks_deletion(helper: ObjectHelper) -> bool:
    """Return True if objects of the type have the `metadata.deletion_timestamp` field."""
    field = helper.descriptor.fields_by_name.get("metadata")
    if field is None or field.message_type is None:
        return False
    return "deletion_timestamp" in field.message_type.fields_by_name
