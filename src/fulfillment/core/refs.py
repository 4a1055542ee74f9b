"""Resolution of object references given by users.

Users refer to objects by identifier or by name. References are resolved with
a single list request whose filter matches any of them, and the results are
then assigned to each reference locally.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Iterable

from google.protobuf.message import Message

from fulfillment.core.objects import ListOptions, ObjectHelper


def quote(value: str) -> str:
    """Return the CEL string literal for a value."""
    return json.dumps(value)


def refs_filter(refs: Iterable[str]) -> str:
    """
    Return a filter that matches the objects whose identifier or name is one of the references.

    Returns an empty string when there are no references.
    """
    values = [quote(ref) for ref in dict.fromkeys(refs)]
    if not values:
        return ""
    listed = ", ".join(values)
    return f"this.id in [{listed}] || this.metadata.name in [{listed}]"


def combine_filters(*filters: str | None) -> str:
    """Combine the non empty filters with the `&&` operator."""
    parts = [f.strip() for f in filters if f and f.strip()]
    if len(parts) == 1:
        return parts[0]
    return " && ".join(f"({part})" for part in parts)


@dataclass
class Resolution:
    """Objects that match one reference."""

    ref: str
    matches: list[Message] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return len(self.matches) == 1

    @property
    def ambiguous(self) -> bool:
        return len(self.matches) > 1


def find_matches(
    helper: ObjectHelper,
    refs: Iterable[str],
    *,
    extra_filter: str = "",
) -> dict[str, Resolution]:
    """
    Resolve several references with one list request.

    An object matches a reference when its identifier or name is equal to it.
    The result has one entry per distinct reference, in the given order.
    """
    refs = list(dict.fromkeys(refs))
    result = {ref: Resolution(ref=ref) for ref in refs}
    if not refs:
        return result
    response = helper.list(ListOptions(filter=combine_filters(refs_filter(refs), extra_filter)))
    for item in response.items:
        keys = {helper.get_id(item), helper.get_name(item)}
        for ref in refs:
            if ref in keys:
                result[ref].matches.append(item)
    return result


def find_object(helper: ObjectHelper, ref: str) -> Resolution:
    """Resolve one reference. Check `found` and `ambiguous` in the result."""
    return find_matches(helper, [ref])[ref]
