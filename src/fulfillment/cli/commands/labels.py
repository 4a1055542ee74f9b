"""Commands that change the labels and annotations of objects."""

from __future__ import annotations

import typer

from fulfillment.cli.common.context import AppContext
from fulfillment.cli.common.exits import bad_input, fail, finish, request_failed
from fulfillment.cli.common.options import OperationsArg, RefArg, TypeArg
from fulfillment.cli.common.output import out
from fulfillment.core.errors import FulfillmentError
from fulfillment.core.metadata import apply_map_operations, parse_map_operations
from fulfillment.core.refs import find_object


def _update_map(
    appctx: AppContext,
    *,
    object_type: str,
    ref: str,
    values: list[str],
    kind: str,
    field: str,
) -> None:
    """Apply the operations to one of the maps of the metadata and send the update."""
    helper = appctx.lookup_or_exit(object_type)

    try:
        operations = parse_map_operations(values, kind)
    except ValueError as exc:
        bad_input(str(exc), cause=exc)

    try:
        resolution = find_object(helper, ref)
    except FulfillmentError as exc:
        request_failed(exc)
    if not resolution.matches:
        fail(f"There is no {helper.singular} with identifier or name '{ref}'")
    if resolution.ambiguous:
        fail(f"There are several objects of type {helper.singular} named '{ref}', use the identifier instead")
    object = resolution.matches[0]

    metadata = helper.get_metadata(object)
    if metadata is None or field not in metadata.DESCRIPTOR.fields_by_name:
        fail(f"Objects of type {helper.singular} don't have {kind}s")

    if not apply_map_operations(getattr(metadata, field), operations):
        finish(f"The {kind}s of {helper.singular} '{ref}' are already up to date")

    try:
        helper.update(object)
    except FulfillmentError as exc:
        request_failed(exc)
    out.success(f"Updated {kind}s of {helper.singular} '{helper.get_id(object)}'")


def label(
    ctx: typer.Context,
    object_type: str = TypeArg,
    ref: str = RefArg,
    operations: list[str] = OperationsArg,
):
    """
    Set or remove labels of an object.
    """
    _update_map(
        ctx.obj,
        object_type=object_type,
        ref=ref,
        values=operations,
        kind="label",
        field="labels",
    )


def annotate(
    ctx: typer.Context,
    object_type: str = TypeArg,
    ref: str = RefArg,
    operations: list[str] = OperationsArg,
):
    """
    Set or remove annotations of an object.
    """
    _update_map(
        ctx.obj,
        object_type=object_type,
        ref=ref,
        values=operations,
        kind="annotation",
        field="annotations",
    )
