"""Command that deletes objects."""

from __future__ import annotations

import typer

from fulfillment.cli.common.context import AppContext
from fulfillment.cli.common.exits import fail, request_failed
from fulfillment.cli.common.options import RefArg, TypeArg
from fulfillment.cli.common.output import out
from fulfillment.core.errors import FulfillmentError, NotFoundError
from fulfillment.core.refs import find_matches


def delete(
    ctx: typer.Context,
    object_type: str = TypeArg,
    refs: list[str] = RefArg,
):
    """
    Delete objects, selected by identifier or name.

    All the references are checked before deleting anything.
    """
    appctx: AppContext = ctx.obj
    helper = appctx.lookup_or_exit(object_type)

    try:
        with out.status(f"Looking up {helper.plural}..."):
            resolutions = find_matches(helper, refs)
    except FulfillmentError as exc:
        request_failed(exc)

    ids: list[str] = []
    for ref, resolution in resolutions.items():
        if not resolution.matches:
            fail(f"There is no {helper.singular} with identifier or name '{ref}'")
        if resolution.ambiguous:
            fail(
                f"There are {len(resolution.matches)} objects of type {helper.singular} "
                f"with identifier or name '{ref}', use the identifier instead",
            )
        ids.append(helper.get_id(resolution.matches[0]))

    for id in dict.fromkeys(ids):
        try:
            helper.delete(id)
        except NotFoundError as exc:
            request_failed(exc, f"There is no {helper.singular} with identifier '{id}'")
        except FulfillmentError as exc:
            request_failed(exc)
        out.success(f"Deleted {helper.singular} '{id}'")
