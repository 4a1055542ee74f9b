"""Command that fetches and prints objects."""

from __future__ import annotations

import sys

import typer

from fulfillment.cli.common.context import AppContext
from fulfillment.cli.common.exits import bad_input, fail, finish, request_failed
from fulfillment.cli.common.options import (
    FilterOpt,
    IncludeDeletedOpt,
    LimitOpt,
    OutputOpt,
    RefsArg,
    TypeArg,
)
from fulfillment.cli.common.output import OutputFormat, out
from fulfillment.core.errors import ExpressionError, FulfillmentError, RenderError
from fulfillment.core.expressions import ExpressionEnv
from fulfillment.core.metadata import NOT_DELETED_FILTER, tracks_deletion
from fulfillment.core.objects import ListOptions
from fulfillment.core.refs import combine_filters, refs_filter
from fulfillment.rendering.tables import new_table_renderer


def get(
    ctx: typer.Context,
    object_type: str = TypeArg,
    refs: list[str] | None = RefsArg,
    filter: str | None = FilterOpt,
    limit: int = LimitOpt,
    include_deleted: bool = IncludeDeletedOpt,
    output: OutputFormat = OutputOpt,
):
    """
    Get objects of a type, optionally selected by identifier or name.
    """
    appctx: AppContext = ctx.obj
    helper = appctx.lookup_or_exit(object_type)
    refs = list(dict.fromkeys(refs or []))

    # Report mistakes in the filter before sending anything to the server:
    if filter:
        try:
            ExpressionEnv(helper.descriptor, "this").compile(filter)
        except ExpressionError as exc:
            bad_input(f"Invalid filter: {exc}", cause=exc)

    deleted_filter = ""
    if not include_deleted and tracks_deletion(helper):
        deleted_filter = NOT_DELETED_FILTER
    options = ListOptions(
        filter=combine_filters(refs_filter(refs), filter, deleted_filter),
        limit=limit,
    )

    try:
        with out.status(f"Loading {helper.plural}..."):
            result = helper.list(options)
    except FulfillmentError as exc:
        request_failed(exc)

    appctx.logger.debug(
        "Listed objects",
        type=helper.full_name,
        filter=options.filter,
        items=len(result.items),
        total=result.total,
    )

    found = {helper.get_id(o) for o in result.items} | {helper.get_name(o) for o in result.items}
    missing = [ref for ref in refs if ref not in found]

    if result.items:
        if output == OutputFormat.TABLE:
            renderer = (
                new_table_renderer()
                .set_logger(appctx.logger)
                .set_helper(appctx.helper)
                .set_writer(sys.stdout)
                .set_include_deleted(include_deleted)
            )
            if appctx.settings.tables_dir is not None:
                renderer.set_layouts_dir(appctx.settings.tables_dir)
            try:
                renderer.build().render(result.items)
            except RenderError as exc:
                fail(str(exc), cause=exc)
        else:
            out.document(result.items, output)

    if missing:
        fail(
            f"Can't find {helper.singular} "
            + ", ".join(f"'{ref}'" for ref in missing),
        )
    if not result.items:
        finish(f"No {helper.plural} found", warning=True)
