"""Command that prints one object in detail."""

from __future__ import annotations

import typer

from fulfillment.cli.common.context import AppContext
from fulfillment.cli.common.exits import bad_input, fail, request_failed
from fulfillment.cli.common.options import DocumentOutputOpt, RefArg, TypeArg
from fulfillment.cli.common.output import OutputFormat, out
from fulfillment.core.errors import FulfillmentError, NotFoundError
from fulfillment.core.refs import find_object


def describe(
    ctx: typer.Context,
    object_type: str = TypeArg,
    ref: str = RefArg,
    output: OutputFormat = DocumentOutputOpt,
):
    """
    Print all the fields of one object, selected by identifier or name.

    The reference is first used as an identifier. When there is no object with
    that identifier it is used as a name.
    """
    if output == OutputFormat.TABLE:
        bad_input("Objects can only be described as 'json' or 'yaml'")
    appctx: AppContext = ctx.obj
    helper = appctx.lookup_or_exit(object_type)

    obj = None
    try:
        with out.status(f"Loading {helper.singular} '{ref}'..."):
            try:
                obj = helper.get(ref)
            except NotFoundError:
                appctx.logger.debug("No object with that identifier, trying the name", type=helper.full_name, ref=ref)
                resolution = find_object(helper, ref)
    except FulfillmentError as exc:
        request_failed(exc)

    if obj is None:
        if not resolution.matches:
            fail(f"There is no {helper.singular} with identifier or name '{ref}'")
        if resolution.ambiguous:
            fail(
                f"There are {len(resolution.matches)} objects of type {helper.singular} "
                f"named '{ref}', use the identifier instead"
            )
        obj = resolution.matches[0]

    out.single(obj, output)
