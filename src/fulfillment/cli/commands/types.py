"""Command that lists the object types supported by the server."""

import typer

from fulfillment.cli.common.context import AppContext
from fulfillment.cli.common.exits import finish
from fulfillment.cli.common.output import out


def types(ctx: typer.Context):
    """
    List the object types that can be used with the other commands.
    """
    appctx: AppContext = ctx.obj
    helpers = appctx.helper.helpers()
    if not helpers:
        finish("The schema modules don't contain any object type", warning=True)
    out.types_table(helpers)
