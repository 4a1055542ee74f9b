"""CLI application for the fulfillment service."""

from dataclasses import replace

import typer

from fulfillment.cli.commands.create import create
from fulfillment.cli.commands.delete import delete
from fulfillment.cli.commands.describe import describe
from fulfillment.cli.commands.get import get
from fulfillment.cli.commands.labels import annotate, label
from fulfillment.cli.commands.types import types
from fulfillment.cli.commands.version import version
from fulfillment.cli.common.context import AppContext, build_app_context
from fulfillment.cli.common.options import DebugOpt
from fulfillment.core.settings import load_settings

app = typer.Typer(
    help="fulfillment - manage the objects of the fulfillment service",
    no_args_is_help=True,
)


@app.callback()
def _init(ctx: typer.Context, debug: bool = DebugOpt):
    """Initialize the application context from the environment."""
    # Tests and embedding programs may provide a ready context:
    if isinstance(ctx.obj, AppContext):
        return
    # Nothing to connect to:
    if ctx.invoked_subcommand == "version":
        return
    settings = load_settings()
    if debug:
        settings = replace(settings, log_level="DEBUG")
    ctx.obj = build_app_context(settings)


app.command(help="List the supported object types.")(types)
app.command(help="Get objects.")(get)
app.command(help="Print one object in detail.")(describe)
app.command(help="Delete objects.")(delete)
app.command(help="Create an object from a file.")(create)
app.command(help="Set or remove labels.")(label)
app.command(help="Set or remove annotations.")(annotate)
app.command(help="Print the version.")(version)


if __name__ == "__main__":
    app()
