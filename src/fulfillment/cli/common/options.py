"""Common CLI options and arguments."""

import typer

from fulfillment.cli.common.output import OutputFormat

TypeArg = typer.Argument(
    ...,
    help="Object type, as singular, plural or full name (for example 'cluster').",
    show_default=False,
)

RefsArg = typer.Argument(
    None,
    help="Identifiers or names of the objects.",
    show_default=False,
)

RefArg = typer.Argument(
    ...,
    help="Identifier or name of the object.",
    show_default=False,
)

OperationsArg = typer.Argument(
    ...,
    help="Changes: 'key=value' to set a value, 'key-' to remove it.",
    show_default=False,
)

FilterOpt = typer.Option(
    None,
    "--filter",
    help="CEL expression that the objects must match, using the 'this' variable.",
)

LimitOpt = typer.Option(
    0,
    "--limit",
    "-l",
    min=0,
    help="Maximum number of objects to return (0 means the server default)",
)

IncludeDeletedOpt = typer.Option(
    False,
    "--include-deleted",
    help="Include objects that are being deleted",
)

OutputOpt = typer.Option(
    OutputFormat.TABLE,
    "--output",
    "-o",
    case_sensitive=False,
    help="Output format",
)

FileOpt = typer.Option(
    ...,
    "--file",
    "-f",
    exists=True,
    dir_okay=False,
    readable=True,
    help="YAML or JSON file containing the object",
)

DebugOpt = typer.Option(
    False,
    "--debug",
    help="Write debug messages to the standard error",
)

DocumentOutputOpt = typer.Option(
    OutputFormat.YAML,
    "--output",
    "-o",
    case_sensitive=False,
    help="Output format, 'json' or 'yaml'",
)
