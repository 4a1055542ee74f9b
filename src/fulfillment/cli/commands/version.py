"""Command that prints the version of the tool."""

from importlib.metadata import PackageNotFoundError, version as package_version

import typer

DISTRIBUTION = "fulfillment-cli"


def current_version() -> str:
    """Return the installed version, or `unknown` when running from a source tree."""
    try:
        return package_version(DISTRIBUTION)
    except PackageNotFoundError:
        return "unknown"


def version():
    """
    Print the version of the tool.
    """
    typer.echo(current_version())
