"""
Ways to end a command.

Commands end with exit code 0 when they did what was asked or there was
nothing to do, with 1 when a request failed or an object couldn't be found,
and with 2 when the input given by the user is wrong. Input is checked before
sending anything to the server.
"""

from typing import NoReturn

import typer

from fulfillment.cli.common.output import out
from fulfillment.core.errors import FulfillmentError

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def fail(message: str, *, cause: BaseException | None = None, code: int = EXIT_FAILURE) -> NoReturn:
    """Print the error and end the command, chaining the exception that caused it if any."""
    out.error(message)
    raise typer.Exit(code) from cause


def bad_input(message: str, *, cause: BaseException | None = None) -> NoReturn:
    fail(message, cause=cause, code=EXIT_USAGE)


def request_failed(exc: FulfillmentError, message: str | None = None) -> NoReturn:
    """End the command after a request to the server failed. The default message is the error itself."""
    fail(message or str(exc), cause=exc)


def finish(message: str, *, warning: bool = False) -> NoReturn:
    """End the command successfully, for example when there is nothing to do."""
    if warning:
        out.warn(message)
    else:
        out.info(message)
    raise typer.Exit(EXIT_OK)
