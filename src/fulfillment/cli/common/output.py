"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

import typer
import yaml
from google.protobuf import json_format
from google.protobuf.message import Message
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from fulfillment.core.objects import ObjectHelper

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


class OutputFormat(str, Enum):
    """Formats supported by the commands that print objects."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


def message_dict(message: Message) -> dict[str, Any]:
    """Convert a message to a dictionary using the names of the fields as in the schema."""
    return json_format.MessageToDict(message, preserving_proto_field_name=True)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and documents."""

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {escape(msg)}", soft_wrap=True)

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {escape(msg)}", soft_wrap=True)

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {escape(msg)}", soft_wrap=True)

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {escape(msg)}", soft_wrap=True)

    def types_table(self, helpers: Iterable[ObjectHelper], title: str = "Types") -> None:
        """Render the object types supported by the server."""
        t = Table(title=title, show_lines=False)
        t.add_column("Type", style="ok", no_wrap=True)
        t.add_column("Singular", style="meta")
        t.add_column("Full name", style="meta")

        for helper in helpers:
            t.add_row(helper.plural, helper.singular, helper.full_name)

        console.print(t)

    def document(self, objects: Iterable[Message], fmt: OutputFormat) -> None:
        """
        Print the objects as a JSON or YAML document.

        The document is written with `typer.echo` instead of the rich console
        so that it isn't wrapped or highlighted and can be piped to other tools.
        """
        self._dump([message_dict(o) for o in objects], fmt)

    def single(self, message: Message, fmt: OutputFormat) -> None:
        """Print one object as a JSON or YAML document that isn't wrapped in a list."""
        self._dump(message_dict(message), fmt)

    def _dump(self, data: Any, fmt: OutputFormat) -> None:
        if fmt == OutputFormat.JSON:
            typer.echo(json.dumps(data, indent=2))
        else:
            typer.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


out = Out()
