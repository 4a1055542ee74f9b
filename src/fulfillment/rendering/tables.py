"""Rendering of objects as tables.

The columns of the table for each object type are described by a layout file
named after the full name of the type, for example
`fulfillment.v1.Cluster.yaml`:

    columns:
    - header: ID
      value: this.id
    - header: TEMPLATE
      value: this.spec.template
      type: fulfillment.v1.ClusterTemplate
      lookup: true
    - header: STATE
      value: this.status.state
      type: fulfillment.v1.ClusterState

The `value` of each column is a CEL expression evaluated with the object bound
to the `this` variable. When the result is an enum value and `type` is the name
of the enum, the value is rendered as the name of the enum value without the
prefix shared with the `..._UNSPECIFIED` value. When `lookup` is true the
result is an identifier of an object of the type given in `type`, and the name
of that object is rendered instead.

Types without layout file are rendered with the ID and NAME columns.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml
from celpy import celtypes
from google.protobuf.descriptor import EnumDescriptor
from google.protobuf.message import Message
from rich.console import Console
from rich.table import Table
from rich.text import Text

from fulfillment.core.errors import ExpressionError, FulfillmentError, RenderError
from fulfillment.core.expressions import ExpressionEnv, Program
from fulfillment.core.objects import ListOptions, ObjectHelper
from fulfillment.core.reflection import Helper

LAYOUTS_DIR = Path(__file__).resolve().parent / "layouts"


@dataclass(frozen=True)
class ColumnLayout:
    """
    Describes one column of a table.

    Attributes:
        header: Text of the header of the column.
        value: CEL expression that calculates the value, using the `this` variable.
        type: Name of the enum type of the result, or of the object type for lookups.
        lookup: True if the result is an identifier that should be replaced by a name.
    """

    header: str
    value: str
    type: str = ""
    lookup: bool = False


DEFAULT_COLUMNS = (
    ColumnLayout(header="ID", value="this.id"),
    ColumnLayout(header="NAME", value="has(this.metadata.name) ? this.metadata.name : '-'"),
)

DELETED_COLUMN = ColumnLayout(
    header="DELETED",
    value=(
        "has(this.metadata.deletion_timestamp) ? "
        "string(this.metadata.deletion_timestamp) : '-'"
    ),
)


class TableRendererBuilder:
    """Collects the configuration needed to create a table renderer."""

    def __init__(self) -> None:
        self._logger = None
        self._helper: Helper | None = None
        self._writer = None
        self._include_deleted = False
        self._layouts_dir: Path = LAYOUTS_DIR
        self._width: int | None = None

    def set_logger(self, value) -> TableRendererBuilder:
        """Set the logger. This is mandatory."""
        self._logger = value
        return self

    def set_helper(self, value: Helper) -> TableRendererBuilder:
        """Set the reflection helper used to introspect objects. This is mandatory."""
        self._helper = value
        return self

    def set_writer(self, value) -> TableRendererBuilder:
        """Set the text stream where the tables are written. This is mandatory."""
        self._writer = value
        return self

    def set_include_deleted(self, value: bool) -> TableRendererBuilder:
        """Add the DELETED column to the tables."""
        self._include_deleted = value
        return self

    def set_layouts_dir(self, value: str | Path) -> TableRendererBuilder:
        """Set the directory containing the layout files. Defaults to the layouts shipped with the package."""
        self._layouts_dir = Path(value)
        return self

    def set_width(self, value: int | None) -> TableRendererBuilder:
        """Set the width of the output. By default it is detected from the writer."""
        self._width = value
        return self

    def build(self) -> TableRenderer:
        """
        Create the table renderer.

        Raises:
            ValueError: If the logger, the helper or the writer are missing.
        """
        if self._logger is None:
            raise ValueError("logger is mandatory")
        if self._helper is None:
            raise ValueError("helper is mandatory")
        if self._writer is None:
            raise ValueError("writer is mandatory")
        console = Console(
            file=self._writer,
            width=self._width,
            highlight=False,
            emoji=False,
        )
        return TableRenderer(
            logger=self._logger,
            helper=self._helper,
            console=console,
            include_deleted=self._include_deleted,
            layouts_dir=self._layouts_dir,
        )


def new_table_renderer() -> TableRendererBuilder:
    """Return a builder for a table renderer."""
    return TableRendererBuilder()


class TableRenderer:
    """
    Renders lists of objects as tables.

    The renderer remembers the names found for identifiers, so each identifier
    is looked up only once. Use a different renderer for each thread.
    """

    def __init__(
        self,
        *,
        logger,
        helper: Helper,
        console: Console,
        include_deleted: bool,
        layouts_dir: Path,
    ) -> None:
        self._logger = logger
        self._helper = helper
        self._console = console
        self._include_deleted = include_deleted
        self._layouts_dir = layouts_dir
        self._cache: dict[str, dict[str, str]] = {}

    def render(self, objects: Iterable[Message]) -> None:
        """
        Render the objects as a table.

        All the objects must be of the same type. Nothing is written when the
        list is empty.

        Raises:
            RenderError: If the objects are of different or unknown types, or if
                the layout of the type is wrong.
        """
        messages = list(objects)
        for message in messages:
            if not isinstance(message, Message):
                raise RenderError(
                    f"objects must be protobuf messages, but found {type(message).__name__}"
                )
        if not messages:
            return

        full_name = messages[0].DESCRIPTOR.full_name
        other_names = sorted({m.DESCRIPTOR.full_name for m in messages} - {full_name})
        if other_names:
            raise RenderError(
                f"objects must be of the same type, but found '{full_name}' "
                f"and {', '.join(repr(n) for n in other_names)}"
            )
        helper = self._helper.lookup(full_name)
        if helper is None:
            raise RenderError(f"failed to find object helper for type '{full_name}'")

        columns = self._load_layout(helper)
        if columns is None:
            columns = list(DEFAULT_COLUMNS)
        if self._include_deleted:
            columns.insert(1, DELETED_COLUMN)

        programs = self._compile(helper, columns)

        table = Table(
            box=None,
            show_edge=False,
            pad_edge=False,
            padding=(0, 3, 0, 0),
        )
        for column in columns:
            table.add_column(column.header, no_wrap=True)
        for message in messages:
            table.add_row(*self._render_row(helper, columns, programs, message))

        # Printed once, after every row is computed:
        self._console.print(table)

    def _load_layout(self, helper: ObjectHelper) -> list[ColumnLayout] | None:
        """Load the columns for the type, or return None if there is no layout file."""
        file = self._layouts_dir / f"{helper.full_name}.yaml"
        if not file.is_file():
            return None
        try:
            data = yaml.safe_load(file.read_text())
        except (OSError, yaml.YAMLError) as exc:
            raise RenderError(f"failed to load table definition file '{file.name}': {exc}") from exc

        records = data.get("columns") if isinstance(data, Mapping) else data
        if not isinstance(records, list) or not records:
            raise RenderError(f"table definition file '{file.name}' doesn't contain a list of columns")

        columns: list[ColumnLayout] = []
        for index, record in enumerate(records):
            if not isinstance(record, Mapping) or not record.get("header") or not record.get("value"):
                raise RenderError(
                    f"column {index} of table definition file '{file.name}' must have a header and a value"
                )
            column = ColumnLayout(
                header=str(record["header"]),
                value=str(record["value"]),
                type=str(record.get("type") or ""),
                lookup=bool(record.get("lookup", False)),
            )
            if column.lookup and not column.type:
                raise RenderError(
                    f"column '{column.header}' of table definition file '{file.name}' "
                    "is a lookup but doesn't specify the type"
                )
            columns.append(column)
        return columns

    def _compile(self, helper: ObjectHelper, columns: list[ColumnLayout]) -> list[Program]:
        env = ExpressionEnv(helper.descriptor, "this")
        programs: list[Program] = []
        for column in columns:
            try:
                programs.append(env.compile(column.value))
            except ExpressionError as exc:
                raise RenderError(
                    f"failed to compile CEL expression {column.value!r} for column "
                    f"'{column.header}' of type '{helper}': {exc}"
                ) from exc
        return programs

    def _render_row(
        self,
        helper: ObjectHelper,
        columns: list[ColumnLayout],
        programs: list[Program],
        message: Message,
    ) -> list[Text]:
        cells: list[Text] = []
        for column, program in zip(columns, programs):
            try:
                value = program.evaluate(message)
            except ExpressionError as exc:
                raise RenderError(
                    f"failed to evaluate CEL expression {column.value!r} for column "
                    f"'{column.header}' of type '{helper}': {exc}"
                ) from exc
            cells.append(Text(self._render_cell(column, value)))
        return cells

    def _render_cell(self, column: ColumnLayout, value: Any) -> str:
        if column.type and _is_integer(value):
            enum = self._helper.find_enum(column.type)
            if enum is not None:
                return enum_text(enum, int(value))
            self._logger.error("Failed to find enum type", type=column.type)
        if column.lookup and column.type and isinstance(value, str):
            if not value:
                return "-"
            return self._lookup_name(column.type, str(value))
        return value_text(value)

    def _lookup_name(self, type_name: str, key: str) -> str:
        """Return the name of the object with the given identifier, or the identifier itself."""
        cache = self._cache.setdefault(type_name, {})
        if key in cache:
            return cache[key]
        result = self._find_name(type_name, key)
        cache[key] = result
        return result

    def _find_name(self, type_name: str, key: str) -> str:
        helper = self._helper.lookup(type_name)
        if helper is None:
            self._logger.error("Failed to find object helper for type", type=type_name)
            return key

        quoted = json.dumps(key)
        options = ListOptions(filter=f"this.id == {quoted} || this.metadata.name == {quoted}")
        try:
            result = helper.list(options)
        except FulfillmentError as exc:
            self._logger.error(
                "Failed to list objects for lookup",
                type=type_name,
                key=key,
                error=str(exc),
            )
            return key

        if len(result.items) != 1:
            self._logger.warning(
                "Lookup didn't find exactly one object",
                type=type_name,
                key=key,
                matches=len(result.items),
            )
            return key
        return helper.get_name(result.items[0]) or key


def _is_integer(value: Any) -> bool:
    if isinstance(value, (bool, celtypes.BoolType)):
        return False
    return isinstance(value, int)


def enum_text(enum: EnumDescriptor, number: int) -> str:
    """
    Return the name of an enum value without the prefix of the type.

    Enum values are expected to have a prefix derived from the type, like
    `CLUSTER_STATE_READY`, and the value zero should be the one ending in
    `_UNSPECIFIED`. The prefix is taken from that value and removed.
    """
    value = enum.values_by_number.get(number)
    if value is None:
        return f"UNKNOWN:{number}"
    text = value.name
    unspecified = enum.values_by_number.get(0)
    if unspecified is None:
        return text
    prefix, sep, _ = unspecified.name.rpartition("_")
    if sep and text.startswith(f"{prefix}_"):
        return text[len(prefix) + 1:]
    return text


def value_text(value: Any) -> str:
    """Return the text used to render a value that doesn't need translation."""
    if value is None:
        return "null"
    if isinstance(value, (bool, celtypes.BoolType)):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return str(value)
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, float):
        return str(float(value))
    if isinstance(value, Mapping):
        return ", ".join(f"{value_text(k)}={value_text(v)}" for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return ", ".join(value_text(v) for v in value)
    return str(value)
