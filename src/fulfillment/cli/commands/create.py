"""Command that creates objects from files."""

from __future__ import annotations

from pathlib import Path

import typer
import yaml
from google.protobuf import json_format

from fulfillment.cli.common.context import AppContext
from fulfillment.cli.common.exits import bad_input, request_failed
from fulfillment.cli.common.options import FileOpt, TypeArg
from fulfillment.cli.common.output import out
from fulfillment.core.errors import FulfillmentError


def create(
    ctx: typer.Context,
    object_type: str = TypeArg,
    file: Path = FileOpt,
):
    """
    Create an object from a YAML or JSON file.
    """
    appctx: AppContext = ctx.obj
    helper = appctx.lookup_or_exit(object_type)

    try:
        data = yaml.safe_load(file.read_text())
    except (OSError, yaml.YAMLError) as exc:
        bad_input(f"Failed to read file '{file}': {exc}", cause=exc)
    if not isinstance(data, dict):
        bad_input(f"File '{file}' must contain a single object")

    try:
        object = json_format.ParseDict(data, helper.instance())
    except json_format.ParseError as exc:
        bad_input(f"File '{file}' doesn't contain a valid {helper.singular}: {exc}", cause=exc)

    try:
        created = helper.create(object)
    except FulfillmentError as exc:
        request_failed(exc)

    out.success(f"Created {helper.singular} '{helper.get_id(created)}'")
