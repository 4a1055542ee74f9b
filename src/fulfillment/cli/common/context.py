"""Application context management for the CLI."""

import importlib
from dataclasses import dataclass
from typing import Any

from fulfillment.cli.common.exits import fail
from fulfillment.core.auth import ConnectionSetupError, get_channel
from fulfillment.core.logs import configure_logging, get_logger
from fulfillment.core.objects import ObjectHelper
from fulfillment.core.reflection import Helper, new_helper
from fulfillment.core.settings import SCHEMA_MODULES_ENV, Settings


@dataclass
class AppContext:
    """Application context holding the settings, the logger and the reflection helper."""

    settings: Settings
    logger: Any
    helper: Helper

    def lookup_or_exit(self, object_type: str) -> ObjectHelper:
        """Return the helper for the object type, or exit listing the supported types."""
        helper = self.helper.lookup(object_type)
        if helper is None:
            supported = ", ".join(self.helper.plurals()) or "none"
            fail(f"Unknown object type '{object_type}', supported types are: {supported}")
        return helper


def build_app_context(settings: Settings) -> AppContext:
    """Build and return the application context.

    Args:
        settings: Settings loaded from the environment.

    Returns:
        AppContext: Application context with a reflection helper connected to the server.
    """
    configure_logging(settings.log_level)
    logger = get_logger("cli")

    if not settings.schema_modules:
        fail(f"There are no schema modules, set the {SCHEMA_MODULES_ENV} environment variable.")
    modules = []
    for name in settings.schema_modules:
        try:
            modules.append(importlib.import_module(name))
        except ImportError as exc:
            fail(f"Failed to import schema module '{name}': {exc}", cause=exc)

    try:
        channel = get_channel(settings)
    except ConnectionSetupError as exc:
        fail(str(exc), cause=exc)

    helper = (
        new_helper()
        .set_logger(logger)
        .set_connection(channel)
        .add_packages(settings.packages())
        .add_files(modules)
        .build()
    )
    return AppContext(settings=settings, logger=logger, helper=helper)
