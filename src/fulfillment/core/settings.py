"""Settings of the tool, read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

ADDRESS_ENV = "FULFILLMENT_ADDRESS"
TOKEN_ENV = "FULFILLMENT_TOKEN"
PLAINTEXT_ENV = "FULFILLMENT_PLAINTEXT"
PRIVATE_ENV = "FULFILLMENT_PRIVATE"
SCHEMA_MODULES_ENV = "FULFILLMENT_SCHEMA_MODULES"
TABLES_DIR_ENV = "FULFILLMENT_TABLES_DIR"
LOG_LEVEL_ENV = "FULFILLMENT_LOG_LEVEL"

# Packages enabled always, and only when private types are requested:
PUBLIC_PACKAGES = ("fulfillment.v1",)
PRIVATE_PACKAGES = ("private.v1",)

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """
    Settings used to connect to the server and present results.

    Attributes:
        address: Address of the server, `host:port`.
        token: Optional bearer token sent with every request.
        plaintext: Disable TLS.
        private: Enable the private packages.
        schema_modules: Generated `_pb2` modules that contain the schemas.
        tables_dir: Optional directory containing table layout files.
        log_level: Name of the log level.
    """

    address: str | None = None
    token: str | None = None
    plaintext: bool = False
    private: bool = False
    schema_modules: tuple[str, ...] = field(default_factory=tuple)
    tables_dir: Path | None = None
    log_level: str = "WARNING"

    def packages(self) -> dict[str, int]:
        """
        Return the enabled packages and their presentation order.

        Private packages have order 0 and public ones order 1, so that private
        types are presented first when enabled.
        """
        result = {name: 1 for name in PUBLIC_PACKAGES}
        if self.private:
            result.update({name: 0 for name in PRIVATE_PACKAGES})
        return result


def _flag(raw: str | None) -> bool:
    return (raw or "").strip().lower() in _TRUE_VALUES


def _list(raw: str | None) -> tuple[str, ...]:
    return tuple(item.strip() for item in (raw or "").split(",") if item.strip())


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build the settings from the environment (defaults to `os.environ`)."""
    env = os.environ if environ is None else environ
    tables_dir = (env.get(TABLES_DIR_ENV) or "").strip()
    return Settings(
        address=(env.get(ADDRESS_ENV) or "").strip() or None,
        token=(env.get(TOKEN_ENV) or "").strip() or None,
        plaintext=_flag(env.get(PLAINTEXT_ENV)),
        private=_flag(env.get(PRIVATE_ENV)),
        schema_modules=_list(env.get(SCHEMA_MODULES_ENV)),
        tables_dir=Path(tables_dir).expanduser() if tables_dir else None,
        log_level=(env.get(LOG_LEVEL_ENV) or "WARNING").strip().upper(),
    )
