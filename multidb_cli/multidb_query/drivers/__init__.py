"""Database drivers available to multidb-query."""

from __future__ import annotations

from multidb_cli.shared.config import AppConfig
from multidb_cli.shared.exceptions import ConfigurationError

from .base import Driver, ResultStream, Session
from .odbc import OdbcDriver
from .sqlite import SqliteDriver


def get_driver(name: str, config: AppConfig) -> Driver:
    """Return the driver registered under ``name``."""
    lowered = name.lower()
    if lowered == SqliteDriver.name:
        return SqliteDriver()
    if lowered == OdbcDriver.name:
        return OdbcDriver(config.odbc)
    raise ConfigurationError(f"Unsupported driver '{name}'.")


__all__ = [
    "Driver",
    "OdbcDriver",
    "ResultStream",
    "Session",
    "SqliteDriver",
    "get_driver",
]
