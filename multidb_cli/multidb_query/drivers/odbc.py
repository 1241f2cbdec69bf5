"""ODBC driver (SQL Server defaults) backed by ``pyodbc``."""

from __future__ import annotations

import importlib
import math
import os
import re
import socket
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from multidb_cli.shared.config import OdbcSettings
from multidb_cli.shared.exceptions import CommandExecutionError, ConfigurationError, ConnectionFailure

from ..messages import InfoMessage
from ..types import Target
from .base import ColumnDescription, Driver, ResultStream, Session

# pyodbc reports messages as ('[01000] (50000)', '[Microsoft][ODBC Driver 18 for SQL Server][SQL Server]text').
_MESSAGE_CODE = re.compile(r"\[(?P<state>[0-9A-Za-z]{5})\]\s*\((?P<number>-?\d+)\)")
_VENDOR_PREFIX = re.compile(r"^(?:\[[^\]]*\])+\s*")


def parse_odbc_message(code: str, text: str) -> InfoMessage:
    """Turn one ``cursor.messages`` entry into an InfoMessage."""
    match = _MESSAGE_CODE.search(code or "")
    state = match.group("state") if match else None
    number = int(match.group("number")) if match else None
    message = _VENDOR_PREFIX.sub("", text or "")
    return InfoMessage(message=message, number=number, state=state)


def build_connection_string(
    target: Target,
    settings: OdbcSettings,
    *,
    password: str | None = None,
    workstation: str | None = None,
) -> str:
    """Assemble the ODBC connection string for a target."""
    attributes: dict[str, str] = {
        "DRIVER": settings.driver,
        "SERVER": target.server,
        "DATABASE": target.database,
        "APP": settings.application_name,
        "WSID": workstation or socket.gethostname(),
        "Encrypt": "yes" if settings.encrypt else "no",
    }
    if settings.trust_server_certificate:
        attributes["TrustServerCertificate"] = "yes"
    if settings.username and not settings.trusted_connection:
        attributes["UID"] = settings.username
        attributes["PWD"] = password or ""
    else:
        attributes["Trusted_Connection"] = "yes"
    return ";".join(f"{key}={_quote(value)}" for key, value in attributes.items())


def _quote(value: str) -> str:
    if value != value.strip() or any(char in value for char in ";{}="):
        return "{" + value.replace("}", "}}") + "}"
    return value


def whole_seconds(timeout: float) -> int:
    """pyodbc timeouts are whole seconds and 0 disables them; never round down to 0."""
    if timeout <= 0:
        return 0
    return math.ceil(timeout)


def _load_pyodbc() -> Any:
    try:
        return importlib.import_module("pyodbc")
    except ImportError as exc:
        raise ConfigurationError(
            "The odbc driver requires pyodbc; install it with `pip install multidb-cli[odbc]`."
        ) from exc


class OdbcResultStream(ResultStream):
    def __init__(self, session: OdbcSession, cursor: Any, query: str) -> None:
        self._session = session
        self._cursor = cursor
        self._records_affected = -1
        try:
            with session.translate_errors():
                cursor.execute(query)
            self._after_step()
        except Exception:
            cursor.close()
            raise

    @property
    def description(self) -> Sequence[ColumnDescription] | None:
        return self._cursor.description

    @property
    def records_affected(self) -> int:
        return self._records_affected

    def fetchmany(self, size: int) -> list[Sequence[Any]]:
        with self._session.translate_errors():
            return self._cursor.fetchmany(size)

    def nextset(self) -> bool:
        with self._session.translate_errors():
            more = bool(self._cursor.nextset())
        if more:
            self._after_step()
        return more

    def close(self) -> None:
        self._cursor.close()

    def _after_step(self) -> None:
        self._session.dispatch_messages(self._cursor)
        if self._cursor.description is None and self._cursor.rowcount >= 0:
            self._records_affected = max(self._records_affected, 0) + self._cursor.rowcount


class OdbcSession(Session):
    def __init__(
        self,
        target: Target,
        connection: Any,
        *,
        error_types: tuple[type[BaseException], ...],
    ) -> None:
        super().__init__(target)
        self.connection = connection
        self._error_types = error_types

    def execute(self, query: str, *, timeout: float) -> ResultStream:
        with self.translate_errors():
            self.connection.timeout = whole_seconds(timeout)
            cursor = self.connection.cursor()
        return OdbcResultStream(self, cursor, query)

    def dispatch_messages(self, cursor: Any) -> None:
        if not self.has_message_listeners:
            return
        entries = getattr(cursor, "messages", None) or ()
        self._emit(parse_odbc_message(str(code), str(text)) for code, text in entries)

    def close(self) -> None:
        self.connection.close()

    @contextmanager
    def translate_errors(self) -> Iterator[None]:
        try:
            yield
        except self._error_types as exc:
            raise CommandExecutionError(f"ODBC error: {exc}") from exc


class OdbcDriver(Driver):
    name = "odbc"

    def __init__(self, settings: OdbcSettings, env: Mapping[str, str] | None = None) -> None:
        self.settings = settings
        self._env = env if env is not None else os.environ
        # Loaded up front so a missing pyodbc fails the run before any target starts.
        self._pyodbc = _load_pyodbc()

    def open(self, target: Target, *, timeout: float) -> Session:
        pyodbc = self._pyodbc
        # Pooling must be off before the first connect so each target gets a fresh connection.
        pyodbc.pooling = False
        connection_string = build_connection_string(
            target,
            self.settings,
            password=self._env.get(self.settings.password_env),
        )
        try:
            connection = pyodbc.connect(connection_string, timeout=whole_seconds(timeout), autocommit=True)
        except pyodbc.Error as exc:
            raise ConnectionFailure(f"Unable to connect to {target}: {exc}") from exc
        return OdbcSession(target, connection, error_types=(pyodbc.Error,))
