"""SQLite driver backed by the standard library ``sqlite3`` module."""

from __future__ import annotations

import sqlite3
import time
from collections import deque
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from multidb_cli.shared import paths
from multidb_cli.shared.exceptions import CommandExecutionError, ConnectionFailure

from ..types import Target
from .base import ColumnDescription, Driver, ResultStream, Session

MEMORY_DATABASE = ":memory:"
# Number of SQLite VM instructions between deadline checks.
PROGRESS_STEPS = 1000
# sqlite3 treats a busy timeout of 0 as "fail at once"; 0 means "no limit" here.
UNLIMITED_BUSY_TIMEOUT = 86400.0


def split_statements(script: str) -> list[str]:
    """Split a batch into individual statements using SQLite's own tokenizer."""
    statements: list[str] = []
    buffer: list[str] = []
    for char in script:
        buffer.append(char)
        if char != ";":
            continue
        candidate = "".join(buffer)
        if sqlite3.complete_statement(candidate):
            statements.append(candidate.strip())
            buffer = []
    remainder = "".join(buffer).strip()
    if remainder:
        statements.append(remainder)
    return [statement for statement in statements if statement.strip("; \t\r\n")]


class SqliteResultStream(ResultStream):
    """Runs a batch one statement per result-set step."""

    def __init__(self, session: SqliteSession, statements: Sequence[str]) -> None:
        self._session = session
        self._cursor = session.connection.cursor()
        self._pending = deque(statements)
        self._records_affected = -1
        self._active = False
        try:
            self._advance()
        except Exception:
            self._cursor.close()
            raise

    @property
    def description(self) -> Sequence[ColumnDescription] | None:
        if not self._active:
            return None
        return self._cursor.description

    @property
    def records_affected(self) -> int:
        return self._records_affected

    def fetchmany(self, size: int) -> list[Sequence[Any]]:
        if not self._active:
            return []
        with self._session.translate_errors():
            return self._cursor.fetchmany(size)

    def nextset(self) -> bool:
        return self._advance()

    def close(self) -> None:
        self._active = False
        self._pending.clear()
        self._cursor.close()
        self._session.clear_deadline()

    def _advance(self) -> bool:
        if not self._pending:
            self._active = False
            return False
        statement = self._pending.popleft()
        with self._session.translate_errors():
            self._cursor.execute(statement)
        self._active = True
        if self._cursor.description is None and self._cursor.rowcount >= 0:
            self._records_affected = max(self._records_affected, 0) + self._cursor.rowcount
        return True


class SqliteSession(Session):
    def __init__(self, target: Target, connection: sqlite3.Connection) -> None:
        super().__init__(target)
        self.connection = connection
        self._deadline: float | None = None
        self._timeout: float = 0

    def execute(self, query: str, *, timeout: float) -> ResultStream:
        statements = split_statements(query)
        self._timeout = timeout
        if timeout > 0:
            self._deadline = time.monotonic() + timeout
            self.connection.set_progress_handler(self._deadline_exceeded, PROGRESS_STEPS)
        try:
            return SqliteResultStream(self, statements)
        except CommandExecutionError:
            self.clear_deadline()
            raise

    def clear_deadline(self) -> None:
        self._deadline = None
        self.connection.set_progress_handler(None, 0)

    def close(self) -> None:
        self.connection.close()

    @contextmanager
    def translate_errors(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            if self._deadline is not None and time.monotonic() >= self._deadline:
                raise CommandExecutionError(
                    f"Command timed out after {self._timeout:g} seconds."
                ) from exc
            raise CommandExecutionError(f"SQLite error: {exc}") from exc

    def _deadline_exceeded(self) -> int:
        # A non-zero return makes SQLite abort the running statement.
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return 1
        return 0


class SqliteDriver(Driver):
    """Targets are ``<directory>/<database file>`` pairs on the local disk."""

    name = "sqlite"

    def database_path(self, target: Target) -> Path:
        return paths.resolve_path(target.server) / target.database

    def open(self, target: Target, *, timeout: float) -> Session:
        busy_timeout = timeout if timeout > 0 else UNLIMITED_BUSY_TIMEOUT
        try:
            if target.database == MEMORY_DATABASE:
                connection = sqlite3.connect(
                    MEMORY_DATABASE,
                    timeout=busy_timeout,
                    isolation_level=None,
                    check_same_thread=False,
                )
            else:
                uri = f"{self.database_path(target).resolve().as_uri()}?mode=rw"
                connection = sqlite3.connect(
                    uri,
                    uri=True,
                    timeout=busy_timeout,
                    isolation_level=None,
                    check_same_thread=False,
                )
        except sqlite3.Error as exc:
            raise ConnectionFailure(f"Unable to open SQLite database {target}: {exc}") from exc
        return SqliteSession(target, connection)
