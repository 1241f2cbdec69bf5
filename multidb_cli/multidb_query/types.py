"""Data structures shared across multidb-query modules."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Iterator

from multidb_cli.shared.config import ExecutionSettings
from multidb_cli.shared.exceptions import ConfigurationError

INFORMATION_MESSAGES_ID = "info-messages"


@dataclass(frozen=True, slots=True)
class Target:
    """One database to query: a server and a database/catalog on it."""

    server: str
    database: str

    @property
    def log_prefix(self) -> str:
        return f"[{self.server}][{self.database}]"

    def __str__(self) -> str:
        return f"{self.server}/{self.database}"


class SemanticType(str, Enum):
    """Closed set of column types exposed to result consumers."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    DATETIME = "datetime"
    BINARY = "binary"
    NULL = "null"
    OTHER = "other"

    @classmethod
    def from_python_type(cls, python_type: type) -> SemanticType:
        """Map a driver-reported Python type onto a semantic type."""
        # bool subclasses int, so it must be checked first.
        if issubclass(python_type, bool):
            return cls.BOOLEAN
        if issubclass(python_type, int):
            return cls.INTEGER
        if issubclass(python_type, (float, Decimal)):
            return cls.FLOAT
        if issubclass(python_type, str):
            return cls.TEXT
        if issubclass(python_type, (dt.datetime, dt.date, dt.time)):
            return cls.DATETIME
        if issubclass(python_type, (bytes, bytearray, memoryview)):
            return cls.BINARY
        if issubclass(python_type, type(None)):
            return cls.NULL
        return cls.OTHER

    @classmethod
    def resolve(cls, type_code: Any, values: Iterable[Any] = ()) -> SemanticType:
        """Pick a column type from cursor metadata, falling back to the cells.

        Drivers such as sqlite3 report no type in ``cursor.description``; the
        first non-null cell then decides. A column made only of nulls is
        ``NULL``; with no rows and no metadata the type is ``OTHER``.
        """
        if isinstance(type_code, type):
            return cls.from_python_type(type_code)
        saw_rows = False
        for value in values:
            saw_rows = True
            if value is not None:
                return cls.from_python_type(type(value))
        return cls.NULL if saw_rows else cls.OTHER


@dataclass(frozen=True, slots=True)
class TableColumn:
    name: str
    data_type: SemanticType


@dataclass(frozen=True, slots=True)
class TableRow:
    """Positional cell values, aligned with the owning table's columns."""

    values: tuple[Any, ...]

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __getitem__(self, index: int) -> Any:
        return self.values[index]


@dataclass(frozen=True, slots=True)
class Table:
    """One result set: ordered columns and rows in source order."""

    columns: tuple[TableColumn, ...]
    rows: tuple[TableRow, ...] = ()
    id: str | None = None

    def __post_init__(self) -> None:
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f"Row {index} has {len(row)} cells but the table defines {width} columns."
                )

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def is_information_messages(self) -> bool:
        return self.id == INFORMATION_MESSAGES_ID


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Tables produced by one target that completed without a fatal failure."""

    target: Target
    tables: tuple[Table, ...] = ()


class FailureKind(str, Enum):
    CONNECTION = "connection"
    COMMAND = "command"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True, slots=True)
class ErrorDetail:
    kind: FailureKind
    message: str
    exception_type: str


@dataclass(frozen=True, slots=True)
class TargetOutcome:
    """Result of processing a single target: either a result or an error."""

    target: Target
    result: ExecutionResult | None = None
    error: ErrorDetail | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @classmethod
    def success(cls, result: ExecutionResult) -> TargetOutcome:
        return cls(target=result.target, result=result)

    @classmethod
    def failure(cls, target: Target, kind: FailureKind, exc: BaseException) -> TargetOutcome:
        detail = ErrorDetail(kind=kind, message=str(exc) or type(exc).__name__, exception_type=type(exc).__name__)
        return cls(target=target, error=detail)


@dataclass(frozen=True, slots=True)
class QueryParameters:
    """Read-only settings for one run, shared by every target."""

    query: str
    connect_timeout: float = 15
    command_timeout: float = 30
    sequential: bool = False
    parallelism: int = 8
    discard_results: bool = False
    show_information_messages: bool = False

    def __post_init__(self) -> None:
        if self.parallelism < 1:
            raise ConfigurationError(f"Parallelism must be at least 1 (got {self.parallelism}).")
        if not self.query.strip():
            raise ConfigurationError("Query text must not be empty.")

    @classmethod
    def from_settings(cls, query: str, settings: ExecutionSettings) -> QueryParameters:
        return cls(
            query=query,
            connect_timeout=settings.connect_timeout,
            command_timeout=settings.command_timeout,
            sequential=settings.sequential,
            parallelism=settings.parallelism,
            discard_results=settings.discard_results,
            show_information_messages=settings.show_information_messages,
        )
