"""Driver abstractions shared by every database backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from typing import Any, ClassVar

from ..messages import InfoMessage
from ..types import Target

MessageListener = Callable[[InfoMessage], None]

# DB-API 2.0 description entry: (name, type_code, display_size, internal_size,
# precision, scale, null_ok).
ColumnDescription = Sequence[Any]


class ResultStream(ABC):
    """Cursor over the result sets produced by one command.

    Mirrors the DB-API cursor surface: ``description`` is ``None`` while the
    current statement returns no rows.
    """

    @property
    @abstractmethod
    def description(self) -> Sequence[ColumnDescription] | None: ...

    @property
    @abstractmethod
    def records_affected(self) -> int:
        """Rows changed by non-query statements so far, or -1 if none ran."""

    @abstractmethod
    def fetchmany(self, size: int) -> list[Sequence[Any]]: ...

    @abstractmethod
    def nextset(self) -> bool:
        """Advance to the next result set; False once the command is exhausted."""

    @abstractmethod
    def close(self) -> None: ...


class Session(ABC):
    """One open connection, owned by a single worker for one target."""

    def __init__(self, target: Target) -> None:
        self.target = target
        self._listeners: list[MessageListener] = []

    def add_message_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def has_message_listeners(self) -> bool:
        return bool(self._listeners)

    def _emit(self, messages: Iterable[InfoMessage]) -> None:
        for message in messages:
            for listener in list(self._listeners):
                listener(message)

    @abstractmethod
    def execute(self, query: str, *, timeout: float) -> ResultStream:
        """Run ``query``; ``timeout`` is in seconds and 0 disables it."""

    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Driver(ABC):
    """Factory for sessions against one kind of database."""

    name: ClassVar[str]

    @abstractmethod
    def open(self, target: Target, *, timeout: float) -> Session:
        """Open a fresh, unpooled connection; raises ConnectionFailure."""
