"""Capture of informational messages emitted while a command runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .types import INFORMATION_MESSAGES_ID, SemanticType, Table, TableColumn, TableRow

if TYPE_CHECKING:
    from .drivers.base import Session

INFORMATION_MESSAGE_COLUMNS = ("Class", "Number", "State", "Procedure", "LineNumber", "Message")


@dataclass(frozen=True, slots=True)
class InfoMessage:
    """A print/notice style message reported by the server."""

    message: str
    severity_class: int | None = None
    number: int | None = None
    state: str | None = None
    procedure: str | None = None
    line_number: int | None = None

    def as_row(self) -> TableRow:
        values = (
            self.severity_class,
            self.number,
            self.state,
            self.procedure,
            self.line_number,
            self.message,
        )
        return TableRow(tuple(_as_text(value) for value in values))


class MessageCapture:
    """Collects a session's messages for the duration of one command.

    Use as a context manager: the listener is registered on enter and removed
    on exit, whether or not the command succeeded.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._rows: list[TableRow] = []

    def __enter__(self) -> MessageCapture:
        self._session.add_message_listener(self._on_message)
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._session.remove_message_listener(self._on_message)

    @property
    def rows(self) -> tuple[TableRow, ...]:
        return tuple(self._rows)

    def _on_message(self, message: InfoMessage) -> None:
        self._rows.append(message.as_row())

    def to_table(self) -> Table:
        columns = tuple(TableColumn(name, SemanticType.TEXT) for name in INFORMATION_MESSAGE_COLUMNS)
        return Table(columns=columns, rows=tuple(self._rows), id=INFORMATION_MESSAGES_ID)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
