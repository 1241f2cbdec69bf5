"""Turns the result sets of one command into Table objects."""

from __future__ import annotations

from contextlib import closing, nullcontext
from typing import Any

from multidb_cli.shared.logging import Logger

from .drivers.base import ResultStream, Session
from .messages import MessageCapture
from .types import (
    ExecutionResult,
    QueryParameters,
    SemanticType,
    Table,
    TableColumn,
    TableRow,
    Target,
)

FETCH_SIZE = 500

DISCARD_COLUMNS = (
    TableColumn("FieldCount", SemanticType.INTEGER),
    TableColumn("RowCount", SemanticType.INTEGER),
)


class ResultMaterializer:
    """Executes the configured command on an open session.

    Every result set becomes exactly one Table, in the order the source
    produced them. With ``show_information_messages`` a synthetic table of
    captured messages is appended last.
    """

    def __init__(self, params: QueryParameters, *, logger: Logger) -> None:
        self.params = params
        self.logger = logger

    def execute(self, session: Session, target: Target) -> ExecutionResult:
        capture = MessageCapture(session) if self.params.show_information_messages else None
        with capture if capture is not None else nullcontext():
            stream = session.execute(self.params.query, timeout=self.params.command_timeout)
            with closing(stream):
                tables = self._read_result_sets(stream, target)
                records_affected = stream.records_affected

        # -1 means the command only returned rows.
        if records_affected != -1:
            self.logger.info(f"{target.log_prefix} Records affected by query : {records_affected}")

        if capture is not None:
            tables.append(capture.to_table())
        return ExecutionResult(target=target, tables=tuple(tables))

    def _read_result_sets(self, stream: ResultStream, target: Target) -> list[Table]:
        tables: list[Table] = []
        while True:
            description = stream.description
            if description is not None:
                if self.params.discard_results:
                    table = self._read_and_discard(stream, description, target)
                else:
                    table = self._read_table(stream, description, target)
                tables.append(table)
            if not stream.nextset():
                return tables

    def _read_table(self, stream: ResultStream, description: Any, target: Target) -> Table:
        rows: list[TableRow] = []
        for batch in _batches(stream):
            rows.extend(TableRow(tuple(row)) for row in batch)

        columns = tuple(
            TableColumn(
                name=str(entry[0]),
                data_type=SemanticType.resolve(entry[1], (row.values[index] for row in rows)),
            )
            for index, entry in enumerate(description)
        )
        self.logger.info(f"{target.log_prefix} Rows in table : {len(rows)}")
        return Table(columns=columns, rows=tuple(rows))

    def _read_and_discard(self, stream: ResultStream, description: Any, target: Target) -> Table:
        field_count = len(description)
        row_count = 0
        for batch in _batches(stream):
            row_count += len(batch)

        self.logger.info(f"{target.log_prefix} Rows in table : {row_count} (discarded)")
        return Table(columns=DISCARD_COLUMNS, rows=(TableRow((field_count, row_count)),))


def _batches(stream: ResultStream):
    while True:
        batch = stream.fetchmany(FETCH_SIZE)
        if not batch:
            return
        yield batch
