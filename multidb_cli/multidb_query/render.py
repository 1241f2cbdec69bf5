"""Output rendering helpers for multidb-query."""

from __future__ import annotations

import datetime as dt
import json
import sys
from decimal import Decimal
from typing import IO, Sequence
from uuid import UUID

from rich import box
from rich.console import Console
from rich.table import Table as RichTable
from rich.text import Text

from multidb_cli.shared.logging import Logger

from .types import ExecutionResult, Table, Target

NULL_TEXT = "NULL"
INFO_MESSAGES_HEADING = "Information messages"


def render_results(
    results: Sequence[ExecutionResult],
    *,
    output_format: str,
    logger: Logger,
    show_nulls: bool = False,
    stream=None,
) -> None:
    """Render each target's tables; results are shown per target, never merged."""
    output_stream = stream or sys.stdout
    fmt = (output_format or "table").lower()

    if fmt == "table":
        _render_tables(results, logger=logger, show_nulls=show_nulls, stream=output_stream)
    elif fmt == "json":
        _render_json(results, stream=output_stream)
    else:  # pragma: no cover - Click validation should prevent this
        raise ValueError(f"Unsupported output format '{output_format}'.")


def render_targets(targets: Sequence[Target], *, stream=None) -> None:
    output_stream = stream or sys.stdout
    console = Console(file=output_stream, highlight=False, force_terminal=False)
    table = RichTable(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Server", style="bold")
    table.add_column("Database")
    for target in targets:
        table.add_row(Text(target.server), Text(target.database))
    console.print(table)


def results_as_payload(results: Sequence[ExecutionResult]) -> list[dict[str, object]]:
    return [
        {
            "server": result.target.server,
            "database": result.target.database,
            "tables": [_table_payload(table) for table in result.tables],
        }
        for result in results
    ]


def _render_tables(
    results: Sequence[ExecutionResult],
    *,
    logger: Logger,
    show_nulls: bool,
    stream: IO[str],
) -> None:
    console = Console(file=stream, highlight=False, force_terminal=False)
    if not results:
        logger.warning("No target returned results.")
        return

    for result in results:
        console.print(Text(f"{result.target.server} / {result.target.database}", style="bold"))
        if not result.tables:
            console.print("(no result sets)")
        for table in result.tables:
            if table.is_information_messages:
                console.print(Text(INFO_MESSAGES_HEADING, style="dim"))
            rich_table = RichTable(box=box.SIMPLE_HEAVY, show_header=bool(table.columns), header_style="bold")
            for column in table.columns:
                rich_table.add_column(Text(column.name or ""))
            for row in table.rows:
                rich_table.add_row(*[Text(_stringify(cell, show_nulls)) for cell in row])
            console.print(rich_table)


def _render_json(results: Sequence[ExecutionResult], *, stream: IO[str]) -> None:
    json.dump(results_as_payload(results), stream, indent=2)
    stream.write("\n")


def _table_payload(table: Table) -> dict[str, object]:
    return {
        "id": table.id,
        "columns": [{"name": column.name, "type": column.data_type.value} for column in table.columns],
        "rows": [[_convert_json_value(value) for value in row] for row in table.rows],
    }


def _stringify(value: object, show_nulls: bool) -> str:
    if value is None:
        return NULL_TEXT if show_nulls else ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    return str(value)


def _convert_json_value(value: object) -> object:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    return value
