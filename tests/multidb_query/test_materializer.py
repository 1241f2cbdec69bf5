from __future__ import annotations

import datetime as dt

import pytest

from multidb_cli.multidb_query.materializer import FETCH_SIZE, ResultMaterializer
from multidb_cli.multidb_query.messages import INFORMATION_MESSAGE_COLUMNS, InfoMessage
from multidb_cli.multidb_query.types import (
    INFORMATION_MESSAGES_ID,
    QueryParameters,
    SemanticType,
    Target,
)
from multidb_cli.shared.exceptions import CommandExecutionError

from tests.multidb_query.fakes import FakeResultSet, FakeSession, StubLogger

TARGET = Target("sql01", "sales")


def _params(**overrides) -> QueryParameters:
    values = {"query": "SELECT * FROM orders", "command_timeout": 45}
    values.update(overrides)
    return QueryParameters(**values)


def _orders_sets() -> list[FakeResultSet]:
    return [
        FakeResultSet(
            columns=[("id", int), ("customer", str), ("placed", dt.datetime)],
            rows=[(i, f"customer-{i}", dt.datetime(2024, 1, i + 1)) for i in range(5)],
        ),
        FakeResultSet(columns=[("total", float)], rows=[]),
    ]


def test_execute_builds_one_table_per_result_set() -> None:
    session = FakeSession(TARGET, _orders_sets())
    logger = StubLogger()

    result = ResultMaterializer(_params(), logger=logger).execute(session, TARGET)

    assert result.target == TARGET
    assert len(result.tables) == 2
    first, second = result.tables
    assert len(first.rows) == 5
    assert len(second.rows) == 0
    assert first.column_names == ("id", "customer", "placed")
    assert [column.data_type for column in first.columns] == [
        SemanticType.INTEGER,
        SemanticType.TEXT,
        SemanticType.DATETIME,
    ]
    assert first.rows[2].values == (2, "customer-2", dt.datetime(2024, 1, 3))
    assert first.id is None
    assert session.executed == [("SELECT * FROM orders", 45)]
    assert session.streams[0].closed is True
    assert "[sql01][sales] Rows in table : 5" in logger.lines("info")


def test_execute_reads_rows_across_fetch_batches() -> None:
    rows = [(index,) for index in range(FETCH_SIZE * 2 + 3)]
    session = FakeSession(TARGET, [FakeResultSet(columns=[("n", int)], rows=rows)])

    result = ResultMaterializer(_params(), logger=StubLogger()).execute(session, TARGET)

    assert [row.values for row in result.tables[0].rows] == rows


def test_discard_mode_keeps_counts_only() -> None:
    full = ResultMaterializer(_params(), logger=StubLogger()).execute(
        FakeSession(TARGET, _orders_sets()), TARGET
    )
    logger = StubLogger()
    discarded = ResultMaterializer(_params(discard_results=True), logger=logger).execute(
        FakeSession(TARGET, _orders_sets()), TARGET
    )

    assert len(discarded.tables) == len(full.tables)
    for full_table, summary in zip(full.tables, discarded.tables):
        assert summary.column_names == ("FieldCount", "RowCount")
        assert [column.data_type for column in summary.columns] == [SemanticType.INTEGER] * 2
        assert summary.rows[0].values == (len(full_table.columns), len(full_table.rows))
    for summary in discarded.tables:
        assert len(summary.rows) == 1
        assert all(isinstance(cell, int) for cell in summary.rows[0])
    assert "[sql01][sales] Rows in table : 5 (discarded)" in logger.lines("info")


def test_non_query_statements_produce_no_table_and_report_rows_affected() -> None:
    session = FakeSession(
        TARGET,
        [
            FakeResultSet(columns=None, rowcount=3),
            FakeResultSet(columns=[("remaining", int)], rows=[(7,)]),
            FakeResultSet(columns=None, rowcount=2),
        ],
    )
    logger = StubLogger()

    result = ResultMaterializer(_params(), logger=logger).execute(session, TARGET)

    assert len(result.tables) == 1
    assert result.tables[0].rows[0].values == (7,)
    assert "[sql01][sales] Records affected by query : 5" in logger.lines("info")


def test_pure_side_effect_command_returns_no_tables() -> None:
    session = FakeSession(TARGET, [FakeResultSet(columns=None, rowcount=0)])

    result = ResultMaterializer(_params(), logger=StubLogger()).execute(session, TARGET)

    assert result.tables == ()


def test_row_returning_query_does_not_log_rows_affected() -> None:
    logger = StubLogger()
    ResultMaterializer(_params(), logger=logger).execute(FakeSession(TARGET, _orders_sets()), TARGET)

    assert not any("Records affected" in line for line in logger.lines("info"))


def test_information_messages_table_is_appended_last() -> None:
    messages = [
        InfoMessage(message="starting", number=50000, state="01000", severity_class=0, line_number=1),
        InfoMessage(message="half way", number=50000, state="01000"),
        InfoMessage(message="done", procedure="usp_report", line_number=12),
    ]
    sets = _orders_sets()
    sets[0].messages = messages[:2]
    sets[1].messages = messages[2:]
    session = FakeSession(TARGET, sets)

    result = ResultMaterializer(_params(show_information_messages=True), logger=StubLogger()).execute(
        session, TARGET
    )

    assert len(result.tables) == 3
    info = result.tables[-1]
    assert info.id == INFORMATION_MESSAGES_ID
    assert info.column_names == INFORMATION_MESSAGE_COLUMNS
    assert all(column.data_type is SemanticType.TEXT for column in info.columns)
    assert len(info.rows) == 3
    assert info.rows[0].values == ("0", "50000", "01000", None, "1", "starting")
    assert [row.values[-1] for row in info.rows] == ["starting", "half way", "done"]
    assert session.listener_count == 0


def test_information_messages_table_exists_even_without_messages() -> None:
    result = ResultMaterializer(_params(show_information_messages=True), logger=StubLogger()).execute(
        FakeSession(TARGET, _orders_sets()), TARGET
    )

    assert result.tables[-1].id == INFORMATION_MESSAGES_ID
    assert result.tables[-1].rows == ()


def test_no_capture_installed_when_messages_disabled() -> None:
    sets = _orders_sets()
    sets[0].messages = [InfoMessage(message="ignored")]
    session = FakeSession(TARGET, sets)
    seen: list[int] = []
    original_add = session.add_message_listener
    session.add_message_listener = lambda listener: (seen.append(1), original_add(listener))  # type: ignore[method-assign]

    result = ResultMaterializer(_params(), logger=StubLogger()).execute(session, TARGET)

    assert seen == []
    assert all(table.id != INFORMATION_MESSAGES_ID for table in result.tables)


def test_capture_is_removed_when_command_fails() -> None:
    session = FakeSession(TARGET, [], execute_error=CommandExecutionError("Invalid object name 'x'."))

    with pytest.raises(CommandExecutionError):
        ResultMaterializer(_params(show_information_messages=True), logger=StubLogger()).execute(
            session, TARGET
        )

    assert session.listener_count == 0


def test_stream_is_closed_when_fetch_fails() -> None:
    failing = FakeResultSet(columns=[("id", int)], rows=[(1,)], fetch_error=CommandExecutionError("timeout"))
    session = FakeSession(TARGET, [failing])

    with pytest.raises(CommandExecutionError):
        ResultMaterializer(_params(show_information_messages=True), logger=StubLogger()).execute(
            session, TARGET
        )

    assert session.streams[0].closed is True
    assert session.listener_count == 0


def test_column_type_inferred_from_values_when_driver_reports_none() -> None:
    session = FakeSession(
        TARGET,
        [
            FakeResultSet(
                columns=[("flag", None), ("amount", None), ("blob", None), ("empty", None)],
                rows=[(None, 1.5, b"\x00", None), (True, 2.5, b"\x01", None)],
            ),
            FakeResultSet(columns=[("nothing", None)], rows=[]),
        ],
    )

    result = ResultMaterializer(_params(), logger=StubLogger()).execute(session, TARGET)

    assert [column.data_type for column in result.tables[0].columns] == [
        SemanticType.BOOLEAN,
        SemanticType.FLOAT,
        SemanticType.BINARY,
        SemanticType.NULL,
    ]
    assert result.tables[1].columns[0].data_type is SemanticType.OTHER
