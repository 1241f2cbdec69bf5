from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from multidb_cli.multidb_query.drivers.sqlite import SqliteDriver, SqliteSession, split_statements
from multidb_cli.multidb_query.materializer import ResultMaterializer
from multidb_cli.multidb_query.types import QueryParameters, SemanticType, Target
from multidb_cli.shared.exceptions import CommandExecutionError, ConnectionFailure

from tests.multidb_query.fakes import StubLogger


def _create_database(directory: Path, name: str = "shop.db") -> Target:
    directory.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(directory / name)
    with connection:
        connection.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT, price REAL, image BLOB)")
        connection.executemany(
            "INSERT INTO items (name, price, image) VALUES (?, ?, ?)",
            [("apple", 1.25, b"\x01"), ("pear", 2.5, None), ("plum", None, None)],
        )
    connection.close()
    return Target(str(directory), name)


def test_split_statements_respects_quotes_and_comments() -> None:
    script = "SELECT 'a;b' AS x; -- trailing; comment\nSELECT 2;;\n  UPDATE t SET v = 1"

    assert split_statements(script) == [
        "SELECT 'a;b' AS x;",
        "-- trailing; comment\nSELECT 2;",
        "UPDATE t SET v = 1",
    ]


def test_split_statements_keeps_trigger_bodies_together() -> None:
    script = (
        "CREATE TRIGGER t AFTER INSERT ON items BEGIN UPDATE items SET price = 0; END;"
        " SELECT 1;"
    )

    statements = split_statements(script)

    assert len(statements) == 2
    assert statements[0].endswith("END;")


def test_open_missing_database_is_connection_failure(tmp_path: Path) -> None:
    with pytest.raises(ConnectionFailure):
        SqliteDriver().open(Target(str(tmp_path), "missing.db"), timeout=1)
    assert not (tmp_path / "missing.db").exists()


def test_batch_yields_each_select_as_result_set(tmp_path: Path) -> None:
    target = _create_database(tmp_path / "dbs")
    params = QueryParameters(
        query="SELECT id, name, price, image FROM items ORDER BY id; SELECT name FROM items WHERE 0;",
        command_timeout=5,
    )

    with SqliteDriver().open(target, timeout=1) as session:
        result = ResultMaterializer(params, logger=StubLogger()).execute(session, target)

    first, second = result.tables
    assert [row.values for row in first.rows] == [
        (1, "apple", 1.25, b"\x01"),
        (2, "pear", 2.5, None),
        (3, "plum", None, None),
    ]
    assert [column.data_type for column in first.columns] == [
        SemanticType.INTEGER,
        SemanticType.TEXT,
        SemanticType.FLOAT,
        SemanticType.BINARY,
    ]
    assert second.rows == ()
    assert second.columns[0].name == "name"


def test_dml_statements_report_records_affected(tmp_path: Path) -> None:
    target = _create_database(tmp_path)
    logger = StubLogger()
    params = QueryParameters(
        query="UPDATE items SET price = 9 WHERE price IS NOT NULL; DELETE FROM items WHERE name = 'plum';"
        " SELECT COUNT(*) AS remaining FROM items;",
    )

    with SqliteDriver().open(target, timeout=1) as session:
        result = ResultMaterializer(params, logger=logger).execute(session, target)

    assert len(result.tables) == 1
    assert result.tables[0].rows[0].values == (2,)
    assert f"{target.log_prefix} Records affected by query : 3" in logger.lines("info")

    # Changes are committed, not rolled back with the connection.
    check = sqlite3.connect(Path(target.server) / target.database)
    assert check.execute("SELECT COUNT(*) FROM items").fetchone()[0] == 2
    check.close()


def test_syntax_error_is_command_failure(tmp_path: Path) -> None:
    target = _create_database(tmp_path)

    with SqliteDriver().open(target, timeout=1) as session:
        with pytest.raises(CommandExecutionError, match="SQLite error"):
            session.execute("SELEC * FORM items", timeout=5)


def test_error_in_later_statement_surfaces_on_nextset(tmp_path: Path) -> None:
    target = _create_database(tmp_path)

    with SqliteDriver().open(target, timeout=1) as session:
        stream = session.execute("SELECT 1; SELECT * FROM nope;", timeout=5)
        assert stream.fetchmany(10) == [(1,)]
        with pytest.raises(CommandExecutionError):
            stream.nextset()
        stream.close()


def test_command_timeout_interrupts_long_statement() -> None:
    target = Target(".", ":memory:")
    endless = (
        "WITH RECURSIVE counter(n) AS (SELECT 1 UNION ALL SELECT n + 1 FROM counter) "
        "SELECT COUNT(*) FROM counter"
    )

    with SqliteDriver().open(target, timeout=1) as session:
        with pytest.raises(CommandExecutionError, match="timed out"):
            stream = session.execute(endless, timeout=0.2)
            stream.fetchmany(1)


def test_memory_database_and_empty_batch() -> None:
    with SqliteDriver().open(Target(".", ":memory:"), timeout=1) as session:
        stream = session.execute("  ;  ", timeout=0)
        assert stream.description is None
        assert stream.nextset() is False
        assert stream.records_affected == -1
        stream.close()


class CursorRecordingConnection:
    """Wraps a sqlite3 connection and keeps every cursor it hands out."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self.cursors: list[sqlite3.Cursor] = []

    def cursor(self) -> sqlite3.Cursor:
        cursor = self._connection.cursor()
        self.cursors.append(cursor)
        return cursor

    def set_progress_handler(self, handler, steps: int) -> None:
        self._connection.set_progress_handler(handler, steps)

    def close(self) -> None:
        self._connection.close()


def test_failed_first_statement_closes_cursor() -> None:
    connection = CursorRecordingConnection(sqlite3.connect(":memory:", isolation_level=None))
    session = SqliteSession(Target(".", ":memory:"), connection)  # type: ignore[arg-type]

    with session:
        with pytest.raises(CommandExecutionError):
            session.execute("SELECT * FROM missing_table", timeout=5)

        (cursor,) = connection.cursors
        with pytest.raises(sqlite3.ProgrammingError):
            cursor.execute("SELECT 1")
