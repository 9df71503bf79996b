import asyncio
import sqlite3

import pytest

from dbsync.core.errors import DatabaseConnectionError, SqlExecutionError, TableNotFoundError
from dbsync.models.credentials import SqliteCredentials
from dbsync.models.schema import ColumnType
from dbsync.sync.connector import ManifestClassifier, open_connector
from dbsync.sync.sqlite_connector import SQLiteConnector, normalize_sqlite_type


def connector_for(path):
    return SQLiteConnector(SqliteCredentials(file_path=str(path)))


async def collect_batches(connector, table_name, batch_size):
    return [batch async for batch in connector.read_table_rows(table_name, batch_size)]


def test_open_connector_picks_sqlite(sqlite_file):
    connector = open_connector(SqliteCredentials(file_path=str(sqlite_file)))
    assert isinstance(connector, SQLiteConnector)
    assert connector.is_connected is False


@pytest.mark.parametrize("declared,expected", [
    ("INTEGER", ColumnType.INTEGER),
    ("UNSIGNED BIG INT", ColumnType.INTEGER),
    ("VARCHAR(40)", ColumnType.TEXT),
    ("NVARCHAR(10)", ColumnType.TEXT),
    ("DOUBLE PRECISION", ColumnType.FLOAT),
    ("DECIMAL(10,2)", ColumnType.DECIMAL),
    ("BOOLEAN", ColumnType.BOOLEAN),
    ("DATETIME", ColumnType.DATETIME),
    ("", ColumnType.BLOB),
    ("WHATEVER", ColumnType.TEXT),
])
def test_normalize_sqlite_type(declared, expected):
    assert normalize_sqlite_type(declared) == expected


def test_list_schemas_introspects_tables(sqlite_file):
    async def run():
        async with connector_for(sqlite_file) as connector:
            return await connector.list_schemas(ManifestClassifier(["players"]))

    schemas = asyncio.run(run())

    assert [s.name for s in schemas] == ["items", "players"]
    items, players = schemas
    assert items.is_static is True
    assert players.is_static is False

    columns = items.column_map()
    assert columns["id"].is_primary_key and columns["id"].auto_increment
    assert columns["id"].nullable is False
    assert columns["name"].sql_type == ColumnType.TEXT
    assert columns["name"].max_length == 40
    assert columns["name"].nullable is False
    assert columns["weight"].sql_type == ColumnType.FLOAT
    assert columns["active"].sql_type == ColumnType.BOOLEAN
    assert columns["created"].sql_type == ColumnType.DATETIME
    assert columns["icon"].sql_type == ColumnType.BLOB

    assert players.primary_key == ("id",)
    assert players.column_map()["id"].auto_increment is False


def test_manifest_classifier_keeps_known_flags(players_schema):
    classify = ManifestClassifier(["Sessions"], known=[players_schema])
    assert classify("sessions") is False
    assert classify("PLAYERS") is False
    assert classify("items") is True


def test_read_table_rows_streams_in_batches(sqlite_file):
    async def run():
        async with connector_for(sqlite_file) as connector:
            return await collect_batches(connector, "ITEMS", 2)

    batches = asyncio.run(run())

    assert [len(batch) for batch in batches] == [2, 2, 1]
    assert [row["name"] for batch in batches for row in batch] == ["Sword", "Shield", "Potion", "Bow", "Arrow"]
    assert batches[0][0]["icon"] == b"\x01\x02"


def test_read_missing_table_raises(sqlite_file):
    async def run():
        async with connector_for(sqlite_file) as connector:
            await collect_batches(connector, "ghosts", 10)

    with pytest.raises(TableNotFoundError) as exc_info:
        asyncio.run(run())
    assert exc_info.value.table_name == "ghosts"


def test_connect_to_missing_file_fails(tmp_path):
    with pytest.raises(DatabaseConnectionError):
        asyncio.run(connector_for(tmp_path / "nope.sqlite").connect())
    assert not (tmp_path / "nope.sqlite").exists()


def test_connect_to_non_database_file_fails(tmp_path):
    path = tmp_path / "garbage.sqlite"
    path.write_bytes(b"this is not a sqlite database at all" * 20)

    with pytest.raises(DatabaseConnectionError):
        asyncio.run(connector_for(path).connect())


def test_apply_statement_executes_sql(sqlite_file):
    async def run():
        async with connector_for(sqlite_file) as connector:
            await connector.apply_statement("INSERT INTO players (id, name) VALUES (2, 'bob')")

    asyncio.run(run())

    conn = sqlite3.connect(sqlite_file)
    names = [row[0] for row in conn.execute("SELECT name FROM players ORDER BY id")]
    conn.close()
    assert names == ["alice", "bob"]


def test_apply_statement_reports_rejected_sql(sqlite_file):
    async def run():
        async with connector_for(sqlite_file) as connector:
            await connector.apply_statement("INSERT INTO nowhere VALUES (1)")

    with pytest.raises(SqlExecutionError) as exc_info:
        asyncio.run(run())
    assert exc_info.value.statement == "INSERT INTO nowhere VALUES (1)"


def test_queries_require_a_connection(sqlite_file):
    with pytest.raises(RuntimeError):
        asyncio.run(connector_for(sqlite_file).list_tables())


def test_sql_containing_nul_is_reported_as_rejected_sql(sqlite_file):
    statement = "INSERT INTO players (id, name) VALUES (2, 'a\x00b')"

    async def run():
        async with connector_for(sqlite_file) as connector:
            await connector.apply_statement(statement)

    with pytest.raises(SqlExecutionError) as exc_info:
        asyncio.run(run())
    assert exc_info.value.statement == statement


def test_apply_script_commits_every_statement(sqlite_file):
    async def run():
        async with connector_for(sqlite_file) as connector:
            await connector.apply_script([
                "DROP TABLE players",
                "CREATE TABLE players (id INTEGER PRIMARY KEY, name TEXT)",
                "INSERT INTO players (id, name) VALUES (5, 'eve')",
            ])

    asyncio.run(run())

    conn = sqlite3.connect(sqlite_file)
    rows = conn.execute("SELECT id, name FROM players").fetchall()
    conn.close()
    assert rows == [(5, "eve")]


def test_apply_script_rolls_back_ddl_and_rows_on_failure(sqlite_file):
    async def run():
        async with connector_for(sqlite_file) as connector:
            try:
                await connector.apply_script([
                    "DROP TABLE players",
                    "CREATE TABLE players (id INTEGER PRIMARY KEY, name TEXT)",
                    "INSERT INTO players (id, name) VALUES (5, 'eve')",
                    "INSERT INTO players (id, name) VALUES (5, 'eve again')",
                ])
            finally:
                # the connection stays usable after the rollback
                assert await connector.list_tables() == ["items", "players"]

    with pytest.raises(SqlExecutionError):
        asyncio.run(run())

    conn = sqlite3.connect(sqlite_file)
    rows = conn.execute("SELECT id, name FROM players").fetchall()
    conn.close()
    assert rows == [(1, "alice")]
