import sqlite3

import pytest

from dbsync.database.json_store import JsonDocumentStore
from dbsync.database.schema_registry import SchemaRegistry
from dbsync.models.schema import ColumnDef, ColumnType, TableSchema


@pytest.fixture
def items_schema():
    return TableSchema(
        name="items",
        columns=(
            ColumnDef("id", ColumnType.INTEGER, nullable=False, is_primary_key=True),
            ColumnDef("name", ColumnType.TEXT, max_length=64),
            ColumnDef("price", ColumnType.INTEGER),
        ),
        is_static=True,
    )


@pytest.fixture
def npcs_schema():
    return TableSchema(
        name="npcs",
        columns=(
            ColumnDef("id", ColumnType.INTEGER, nullable=False, is_primary_key=True),
            ColumnDef("name", ColumnType.TEXT),
            ColumnDef("hostile", ColumnType.BOOLEAN),
        ),
        is_static=True,
    )


@pytest.fixture
def players_schema():
    return TableSchema(
        name="players",
        columns=(
            ColumnDef("id", ColumnType.INTEGER, nullable=False, is_primary_key=True, auto_increment=True),
            ColumnDef("name", ColumnType.TEXT, nullable=False),
            ColumnDef("last_login", ColumnType.DATETIME),
        ),
        is_static=False,
    )


@pytest.fixture
def store(tmp_path):
    store = JsonDocumentStore(str(tmp_path / "data"))
    store.connect()
    yield store
    store.disconnect()


@pytest.fixture
def registry(store, items_schema, npcs_schema, players_schema):
    registry = SchemaRegistry(store)
    registry.replace_schemas([players_schema, items_schema, npcs_schema])
    return registry


@pytest.fixture
def sqlite_file(tmp_path):
    """A SQLite database with an items table (static) and a players table."""
    path = tmp_path / "source.sqlite"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE items (id INTEGER PRIMARY KEY AUTOINCREMENT, name VARCHAR(40) NOT NULL, "
        "price INTEGER, weight REAL, active BOOLEAN, created DATETIME, icon BLOB)"
    )
    conn.execute("CREATE TABLE players (id INTEGER NOT NULL PRIMARY KEY, name TEXT NOT NULL)")
    conn.executemany(
        "INSERT INTO items (name, price, weight, active, created, icon) VALUES (?, ?, ?, ?, ?, ?)",
        [
            ("Sword", 100, 3.5, 1, "2024-01-01 10:00:00", b"\x01\x02"),
            ("Shield", 80, 5.0, 0, "2024-01-02 11:30:00", None),
            ("Potion", 5, 0.25, 1, None, None),
            ("Bow", 120, 1.5, 1, "2024-02-10 08:00:00", None),
            ("Arrow", 1, 0.01, 1, None, None),
        ],
    )
    conn.execute("INSERT INTO players (id, name) VALUES (1, 'alice')")
    conn.commit()
    conn.close()
    return path
