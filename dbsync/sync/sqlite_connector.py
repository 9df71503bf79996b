"""
SQLite connector.

Introspects SQLite database files using sqlite_master and PRAGMA table_info().
The sqlite3 module is blocking, so calls run in a worker thread; one lock
serializes access to the single connection.
"""

import asyncio
import logging
import os
import sqlite3
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from ..core.errors import DatabaseConnectionError, SqlExecutionError, TableNotFoundError
from ..models.credentials import SqliteCredentials
from ..models.schema import ColumnDef, ColumnType, TableSchema
from .connector import RawRow, SourceConnector, StaticClassifier

logger = logging.getLogger(__name__)


_TYPE_MAP: Dict[str, ColumnType] = {
    "integer":   ColumnType.INTEGER,
    "int":       ColumnType.INTEGER,
    "tinyint":   ColumnType.INTEGER,
    "smallint":  ColumnType.INTEGER,
    "mediumint": ColumnType.INTEGER,
    "bigint":    ColumnType.INTEGER,
    "real":      ColumnType.FLOAT,
    "double":    ColumnType.FLOAT,
    "float":     ColumnType.FLOAT,
    "numeric":   ColumnType.DECIMAL,
    "decimal":   ColumnType.DECIMAL,
    "text":      ColumnType.TEXT,
    "varchar":   ColumnType.TEXT,
    "char":      ColumnType.TEXT,
    "clob":      ColumnType.TEXT,
    "blob":      ColumnType.BLOB,
    "boolean":   ColumnType.BOOLEAN,
    "bool":      ColumnType.BOOLEAN,
    "date":      ColumnType.DATE,
    "datetime":  ColumnType.DATETIME,
    "timestamp": ColumnType.DATETIME,
    "time":      ColumnType.TIME,
    "json":      ColumnType.JSON,
}


def normalize_sqlite_type(raw_type: str) -> ColumnType:
    """Map a declared SQLite column type to a ColumnType."""
    cleaned = raw_type.lower().strip()
    if "(" in cleaned:
        cleaned = cleaned[:cleaned.index("(")].strip()
    if not cleaned:
        # no declared type: BLOB affinity
        return ColumnType.BLOB
    if cleaned in _TYPE_MAP:
        return _TYPE_MAP[cleaned]
    # SQLite affinity rules for anything else
    if "int" in cleaned:
        return ColumnType.INTEGER
    if "char" in cleaned or "clob" in cleaned or "text" in cleaned:
        return ColumnType.TEXT
    if "real" in cleaned or "floa" in cleaned or "doub" in cleaned:
        return ColumnType.FLOAT
    return ColumnType.TEXT


def _extract_length(raw_type: str) -> Optional[int]:
    """varchar(255) -> 255. Returns None if not present."""
    if "(" in raw_type and ")" in raw_type:
        try:
            inner = raw_type[raw_type.index("(") + 1 : raw_type.index(")")]
            return int(inner.split(",")[0].strip())
        except (ValueError, IndexError):
            return None
    return None


class SQLiteConnector(SourceConnector):
    """Reads and writes a SQLite database file."""

    dialect = "sqlite"

    def __init__(self, credentials: SqliteCredentials):
        super().__init__()
        self.credentials = credentials
        self.db_path = credentials.file_path
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self):
        if self.is_connected:
            return
        if not os.path.exists(self.db_path):
            raise DatabaseConnectionError(f"Database file not found: {self.db_path}")
        try:
            self.conn = await asyncio.to_thread(self._open)
        except sqlite3.Error as e:
            raise DatabaseConnectionError(f"Failed to open {self.db_path}: {e}") from e
        self.is_connected = True
        logger.info(f"Opened SQLite database: {self.db_path}")

    def _open(self) -> sqlite3.Connection:
        # mode=rw refuses to create a new file; the connection is shared
        # across worker threads under self._lock
        conn = sqlite3.connect(
            f"file:{self.db_path}?mode=rw", uri=True, check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        # fail here rather than on the first query when the file is not a database
        conn.execute("SELECT name FROM sqlite_master LIMIT 1").fetchall()
        return conn

    async def disconnect(self):
        if self.conn is not None:
            async with self._lock:
                await asyncio.to_thread(self.conn.close)
            self.conn = None
        if self.is_connected:
            self.is_connected = False
            logger.info(f"Closed SQLite database: {self.db_path}")

    async def _run(self, fn, *args):
        if not self.is_connected or self.conn is None:
            raise RuntimeError("Not connected to SQLite database")
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    def _list_tables(self) -> List[str]:
        cursor = self.conn.execute(
            "SELECT name FROM sqlite_master "
            "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row[0] for row in cursor.fetchall()]

    async def list_tables(self) -> List[str]:
        return await self._run(self._list_tables)

    def _table_schema(self, table_name: str, is_static: bool) -> TableSchema:
        create_sql = self.conn.execute(
            "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table_name,)
        ).fetchone()[0] or ""
        has_autoincrement = "AUTOINCREMENT" in create_sql.upper()

        quoted = '"' + table_name.replace('"', '""') + '"'
        rows = self.conn.execute(f"PRAGMA table_info({quoted})").fetchall()

        columns = []
        for row in rows:
            raw_type = row["type"] or ""
            col_type = normalize_sqlite_type(raw_type)
            is_pk = bool(row["pk"])
            columns.append(ColumnDef(
                name=row["name"],
                sql_type=col_type,
                nullable=not bool(row["notnull"]) and not is_pk,
                is_primary_key=is_pk,
                auto_increment=is_pk and has_autoincrement and col_type == ColumnType.INTEGER,
                max_length=_extract_length(raw_type) if col_type == ColumnType.TEXT else None,
            ))
        return TableSchema(name=table_name, columns=tuple(columns), is_static=is_static)

    def _list_schemas(self, classify_static: StaticClassifier) -> List[TableSchema]:
        return [self._table_schema(name, classify_static(name)) for name in self._list_tables()]

    async def list_schemas(self, classify_static: StaticClassifier) -> List[TableSchema]:
        schemas = await self._run(self._list_schemas, classify_static)
        logger.info(f"Discovered {len(schemas)} tables in {self.db_path}")
        return schemas

    def _resolve_table_name(self, table_name: str) -> str:
        for name in self._list_tables():
            if name.lower() == table_name.lower():
                return name
        raise TableNotFoundError(table_name, self.credentials.describe())

    def _open_cursor(self, table_name: str) -> sqlite3.Cursor:
        actual_name = self._resolve_table_name(table_name)
        quoted = '"' + actual_name.replace('"', '""') + '"'
        return self.conn.execute(f"SELECT * FROM {quoted} ORDER BY rowid")

    async def read_table_rows(self, table_name: str, batch_size: int = 1000) -> AsyncIterator[List[RawRow]]:
        try:
            cursor = await self._run(self._open_cursor, table_name)
        except sqlite3.OperationalError:
            # WITHOUT ROWID tables have no rowid to order by
            cursor = await self._run(self._open_cursor_unordered, table_name)

        try:
            while True:
                rows = await self._run(cursor.fetchmany, batch_size)
                if not rows:
                    break
                yield [dict(row) for row in rows]
        finally:
            cursor.close()

    def _open_cursor_unordered(self, table_name: str) -> sqlite3.Cursor:
        actual_name = self._resolve_table_name(table_name)
        quoted = '"' + actual_name.replace('"', '""') + '"'
        return self.conn.execute(f"SELECT * FROM {quoted}")

    def _execute(self, sql: str):
        try:
            self.conn.execute(sql)
        except (sqlite3.Error, ValueError) as e:
            # ValueError: the driver refuses SQL text containing NUL
            raise SqlExecutionError(sql, str(e)) from e

    async def apply_statement(self, sql: str):
        await self._run(self._execute, sql)

    def _execute_script(self, statements: Sequence[str]):
        # DDL is transactional in SQLite, so DROP/CREATE roll back too
        self.conn.execute("BEGIN")
        try:
            for sql in statements:
                self._execute(sql)
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    async def apply_script(self, statements: Sequence[str]):
        await self._run(self._execute_script, list(statements))
