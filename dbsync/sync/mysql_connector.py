"""
MySQL connector with table discovery and schema inspection.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import aiomysql

from ..config.settings import settings
from ..core.errors import DatabaseConnectionError, SqlExecutionError, TableNotFoundError
from ..models.credentials import MySqlCredentials
from ..models.schema import ColumnDef, ColumnType, TableSchema
from .connector import RawRow, SourceConnector, StaticClassifier

logger = logging.getLogger(__name__)


_TYPE_MAP: Dict[str, ColumnType] = {
    "tinyint":    ColumnType.INTEGER,
    "smallint":   ColumnType.INTEGER,
    "mediumint":  ColumnType.INTEGER,
    "int":        ColumnType.INTEGER,
    "integer":    ColumnType.INTEGER,
    "bigint":     ColumnType.INTEGER,
    "year":       ColumnType.INTEGER,
    "float":      ColumnType.FLOAT,
    "double":     ColumnType.FLOAT,
    "real":       ColumnType.FLOAT,
    "decimal":    ColumnType.DECIMAL,
    "numeric":    ColumnType.DECIMAL,
    "char":       ColumnType.TEXT,
    "varchar":    ColumnType.TEXT,
    "tinytext":   ColumnType.TEXT,
    "text":       ColumnType.TEXT,
    "mediumtext": ColumnType.TEXT,
    "longtext":   ColumnType.TEXT,
    "enum":       ColumnType.TEXT,
    "set":        ColumnType.TEXT,
    "binary":     ColumnType.BLOB,
    "varbinary":  ColumnType.BLOB,
    "tinyblob":   ColumnType.BLOB,
    "blob":       ColumnType.BLOB,
    "mediumblob": ColumnType.BLOB,
    "longblob":   ColumnType.BLOB,
    "bool":       ColumnType.BOOLEAN,
    "boolean":    ColumnType.BOOLEAN,
    "date":       ColumnType.DATE,
    "datetime":   ColumnType.DATETIME,
    "timestamp":  ColumnType.DATETIME,
    "time":       ColumnType.TIME,
    "json":       ColumnType.JSON,
}


def normalize_mysql_type(data_type: str, column_type: str = "") -> ColumnType:
    """
    Map an INFORMATION_SCHEMA DATA_TYPE to a ColumnType.
    TINYINT(1) is MySQL's boolean.
    """
    if column_type.lower().startswith("tinyint(1)"):
        return ColumnType.BOOLEAN
    return _TYPE_MAP.get(data_type.lower().strip(), ColumnType.TEXT)


class MySQLConnector(SourceConnector):
    """
    MySQL connector backed by an aiomysql pool.
    Discovers tables through INFORMATION_SCHEMA and streams rows with a
    server-side cursor.
    """

    dialect = "mysql"

    def __init__(self, credentials: MySqlCredentials):
        super().__init__()
        self.credentials = credentials
        self.pool: Optional[aiomysql.Pool] = None

    async def connect(self):
        """Establish connection to MySQL database."""
        if self.is_connected:
            return
        try:
            self.pool = await aiomysql.create_pool(
                host=self.credentials.host,
                port=self.credentials.port,
                user=self.credentials.user,
                password=self.credentials.password,
                db=self.credentials.database,
                charset=settings.MYSQL_CHARSET,
                minsize=settings.MYSQL_MIN_POOL_SIZE,
                maxsize=settings.MYSQL_MAX_POOL_SIZE,
                connect_timeout=settings.MYSQL_CONNECT_TIMEOUT,
                autocommit=True,
                echo=False,
            )
        except (aiomysql.Error, OSError, asyncio.TimeoutError) as e:
            raise DatabaseConnectionError(
                f"Failed to connect to {self.credentials.describe()}: {e}"
            ) from e

        self.is_connected = True
        logger.info(f"Connected to MySQL database: {self.credentials.database}")

    async def disconnect(self):
        """Close database connection."""
        if self.pool:
            self.pool.close()
            await self.pool.wait_closed()
            self.pool = None
        if self.is_connected:
            self.is_connected = False
            logger.info("Disconnected from MySQL database")

    def _ensure_connected(self):
        if not self.is_connected or self.pool is None:
            raise RuntimeError("Not connected to MySQL database")

    async def list_tables(self) -> List[str]:
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(
                    """
                    SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES
                    WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = 'BASE TABLE'
                    ORDER BY TABLE_NAME
                    """,
                    (self.credentials.database,),
                )
                return [row[0] for row in await cursor.fetchall()]

    async def list_schemas(self, classify_static: StaticClassifier) -> List[TableSchema]:
        """Build TableSchemas for every base table of the database."""
        self._ensure_connected()
        tables = await self.list_tables()

        async with self.pool.acquire() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(
                    """
                    SELECT TABLE_NAME, COLUMN_NAME, DATA_TYPE, COLUMN_TYPE, IS_NULLABLE,
                           COLUMN_KEY, EXTRA, CHARACTER_MAXIMUM_LENGTH,
                           NUMERIC_PRECISION, NUMERIC_SCALE
                    FROM INFORMATION_SCHEMA.COLUMNS
                    WHERE TABLE_SCHEMA = %s
                    ORDER BY TABLE_NAME, ORDINAL_POSITION
                    """,
                    (self.credentials.database,),
                )
                column_rows = await cursor.fetchall()

        columns_by_table: Dict[str, List[ColumnDef]] = {name: [] for name in tables}
        for row in column_rows:
            table_name = row["TABLE_NAME"]
            if table_name not in columns_by_table:
                continue  # views
            columns_by_table[table_name].append(_column_from_info(row))

        schemas = [
            TableSchema(name=name, columns=tuple(columns_by_table[name]), is_static=classify_static(name))
            for name in tables
        ]
        logger.info(f"Discovered {len(schemas)} tables in {self.credentials.database}")
        return schemas

    async def _resolve_table_name(self, table_name: str) -> str:
        for name in await self.list_tables():
            if name.lower() == table_name.lower():
                return name
        raise TableNotFoundError(table_name, self.credentials.describe())

    async def read_table_rows(self, table_name: str, batch_size: int = 1000) -> AsyncIterator[List[RawRow]]:
        """Stream all rows of a table in batches of batch_size."""
        self._ensure_connected()
        actual_name = await self._resolve_table_name(table_name)
        quoted = "`" + actual_name.replace("`", "``") + "`"

        async with self.pool.acquire() as conn:
            async with conn.cursor(aiomysql.SSDictCursor) as cursor:
                await cursor.execute(f"SELECT * FROM {quoted}")
                while True:
                    rows = await cursor.fetchmany(batch_size)
                    if not rows:
                        break
                    yield [dict(row) for row in rows]

    async def apply_statement(self, sql: str):
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cursor:
                try:
                    await cursor.execute(sql)
                except aiomysql.Error as e:
                    raise SqlExecutionError(sql, str(e)) from e

    async def apply_script(self, statements: Sequence[str]):
        """
        Run statements in one transaction on one pooled connection.
        DDL commits implicitly in MySQL; callers wanting an atomic table
        replace send a staging-table script.
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.begin()
            sql = ""
            try:
                async with conn.cursor() as cursor:
                    for sql in statements:
                        await cursor.execute(sql)
                await conn.commit()
            except aiomysql.Error as e:
                await conn.rollback()
                raise SqlExecutionError(sql, str(e)) from e


def _column_from_info(row: Dict[str, Any]) -> ColumnDef:
    data_type = (row.get("DATA_TYPE") or "").lower()
    col_type = normalize_mysql_type(data_type, row.get("COLUMN_TYPE") or "")

    max_length = None
    if data_type in ("char", "varchar") and row.get("CHARACTER_MAXIMUM_LENGTH"):
        max_length = int(row["CHARACTER_MAXIMUM_LENGTH"])

    precision = scale = None
    if col_type == ColumnType.DECIMAL:
        precision = row.get("NUMERIC_PRECISION")
        scale = row.get("NUMERIC_SCALE")

    return ColumnDef(
        name=row["COLUMN_NAME"],
        sql_type=col_type,
        nullable=(row.get("IS_NULLABLE") or "YES").upper() == "YES",
        is_primary_key=row.get("COLUMN_KEY") == "PRI",
        auto_increment="auto_increment" in (row.get("EXTRA") or "").lower(),
        max_length=max_length,
        precision=int(precision) if precision is not None else None,
        scale=int(scale) if scale is not None else None,
    )
