"""
Destinations for exported SQL.

A sink receives the complete statement list of one table at a time, so a
table's output only becomes visible once the whole table was translated.
"""

import asyncio
import logging
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Dict, List, Optional, Sequence, Union

from ..core.errors import ConfigurationError, SqlExecutionError
from ..models.schema import Provider, TableSchema
from .connector import SourceConnector
from .dialect_codec import (
    DEFAULT_BATCH_SIZE,
    Document,
    get_dialect,
    staged_table_to_sql,
    staging_name,
    table_to_sql,
)

logger = logging.getLogger(__name__)


class SqlSink(ABC):

    async def open(self):
        pass

    async def close(self):
        pass

    def render(
        self,
        schema: TableSchema,
        documents: Sequence[Document],
        provider: Provider,
        update_only: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> List[str]:
        """Statements for one table, in the form this sink writes them."""
        return table_to_sql(schema, documents, provider, update_only=update_only, batch_size=batch_size)

    @abstractmethod
    async def write_table(self, table_name: str, statements: Sequence[str]):
        ...

    def describe(self) -> str:
        return type(self).__name__


class FileSqlSink(SqlSink):
    """Writes statements to a .sql file, or to stdout when path is "-"."""

    def __init__(self, path: Union[str, Path] = "-", header: Optional[str] = None):
        self.path = str(path)
        self.header = header
        self._stream: Optional[IO[str]] = None
        self._owns_stream = False
        self._write_lock = asyncio.Lock()

    async def open(self):
        if self.path == "-":
            self._stream = sys.stdout
        else:
            try:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
                self._stream = open(self.path, "w", encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(f"Cannot write export file {self.path}: {e}") from e
            self._owns_stream = True
        if self.header:
            self._stream.write(self.header.rstrip("\n") + "\n\n")

    async def close(self):
        if self._stream is None:
            return
        self._stream.flush()
        if self._owns_stream:
            self._stream.close()
            logger.info(f"SQL export written to {self.path}")
        self._stream = None

    async def write_table(self, table_name: str, statements: Sequence[str]):
        if self._stream is None:
            raise RuntimeError("SQL sink is not open")
        text = f"-- Table: {table_name}\n" + "\n".join(statements) + "\n\n"
        async with self._write_lock:
            self._stream.write(text)

    def describe(self) -> str:
        return "stdout" if self.path == "-" else self.path


class ConnectorSqlSink(SqlSink):
    """
    Applies statements to a live database through a connector.

    Each table is applied as one transaction. A full MySQL export is loaded
    into a staging table and renamed over the live one, since MySQL commits
    DDL implicitly.
    """

    def __init__(self, connector: SourceConnector):
        self.connector = connector
        # table name -> staging table to drop if its load fails
        self._staging: Dict[str, TableSchema] = {}

    async def open(self):
        await self.connector.connect()

    async def close(self):
        await self.connector.disconnect()

    def render(
        self,
        schema: TableSchema,
        documents: Sequence[Document],
        provider: Provider,
        update_only: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> List[str]:
        if provider == Provider.MYSQL and not update_only:
            statements = staged_table_to_sql(schema, documents, provider, batch_size=batch_size)
            self._staging[schema.name] = schema
            return statements
        return super().render(schema, documents, provider, update_only, batch_size)

    async def write_table(self, table_name: str, statements: Sequence[str]):
        staged = self._staging.pop(table_name, None)
        try:
            await self.connector.apply_script(statements)
        except SqlExecutionError:
            if staged is not None:
                await self._drop_staging(staged)
            raise

    async def _drop_staging(self, schema: TableSchema):
        dialect = get_dialect(Provider.MYSQL)
        sql = f"DROP TABLE IF EXISTS {dialect.quote(staging_name(schema))};"
        try:
            await self.connector.apply_statement(sql)
        except SqlExecutionError as e:
            logger.warning(f"Could not drop staging table for {schema.name}: {e}")

    def describe(self) -> str:
        return f"{self.connector.dialect} database"
