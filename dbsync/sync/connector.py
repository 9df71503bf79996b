"""
External source adapter interface.

Each dialect implements SourceConnector; open_connector picks the
implementation from the credentials type.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence

from ..models.credentials import Credentials, MySqlCredentials, SqliteCredentials
from ..models.schema import TableSchema

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]
StaticClassifier = Callable[[str], bool]


class SourceConnector(ABC):
    """
    Capability set the sync engine needs from an external database:
    connect, list schemas, read rows and apply SQL.
    """

    dialect: str = ""

    def __init__(self):
        self.is_connected = False

    @abstractmethod
    async def connect(self):
        """Open the connection. Raises DatabaseConnectionError on failure."""
        ...

    @abstractmethod
    async def disconnect(self):
        ...

    @abstractmethod
    async def list_tables(self) -> List[str]:
        ...

    @abstractmethod
    async def list_schemas(self, classify_static: StaticClassifier) -> List[TableSchema]:
        """Introspect the catalog; is_static comes from classify_static(table_name)."""
        ...

    @abstractmethod
    def read_table_rows(self, table_name: str, batch_size: int = 1000) -> AsyncIterator[List[RawRow]]:
        """
        Stream the rows of a table in batches.
        Raises TableNotFoundError if the table does not exist.
        """
        ...

    @abstractmethod
    async def apply_statement(self, sql: str):
        """Execute one statement. Raises SqlExecutionError on failure."""
        ...

    @abstractmethod
    async def apply_script(self, statements: Sequence[str]):
        """
        Execute statements in one transaction on one connection.
        On failure the transaction is rolled back and SqlExecutionError is raised.
        """
        ...

    async def __aenter__(self) -> "SourceConnector":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()


def open_connector(credentials: Credentials) -> SourceConnector:
    """Build (but do not connect) the connector for a set of credentials."""
    # imported here so that a missing driver only matters for its own dialect
    if isinstance(credentials, MySqlCredentials):
        from .mysql_connector import MySQLConnector
        return MySQLConnector(credentials)
    if isinstance(credentials, SqliteCredentials):
        from .sqlite_connector import SQLiteConnector
        return SQLiteConnector(credentials)
    raise TypeError(f"Unsupported credentials type: {type(credentials).__name__}")


class ManifestClassifier:
    """
    Default static/dynamic convention for schema import.

    A table listed as dynamic in the config file is dynamic. A table already in
    the catalog keeps its current flag. Everything else is static.
    """

    def __init__(self, dynamic_tables: Iterable[str] = (),
                 known: Optional[Iterable[TableSchema]] = None):
        self.dynamic_tables = {name.lower() for name in dynamic_tables}
        self.known = {schema.key: schema.is_static for schema in (known or ())}

    def __call__(self, table_name: str) -> bool:
        key = table_name.lower()
        if key in self.dynamic_tables:
            return False
        return self.known.get(key, True)
