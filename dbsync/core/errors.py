"""
Error kinds raised by the sync engine.

Configuration and connection errors abort a run. The rest are scoped to a
single table and are caught at the orchestrator's per-table boundary.
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base class for all dbsync errors."""


class ConfigurationError(SyncError):
    """Invalid dialect value, malformed selection or unusable config file."""


class DatabaseConnectionError(SyncError):
    """The external database could not be reached or opened."""


class TableNotFoundError(SyncError):
    """A selected table does not exist in the external source."""

    def __init__(self, table_name: str, source: Optional[str] = None):
        self.table_name = table_name
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"Table '{table_name}' not found{where}")


class TypeMismatchError(SyncError):
    """A value cannot be coerced to its declared column type."""

    def __init__(self, table_name: str, column: str, value: Any, expected: str, reason: str = ""):
        self.table_name = table_name
        self.column = column
        self.value = value
        self.expected = expected
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Column '{table_name}.{column}' expects {expected}, got {value!r}{detail}"
        )


class SqlExecutionError(SyncError):
    """The target database rejected a generated statement."""

    def __init__(self, statement: str, message: str):
        self.statement = statement
        self.message = message
        super().__init__(f"{message} (statement: {_shorten(statement)})")


def _shorten(statement: str, limit: int = 200) -> str:
    statement = " ".join(statement.split())
    if len(statement) <= limit:
        return statement
    return statement[:limit] + "..."
