from .errors import (
    SyncError,
    ConfigurationError,
    DatabaseConnectionError,
    TableNotFoundError,
    TypeMismatchError,
    SqlExecutionError,
)

__all__ = [
    "SyncError", "ConfigurationError", "DatabaseConnectionError",
    "TableNotFoundError", "TypeMismatchError", "SqlExecutionError",
]
