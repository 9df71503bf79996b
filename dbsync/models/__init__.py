from .schema import ColumnType, ColumnDef, TableSchema, SelectionPolicy, Provider
from .credentials import MySqlCredentials, SqliteCredentials, Credentials

__all__ = [
    "ColumnType", "ColumnDef", "TableSchema", "SelectionPolicy", "Provider",
    "MySqlCredentials", "SqliteCredentials", "Credentials",
]
