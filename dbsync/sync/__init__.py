"""
Sync engine between the internal JSON database and MySQL / SQLite.
"""

from .connector import SourceConnector, ManifestClassifier, open_connector
from .data_mapper import DataMapper, row_to_document
from .dialect_codec import document_to_sql, documents_to_sql, schema_to_ddl, table_to_sql
from .sync_service import SyncService, SyncResult, SyncStatus, TableSyncResult
from .tasks import ExportTask, ImportDataTask, ImportSchemaTask, SyncConfig, SyncOptions

__all__ = [
    "SourceConnector", "ManifestClassifier", "open_connector",
    "DataMapper", "row_to_document",
    "document_to_sql", "documents_to_sql", "schema_to_ddl", "table_to_sql",
    "SyncService", "SyncResult", "SyncStatus", "TableSyncResult",
    "ExportTask", "ImportDataTask", "ImportSchemaTask", "SyncConfig", "SyncOptions",
]
