"""
Main sync orchestration service.
Drives the schema registry, the document store, the codecs and the external
database connectors for export, import-data and import-schema runs.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from ..config.settings import Settings, settings as default_settings
from ..core.errors import SyncError
from ..database.json_store import JsonDocumentStore
from ..database.schema_registry import SchemaRegistry
from ..models.credentials import Credentials
from ..models.schema import TableSchema
from .connector import SourceConnector, open_connector
from .data_mapper import DataMapper
from .tasks import ExportTask, ImportDataTask, ImportSchemaTask, SyncTask

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Orchestrator state."""
    IDLE = "idle"
    RESOLVING_SELECTION = "resolving_selection"
    READING = "reading"
    TRANSLATING = "translating"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TableSyncResult:
    """Result of syncing a single table."""
    table_name: str
    success: bool
    records_processed: int = 0
    statements: int = 0
    duration_seconds: float = 0.0
    error_message: Optional[str] = None
    error: Optional[Exception] = field(default=None, repr=False)


@dataclass
class SyncResult:
    """Result of a complete sync operation."""
    sync_id: str
    operation: str
    start_time: datetime
    end_time: Optional[datetime] = None
    tables: List[TableSyncResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> List[TableSyncResult]:
        return [t for t in self.tables if t.success]

    @property
    def failed(self) -> List[TableSyncResult]:
        return [t for t in self.tables if not t.success]

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def total_records(self) -> int:
        return sum(t.records_processed for t in self.tables)


ProgressCallback = Callable[[int, int, str, TableSyncResult], None]
ConnectorFactory = Callable[[Credentials], SourceConnector]


def log_progress(index: int, total: int, table_name: str, result: TableSyncResult):
    if result.success:
        logger.info(f"Finished {index} of {total} ({table_name})")
    else:
        logger.error(f"Failed {index} of {total} ({table_name}): {result.error_message}")


class SyncService:
    """
    Runs one sync task at a time against an explicitly passed store and registry.

    Connection and import-schema failures propagate to the caller. Failures
    inside a single table are logged and recorded in the SyncResult, and the
    remaining tables are still processed.
    """

    def __init__(
        self,
        store: JsonDocumentStore,
        registry: SchemaRegistry,
        connector_factory: ConnectorFactory = open_connector,
        settings: Settings = default_settings,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.store = store
        self.registry = registry
        self.connector_factory = connector_factory
        self.settings = settings
        self.on_progress = on_progress or log_progress
        self.data_mapper = DataMapper()
        self.status = SyncStatus.IDLE
        self.current_sync: Optional[SyncResult] = None

    async def run(self, task: SyncTask) -> SyncResult:
        if self.status not in (SyncStatus.IDLE, SyncStatus.DONE, SyncStatus.FAILED):
            raise RuntimeError("Sync is already running")

        if isinstance(task, ImportSchemaTask):
            operation = "import-schema"
        elif isinstance(task, ImportDataTask):
            operation = "import-data"
        elif isinstance(task, ExportTask):
            operation = "export"
        else:
            raise TypeError(f"Unknown sync task: {type(task).__name__}")

        start = datetime.now(timezone.utc)
        self.current_sync = SyncResult(
            sync_id=f"sync_{int(start.timestamp())}",
            operation=operation,
            start_time=start,
        )
        logger.info(f"Starting {operation}: {self.current_sync.sync_id}")

        try:
            if isinstance(task, ImportSchemaTask):
                await self._import_schema(task)
            elif isinstance(task, ImportDataTask):
                await self._import_data(task)
            else:
                await self._export(task)
        except BaseException:
            self.status = SyncStatus.FAILED
            self._finish()
            raise

        self.status = SyncStatus.DONE if self.current_sync.success else SyncStatus.FAILED
        self._finish()
        return self.current_sync

    def _finish(self):
        sync = self.current_sync
        sync.end_time = datetime.now(timezone.utc)
        sync.duration_seconds = (sync.end_time - sync.start_time).total_seconds()
        logger.info(
            f"{sync.operation} finished: {len(sync.succeeded)} tables ok, "
            f"{len(sync.failed)} failed, {sync.total_records} records, "
            f"{sync.duration_seconds:.2f}s"
        )

    # ── per-table fold ────────────────────────────────────────────────────

    async def _run_tables(self, tables: List[TableSchema], unit: Callable) -> List[TableSyncResult]:
        """
        Apply unit(schema) to every table, isolating failures per table.
        Up to SYNC_MAX_CONCURRENCY tables run at once.
        """
        total = len(tables)
        semaphore = asyncio.Semaphore(max(1, self.settings.SYNC_MAX_CONCURRENCY))
        finished = 0

        async def run_one(schema: TableSchema) -> TableSyncResult:
            nonlocal finished
            async with semaphore:
                started = time.monotonic()
                result = TableSyncResult(table_name=schema.name, success=False)
                try:
                    await unit(schema, result)
                    result.success = True
                except SyncError as e:
                    logger.error(f"Table {schema.name} failed: {e}")
                    result.error_message = str(e)
                    result.error = e
                except Exception as e:
                    logger.error(f"Table {schema.name} failed unexpectedly: {e}", exc_info=True)
                    result.error_message = str(e)
                    result.error = e
                result.duration_seconds = time.monotonic() - started

                finished += 1
                self.current_sync.tables.append(result)
                self.on_progress(finished, total, schema.name, result)
                return result

        return list(await asyncio.gather(*(run_one(schema) for schema in tables)))

    # ── export ────────────────────────────────────────────────────────────

    async def _export(self, task: ExportTask):
        self.status = SyncStatus.RESOLVING_SELECTION
        tables = list(task.tables)
        mode = "update-only " if task.update_only else ""
        logger.info(
            f"Exporting {len(tables)} tables as {mode}{task.provider.value} SQL to {task.sink.describe()}"
        )

        await task.sink.open()
        try:
            async def export_table(schema: TableSchema, result: TableSyncResult):
                self.status = SyncStatus.READING
                documents = self.store.read_table(schema.name)

                self.status = SyncStatus.TRANSLATING
                statements = task.sink.render(
                    schema, documents, task.provider,
                    update_only=task.update_only,
                    batch_size=self.settings.EXPORT_BATCH_SIZE,
                )

                self.status = SyncStatus.WRITING
                await task.sink.write_table(schema.name, statements)
                result.records_processed = len(documents)
                result.statements = len(statements)

            await self._run_tables(tables, export_table)
        finally:
            await task.sink.close()

    # ── import data ───────────────────────────────────────────────────────

    async def _import_data(self, task: ImportDataTask):
        self.status = SyncStatus.RESOLVING_SELECTION
        tables = list(task.tables)
        connector = self.connector_factory(task.credentials)

        # a connection failure aborts before any table is touched
        await connector.connect()
        try:
            logger.info(f"Importing {len(tables)} tables from {task.credentials.describe()}")

            async def import_table(schema: TableSchema, result: TableSyncResult):
                documents = []
                self.status = SyncStatus.READING
                rows = connector.read_table_rows(schema.name, self.settings.IMPORT_BATCH_SIZE)
                # close the row stream even when a batch fails to convert
                async with aclosing(rows):
                    async for batch in rows:
                        self.status = SyncStatus.TRANSLATING
                        documents.extend(self.data_mapper.transform_table_data(batch, schema))
                        self.status = SyncStatus.READING

                self.status = SyncStatus.WRITING
                self.store.replace_table(schema.name, documents)
                result.records_processed = len(documents)

            await self._run_tables(tables, import_table)
        finally:
            await connector.disconnect()

    # ── import schema ─────────────────────────────────────────────────────

    async def _import_schema(self, task: ImportSchemaTask):
        self.status = SyncStatus.READING
        connector = self.connector_factory(task.credentials)
        await connector.connect()
        try:
            schemas = await connector.list_schemas(task.classify_static)
        finally:
            await connector.disconnect()

        self.status = SyncStatus.WRITING
        self.registry.replace_schemas(schemas)

        dynamic = [s.name for s in schemas if not s.is_static]
        logger.info(
            f"Imported {len(schemas)} schemas from {task.credentials.describe()} "
            f"({len(dynamic)} dynamic: {', '.join(dynamic) or 'none'})"
        )
        for schema in schemas:
            self.current_sync.tables.append(TableSyncResult(table_name=schema.name, success=True))
