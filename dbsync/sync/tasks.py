"""
Sync tasks and their construction from command line options plus the config file.

A task is one of three variants, each carrying only what it needs:
ExportTask, ImportDataTask and ImportSchemaTask.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

from ..core.errors import ConfigurationError
from ..database.schema_registry import SchemaRegistry
from ..models.credentials import Credentials, SqliteCredentials
from ..models.schema import Provider, SelectionPolicy, TableSchema
from .connector import ManifestClassifier, open_connector
from .sql_sink import ConnectorSqlSink, FileSqlSink, SqlSink

logger = logging.getLogger(__name__)

DEPRECATED_UPDATE_ONLY = "update-only"
_TABLE_NAME = re.compile(r"^[A-Za-z0-9_$.\-]+$")


@dataclass(frozen=True)
class ExportTask:
    provider: Provider
    tables: Tuple[TableSchema, ...]
    sink: SqlSink
    update_only: bool = False


@dataclass(frozen=True)
class ImportDataTask:
    credentials: Credentials
    tables: Tuple[TableSchema, ...]


@dataclass(frozen=True)
class ImportSchemaTask:
    credentials: Credentials
    classify_static: Callable[[str], bool]


SyncTask = Union[ExportTask, ImportDataTask, ImportSchemaTask]


def split_tables(text: Optional[str]) -> List[str]:
    """
    Split a comma-separated table list, dropping empty entries.

    Raises:
        ConfigurationError: an entry is not a plain table name.
    """
    if not text:
        return []
    names = [part.strip() for part in text.split(",")]
    names = [name for name in names if name]
    for name in names:
        if not _TABLE_NAME.match(name):
            raise ConfigurationError(f"Malformed table name in selection: {name!r}")
    return names


def resolve_provider(export_type: str, importing: bool,
                     credentials: Optional[Credentials]) -> Tuple[Provider, bool]:
    """
    Decide the SQL dialect of a run.

    Returns (provider, force_update_only). "update-only" is a deprecated
    export value meaning MySQL with update-only semantics.

    Raises:
        ConfigurationError: unknown export value.
    """
    export_type = (export_type or "mysql").strip().lower()
    import_sqlite = importing and isinstance(credentials, SqliteCredentials)
    force_update_only = export_type == DEPRECATED_UPDATE_ONLY

    if force_update_only:
        logger.warning('Export type update-only is deprecated. Use "--update-only" instead.')

    if import_sqlite or export_type == "sqlite":
        return Provider.SQLITE, force_update_only
    if importing or export_type in ("mysql", DEPRECATED_UPDATE_ONLY):
        return Provider.MYSQL, force_update_only
    raise ConfigurationError(
        'Chosen export value is invalid. Please choose either "mysql", "sqlite" or "update-only".'
    )


@dataclass
class SyncOptions:
    """Options coming from the command line."""
    export_type: str = "mysql"
    import_db: bool = False
    import_schema: bool = False
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    update_only: bool = False
    apply: bool = False
    output: str = "-"


@dataclass
class SyncConfig:
    """Command line options merged with the config file."""
    provider: Provider
    import_db: bool
    import_schema: bool
    policy: SelectionPolicy
    credentials: Optional[Credentials] = None
    dynamic_tables: Sequence[str] = ()
    apply: bool = False
    output: str = "-"

    @classmethod
    def build(cls, options: SyncOptions, config_file=None) -> "SyncConfig":
        credentials = config_file.db if config_file is not None else None
        importing = options.import_db or options.import_schema
        if importing and credentials is None:
            raise ConfigurationError("Importing requires database credentials in the config file")
        if options.apply and credentials is None:
            raise ConfigurationError("--apply requires database credentials in the config file")

        provider, force_update_only = resolve_provider(options.export_type, importing, credentials)

        include = list(options.include)
        exclude = list(options.exclude)
        if config_file is not None:
            include.extend(config_file.include)
            exclude.extend(config_file.exclude)
            exclude.extend(config_file.exportignore)

        return cls(
            provider=provider,
            import_db=options.import_db,
            import_schema=options.import_schema,
            policy=SelectionPolicy(
                include=frozenset(include),
                exclude=frozenset(exclude),
                update_only=options.update_only or force_update_only,
            ),
            credentials=credentials,
            dynamic_tables=tuple(config_file.dynamic) if config_file is not None else (),
            apply=options.apply,
            output=options.output,
        )

    @property
    def update_only(self) -> bool:
        return self.policy.update_only

    def get_selected_schemas(self, registry: SchemaRegistry) -> List[TableSchema]:
        return registry.resolve_selection(self.policy, importing=self.import_db)

    def get_excluded_schemas(self, registry: SchemaRegistry) -> List[TableSchema]:
        return registry.excluded_schemas(self.policy, importing=self.import_db)

    def get_task(self, registry: SchemaRegistry) -> SyncTask:
        """import-schema wins over import; neither means export."""
        if self.import_schema:
            return ImportSchemaTask(
                credentials=self.credentials,
                classify_static=ManifestClassifier(self.dynamic_tables, registry.get_all_schemas()),
            )

        if self.import_db:
            return ImportDataTask(
                credentials=self.credentials,
                tables=tuple(self.get_selected_schemas(registry)),
            )

        return ExportTask(
            provider=self.provider,
            tables=tuple(self.get_selected_schemas(registry)),
            sink=self._export_sink(),
            update_only=self.update_only,
        )

    def _export_sink(self) -> SqlSink:
        if not self.apply:
            return FileSqlSink(self.output, header=f"-- dbsync export ({self.provider.value})")
        if self.credentials.dialect != self.provider.value:
            raise ConfigurationError(
                f"Cannot apply a {self.provider.value} export to the configured "
                f"{self.credentials.dialect} database"
            )
        return ConnectorSqlSink(open_connector(self.credentials))
