#!/usr/bin/env python3
"""
dbsync command line entry point.

Exports the internal JSON database as MySQL/SQLite SQL, or imports data or
schemas from the configured database.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from .config.settings import settings
from .config.sync_settings import load_sync_config
from .core.errors import ConfigurationError, DatabaseConnectionError, SyncError
from .core.logging_config import configure_logging
from .database.json_store import JsonDocumentStore
from .database.schema_registry import SchemaRegistry
from .sync.sync_service import SyncService
from .sync.tasks import SyncConfig, SyncOptions, split_tables

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_USAGE = 2
EXIT_CONNECTION_ERROR = 3
EXIT_TABLE_FAILURES = 4


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbsync",
        description="Sync the internal JSON database with MySQL or SQLite",
    )
    parser.add_argument("--exclude", type=str, default="",
                        help='Explicitly exclude (comma-separated) tables from export and import; '
                             '"all" excludes all tables')
    parser.add_argument("--include", type=str, default="",
                        help="Explicitly include (comma-separated) tables that are not listed "
                             "or are non-static for import")
    parser.add_argument("--export", dest="export_type", type=str, default="mysql",
                        help='Export the internal database as SQL. Possible values are "mysql" '
                             'and "sqlite" (default "mysql")')
    parser.add_argument("--import", dest="import_db", action="store_true",
                        help="Import the configured SQL database into the JSON database")
    parser.add_argument("--import-schema", action="store_true",
                        help="Import all schemas from the configured database")
    parser.add_argument("--update-only", action="store_true",
                        help="Export/replace static content, but keep player content untouched")
    parser.add_argument("--apply", action="store_true",
                        help="Apply the export to the configured database instead of writing a file")
    parser.add_argument("--output", type=str, default=None,
                        help=f'SQL export file, "-" for stdout (default "{settings.EXPORT_FILE}")')
    parser.add_argument("--config", type=str, default=None,
                        help=f'Config file (default "{settings.CONFIG_FILE_PATH}")')
    parser.add_argument("--data-dir", type=str, default=None,
                        help=f'Internal database directory (default "{settings.DATA_DIR}")')
    return parser


def parse_options(args: argparse.Namespace) -> SyncOptions:
    return SyncOptions(
        export_type=args.export_type,
        import_db=args.import_db,
        import_schema=args.import_schema,
        include=split_tables(args.include),
        exclude=split_tables(args.exclude),
        update_only=args.update_only,
        apply=args.apply,
        output=args.output or settings.EXPORT_FILE,
    )


async def run_sync(config: SyncConfig, store: JsonDocumentStore, registry: SchemaRegistry) -> int:
    if not config.import_schema:
        for schema in config.get_excluded_schemas(registry):
            logger.info(f"Found ignored table: {schema.name}")

    task = config.get_task(registry)
    service = SyncService(store, registry)
    result = await service.run(task)

    if not result.success:
        names = ", ".join(t.table_name for t in result.failed)
        logger.warning(f"{len(result.failed)} of {len(result.tables)} tables failed: {names}")
        if settings.FAIL_ON_TABLE_ERROR:
            return EXIT_TABLE_FAILURES
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging()

    store = JsonDocumentStore(args.data_dir or settings.DATA_DIR)
    try:
        options = parse_options(args)
        # exporting to a file works without a config file
        needs_config = options.import_db or options.import_schema or options.apply
        config_path = args.config or settings.CONFIG_FILE_PATH
        if needs_config or os.path.exists(config_path):
            config_file = load_sync_config(config_path)
        else:
            logger.info(f"No config file at {config_path}; exporting without it")
            config_file = None

        config = SyncConfig.build(options, config_file)

        store.connect()
        registry = SchemaRegistry(store).load()
        return asyncio.run(run_sync(config, store, registry))

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except DatabaseConnectionError as e:
        logger.error(f"Connection failed: {e}")
        return EXIT_CONNECTION_ERROR
    except SyncError as e:
        logger.error(f"Sync failed: {e}")
        return EXIT_CONNECTION_ERROR
    finally:
        store.disconnect()


if __name__ == "__main__":
    sys.exit(main())
