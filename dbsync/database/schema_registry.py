"""
Schema Registry

Process-wide catalog of the internal database's tables. The catalog is an
immutable tuple that is only ever swapped as a whole, so readers see either
the previous or the new catalog.
"""

import logging
import threading
from typing import Iterable, List, Optional, Tuple

from ..models.schema import SelectionPolicy, TableSchema
from .json_store import JsonDocumentStore

logger = logging.getLogger(__name__)


class SchemaRegistry:

    def __init__(self, store: Optional[JsonDocumentStore] = None,
                 schemas: Iterable[TableSchema] = ()):
        self._store = store
        self._swap_lock = threading.Lock()
        self._schemas: Tuple[TableSchema, ...] = _validated(schemas)

    def load(self) -> "SchemaRegistry":
        """Bootstrap the catalog from the store."""
        if self._store is None:
            return self
        schemas = self._store.read_schemas()
        if schemas is None:
            logger.warning(
                f"No schema catalog found in {self._store.data_dir}; "
                f"run an import-schema first"
            )
            schemas = []
        with self._swap_lock:
            self._schemas = _validated(schemas)
        logger.info(f"Loaded {len(self._schemas)} table schemas")
        return self

    def get_all_schemas(self) -> Tuple[TableSchema, ...]:
        """The current catalog in registration order."""
        return self._schemas

    def get(self, table_name: str) -> Optional[TableSchema]:
        key = table_name.lower()
        for schema in self._schemas:
            if schema.key == key:
                return schema
        return None

    def __len__(self) -> int:
        return len(self._schemas)

    def __contains__(self, table_name: str) -> bool:
        return self.get(table_name) is not None

    def replace_schemas(self, new_schemas: Iterable[TableSchema]):
        """
        Swap the entire catalog.

        Tables missing from the new catalog become unknown; their stored
        documents are left on disk.
        """
        schemas = _validated(new_schemas)

        with self._swap_lock:
            if self._store is not None:
                self._store.write_schemas(schemas)
            old = self._schemas
            self._schemas = schemas

        new_keys = {s.key for s in schemas}
        for dropped in (s for s in old if s.key not in new_keys):
            logger.warning(f"Table {dropped.name} is no longer in the catalog; its documents are orphaned")
        logger.info(f"Schema catalog replaced: {len(old)} -> {len(schemas)} tables")

    def resolve_selection(self, policy: SelectionPolicy, importing: bool = False) -> List[TableSchema]:
        """
        Tables an operation should touch.

        1. "all" in include selects every table.
        2. "all" in exclude selects only explicitly included tables.
        3. Otherwise a table is dropped if excluded, or if it is dynamic and the
           run imports or is update-only. An explicit include always keeps it.
        """
        return _select(self._schemas, policy, importing)

    def excluded_schemas(self, policy: SelectionPolicy, importing: bool = False) -> List[TableSchema]:
        """Complement of resolve_selection, for reporting."""
        schemas = self._schemas
        selected = {s.key for s in _select(schemas, policy, importing)}
        return [s for s in schemas if s.key not in selected]


def _select(schemas: Tuple[TableSchema, ...], policy: SelectionPolicy,
            importing: bool) -> List[TableSchema]:
    if policy.include_all:
        return list(schemas)
    if policy.exclude_all:
        return [s for s in schemas if policy.is_included(s.name)]

    def ignored_when_importing(schema: TableSchema) -> bool:
        return not schema.is_static and (importing or policy.update_only)

    return [
        s for s in schemas
        if not (policy.is_excluded(s.name) or ignored_when_importing(s))
        or policy.is_included(s.name)
    ]


def _validated(schemas: Iterable[TableSchema]) -> Tuple[TableSchema, ...]:
    schemas = tuple(schemas)
    seen = set()
    for schema in schemas:
        if schema.key in seen:
            raise ValueError(f"Duplicate table in schema catalog: {schema.name}")
        seen.add(schema.key)
    return schemas
