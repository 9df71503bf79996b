"""
File-backed document store for the internal database.

Layout under the data directory:
    schemas.json          the schema catalog (list of TableSchema dicts)
    tables/<name>.json    one JSON array of documents per table
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import ConfigurationError
from ..models.schema import TableSchema

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

SCHEMAS_FILE = "schemas.json"
TABLES_DIR = "tables"


class JsonDocumentStore:
    """
    Per-table JSON document storage.
    Whole-table replace only; each table is locked while it is read or replaced.
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._is_connected = False

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def schemas_path(self) -> Path:
        return self.data_dir / SCHEMAS_FILE

    @property
    def tables_dir(self) -> Path:
        return self.data_dir / TABLES_DIR

    def connect(self) -> bool:
        """Create the directory layout if needed."""
        if self._is_connected:
            return True
        self.tables_dir.mkdir(parents=True, exist_ok=True)
        self._is_connected = True
        logger.info(f"Opened internal database at {self.data_dir}")
        return True

    def disconnect(self):
        if self._is_connected:
            self._is_connected = False
            logger.info("Closed internal database")

    def _table_path(self, table_name: str) -> Path:
        return self.tables_dir / f"{table_name.lower()}.json"

    def _table_lock(self, table_name: str) -> threading.Lock:
        key = table_name.lower()
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def _ensure_connected(self):
        if not self._is_connected:
            raise RuntimeError("Internal database is not open")

    # ── tables ────────────────────────────────────────────────────────────

    def has_table(self, table_name: str) -> bool:
        return self._table_path(table_name).exists()

    def table_names(self) -> List[str]:
        """Names of all tables with stored documents, including orphans."""
        self._ensure_connected()
        return sorted(path.stem for path in self.tables_dir.glob("*.json"))

    def read_table(self, table_name: str) -> List[Document]:
        """
        Return the documents of a table in stored order.
        A table that was never written has no documents.
        """
        self._ensure_connected()
        path = self._table_path(table_name)
        with self._table_lock(table_name):
            if not path.exists():
                logger.debug(f"No documents stored for table {table_name}")
                return []
            with open(path, "r", encoding="utf-8") as f:
                documents = json.load(f)

        if not isinstance(documents, list):
            raise ValueError(f"Corrupt document file for table {table_name}: expected a list")
        return documents

    def replace_table(self, table_name: str, documents: Sequence[Document]) -> int:
        """Overwrite all documents of a table. Returns the number written."""
        self._ensure_connected()
        path = self._table_path(table_name)
        with self._table_lock(table_name):
            _atomic_write_json(path, list(documents))
        logger.debug(f"Replaced table {table_name} with {len(documents)} documents")
        return len(documents)

    # ── schemas ───────────────────────────────────────────────────────────

    def read_schemas(self) -> Optional[List[TableSchema]]:
        """
        Load the persisted catalog, or None if none was ever written.

        Raises:
            ConfigurationError: the catalog file is not a valid schema list.
        """
        self._ensure_connected()
        if not self.schemas_path.exists():
            return None
        try:
            with open(self.schemas_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [TableSchema.from_dict(entry) for entry in data]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            # ValueError covers JSONDecodeError and unknown column types
            raise ConfigurationError(f"Corrupt schema catalog {self.schemas_path}: {e}") from e

    def write_schemas(self, schemas: Sequence[TableSchema]):
        self._ensure_connected()
        _atomic_write_json(self.schemas_path, [schema.to_dict() for schema in schemas])
        logger.debug(f"Wrote {len(schemas)} schemas to {self.schemas_path}")


def _atomic_write_json(path: Path, data: Any):
    """Write JSON to a temp file in the same directory, then rename over path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
