"""
Schema data model shared by the registry, the codecs and the connectors.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple


WILDCARD = "all"


class ColumnType(str, Enum):
    """Column types understood by both dialects."""
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    TEXT = "text"
    BLOB = "blob"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    JSON = "json"


class Provider(str, Enum):
    """Export dialect."""
    MYSQL = "mysql"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class ColumnDef:
    name: str
    sql_type: ColumnType
    nullable: bool = True
    is_primary_key: bool = False
    auto_increment: bool = False
    max_length: Optional[int] = None   # varchar / char
    precision: Optional[int] = None    # decimal
    scale: Optional[int] = None        # decimal

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sql_type"] = self.sql_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnDef":
        return cls(
            name=data["name"],
            sql_type=ColumnType(str(data.get("sql_type", "text")).lower()),
            nullable=data.get("nullable", True),
            is_primary_key=data.get("is_primary_key", False),
            auto_increment=data.get("auto_increment", False),
            max_length=data.get("max_length"),
            precision=data.get("precision"),
            scale=data.get("scale"),
        )


@dataclass(frozen=True)
class TableSchema:
    """
    One table of the catalog. Identity is the lowercase name.
    Instances are never mutated; a schema change replaces the whole registry.
    """
    name: str
    columns: Tuple[ColumnDef, ...] = ()
    is_static: bool = True

    def __post_init__(self):
        # accept any iterable of columns but always store a tuple
        object.__setattr__(self, "columns", tuple(self.columns))

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(col.name for col in self.columns)

    @property
    def primary_key(self) -> Tuple[str, ...]:
        return tuple(col.name for col in self.columns if col.is_primary_key)

    def column_map(self) -> Dict[str, ColumnDef]:
        return {col.name: col for col in self.columns}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "is_static": self.is_static,
            "columns": [col.to_dict() for col in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableSchema":
        return cls(
            name=data["name"],
            columns=tuple(ColumnDef.from_dict(col) for col in data.get("columns", [])),
            is_static=data.get("is_static", True),
        )


def _normalize_names(names: Iterable[str]) -> FrozenSet[str]:
    return frozenset(name.strip().lower() for name in names if name and name.strip())


@dataclass(frozen=True)
class SelectionPolicy:
    """
    Which tables a sync operation touches.

    Names are compared case-insensitively; "all" in either set is a wildcard.
    """
    include: FrozenSet[str] = field(default_factory=frozenset)
    exclude: FrozenSet[str] = field(default_factory=frozenset)
    update_only: bool = False

    def __post_init__(self):
        object.__setattr__(self, "include", _normalize_names(self.include))
        object.__setattr__(self, "exclude", _normalize_names(self.exclude))

    @property
    def include_all(self) -> bool:
        return WILDCARD in self.include

    @property
    def exclude_all(self) -> bool:
        return WILDCARD in self.exclude

    def is_included(self, name: str) -> bool:
        return name.lower() in self.include

    def is_excluded(self, name: str) -> bool:
        return name.lower() in self.exclude
