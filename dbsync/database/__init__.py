from .json_store import JsonDocumentStore
from .schema_registry import SchemaRegistry

__all__ = ["JsonDocumentStore", "SchemaRegistry"]
