"""
Document to SQL translation for MySQL and SQLite.

The provider set is closed: each Provider maps to one SqlDialect in DIALECTS
and every function here dispatches through that table.
"""

import base64
import binascii
import json
import logging
import math
import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from ..core.errors import TypeMismatchError
from ..models.schema import ColumnDef, ColumnType, Provider, TableSchema

logger = logging.getLogger(__name__)

Document = Mapping[str, Any]

DEFAULT_BATCH_SIZE = 1000
MYSQL_KEY_LENGTH = 255
STAGING_SUFFIX = "__dbsync_staging"
RETIRED_SUFFIX = "__dbsync_old"


def _mysql_escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace("'", "''")
        .replace("\x00", "\\0")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\x1a", "\\Z")
    )


def _sqlite_escape(text: str) -> str:
    return text.replace("'", "''")


def _mysql_type(column: ColumnDef) -> str:
    sql_type = column.sql_type
    if sql_type == ColumnType.INTEGER:
        return "BIGINT"
    if sql_type == ColumnType.FLOAT:
        return "DOUBLE"
    if sql_type == ColumnType.DECIMAL:
        precision = column.precision or 20
        scale = column.scale if column.scale is not None else 6
        return f"DECIMAL({precision},{scale})"
    # TEXT and BLOB keys need a length in MySQL (error 1170)
    if sql_type == ColumnType.TEXT:
        if column.max_length:
            return f"VARCHAR({column.max_length})"
        if column.is_primary_key:
            return f"VARCHAR({MYSQL_KEY_LENGTH})"
        return "LONGTEXT"
    if sql_type == ColumnType.BLOB:
        if column.is_primary_key:
            return f"VARBINARY({column.max_length or MYSQL_KEY_LENGTH})"
        return "LONGBLOB"
    if sql_type == ColumnType.BOOLEAN:
        return "TINYINT(1)"
    if sql_type == ColumnType.DATE:
        return "DATE"
    if sql_type == ColumnType.DATETIME:
        return "DATETIME(6)"
    if sql_type == ColumnType.TIME:
        return "TIME(6)"
    if sql_type == ColumnType.JSON:
        return "JSON"
    raise ValueError(f"Unsupported column type: {sql_type}")


_SQLITE_TYPES = {
    ColumnType.INTEGER: "INTEGER",
    ColumnType.FLOAT: "REAL",
    ColumnType.DECIMAL: "DECIMAL",
    ColumnType.TEXT: "TEXT",
    ColumnType.BLOB: "BLOB",
    ColumnType.BOOLEAN: "BOOLEAN",
    ColumnType.DATE: "DATE",
    ColumnType.DATETIME: "DATETIME",
    ColumnType.TIME: "TIME",
    ColumnType.JSON: "JSON",
}


def _sqlite_type(column: ColumnDef) -> str:
    if column.sql_type == ColumnType.TEXT and column.max_length:
        return f"VARCHAR({column.max_length})"
    return _SQLITE_TYPES[column.sql_type]


@dataclass(frozen=True)
class SqlDialect:
    """Syntax conventions of one SQL provider."""
    provider: Provider
    quote_char: str
    escape_string: Callable[[str], str]
    true_literal: str
    false_literal: str
    column_type: Callable[[ColumnDef], str]
    replace_verb: str
    max_batch_rows: int
    inline_autoincrement: bool
    autoincrement_keyword: str
    table_suffix: str = ""
    # expression for a NUL character where a string literal cannot hold one
    nul_literal: Optional[str] = None

    def quote(self, identifier: str) -> str:
        q = self.quote_char
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def string(self, text: str) -> str:
        if self.nul_literal and "\x00" in text:
            pieces = (f"'{self.escape_string(piece)}'" for piece in text.split("\x00"))
            return f" || {self.nul_literal} || ".join(pieces)
        return f"'{self.escape_string(text)}'"


MYSQL = SqlDialect(
    provider=Provider.MYSQL,
    quote_char="`",
    escape_string=_mysql_escape,
    true_literal="1",
    false_literal="0",
    column_type=_mysql_type,
    replace_verb="REPLACE INTO",
    max_batch_rows=DEFAULT_BATCH_SIZE,
    inline_autoincrement=False,
    autoincrement_keyword="AUTO_INCREMENT",
    table_suffix=" DEFAULT CHARSET=utf8mb4",
)

SQLITE = SqlDialect(
    provider=Provider.SQLITE,
    quote_char='"',
    escape_string=_sqlite_escape,
    true_literal="TRUE",
    false_literal="FALSE",
    column_type=_sqlite_type,
    replace_verb="INSERT OR REPLACE INTO",
    # compound VALUES lists are capped by SQLITE_MAX_COMPOUND_SELECT
    max_batch_rows=500,
    inline_autoincrement=True,
    autoincrement_keyword="AUTOINCREMENT",
    nul_literal="char(0)",
)

DIALECTS: Dict[Provider, SqlDialect] = {
    Provider.MYSQL: MYSQL,
    Provider.SQLITE: SQLITE,
}


def get_dialect(provider: Provider) -> SqlDialect:
    return DIALECTS[Provider(provider)]


# ─────────────────────────────────────────────
# Literals
# ─────────────────────────────────────────────

def value_to_sql(value: Any, column: ColumnDef, provider: Provider, table_name: str = "") -> str:
    """
    Render one document value as a SQL literal for the given dialect.

    Raises:
        TypeMismatchError: the value does not fit the column type, or it is
            NULL for a non-nullable column.
    """
    dialect = get_dialect(provider)

    def mismatch(reason: str) -> TypeMismatchError:
        return TypeMismatchError(table_name, column.name, value, column.sql_type.value, reason)

    if value is None:
        if not column.nullable:
            raise mismatch("column is not nullable")
        return "NULL"

    sql_type = column.sql_type

    if sql_type == ColumnType.BOOLEAN:
        if isinstance(value, bool):
            return dialect.true_literal if value else dialect.false_literal
        if isinstance(value, int) and value in (0, 1):
            return dialect.true_literal if value else dialect.false_literal
        raise mismatch("not a boolean")

    if sql_type == ColumnType.INTEGER:
        if isinstance(value, bool) or not isinstance(value, int):
            raise mismatch("not an integer")
        return str(value)

    if sql_type == ColumnType.FLOAT:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise mismatch("not a number")
        if math.isnan(value) or math.isinf(value):
            raise mismatch("NaN and infinity have no SQL literal")
        return repr(float(value))

    if sql_type == ColumnType.DECIMAL:
        if isinstance(value, bool):
            raise mismatch("not a decimal number")
        if isinstance(value, (int, float)):
            return repr(value)
        if isinstance(value, str) and _is_decimal_literal(value):
            return value.strip()
        raise mismatch("not a decimal number")

    if sql_type == ColumnType.BLOB:
        if not isinstance(value, str):
            raise mismatch("blob values are base64 strings")
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise mismatch("invalid base64")
        return f"X'{raw.hex().upper()}'"

    if sql_type == ColumnType.JSON:
        return dialect.string(json.dumps(value, ensure_ascii=False, separators=(",", ":")))

    # text, date, datetime, time are stored as strings in documents
    if not isinstance(value, str):
        raise mismatch("expected a string")
    return dialect.string(value)


def _is_decimal_literal(text: str) -> bool:
    text = text.strip()
    if not text:
        return False
    if text[0] in "+-":
        text = text[1:]
    whole, _, fraction = text.partition(".")
    return (whole.isdigit() or (not whole and fraction.isdigit())) and (not fraction or fraction.isdigit())


# ─────────────────────────────────────────────
# Statements
# ─────────────────────────────────────────────

def _row_values(doc: Document, schema: TableSchema, provider: Provider) -> str:
    values = [value_to_sql(doc.get(col.name), col, provider, schema.name) for col in schema.columns]
    return "(" + ", ".join(values) + ")"


def _insert_head(schema: TableSchema, dialect: SqlDialect, replace: bool) -> str:
    verb = dialect.replace_verb if replace else "INSERT INTO"
    columns = ", ".join(dialect.quote(col.name) for col in schema.columns)
    return f"{verb} {dialect.quote(schema.name)} ({columns}) VALUES "


def document_to_sql(doc: Document, schema: TableSchema, provider: Provider, replace: bool = False) -> str:
    """Single-row INSERT (or REPLACE when replace=True) for one document."""
    dialect = get_dialect(provider)
    return _insert_head(schema, dialect, replace) + _row_values(doc, schema, provider) + ";"


def documents_to_sql(
    docs: Sequence[Document],
    schema: TableSchema,
    provider: Provider,
    replace: bool = False,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[str]:
    """Multi-row statements, at most the dialect's row limit per statement."""
    dialect = get_dialect(provider)
    batch_size = max(1, min(batch_size, dialect.max_batch_rows))
    head = _insert_head(schema, dialect, replace)

    for start in range(0, len(docs), batch_size):
        batch = docs[start:start + batch_size]
        rows = ",\n".join(_row_values(doc, schema, provider) for doc in batch)
        yield head + "\n" + rows + ";"


def _column_ddl(column: ColumnDef, schema: TableSchema, dialect: SqlDialect) -> str:
    parts = [dialect.quote(column.name), dialect.column_type(column)]

    single_pk = schema.primary_key == (column.name,)
    if dialect.inline_autoincrement and column.auto_increment and single_pk:
        # SQLite only allows AUTOINCREMENT on an INTEGER PRIMARY KEY column
        parts = [dialect.quote(column.name), "INTEGER PRIMARY KEY", dialect.autoincrement_keyword]
        return " ".join(parts)

    if not column.nullable:
        parts.append("NOT NULL")
    if column.auto_increment and not dialect.inline_autoincrement:
        parts.append(dialect.autoincrement_keyword)
    return " ".join(parts)


def schema_to_ddl(schema: TableSchema, provider: Provider) -> str:
    """CREATE TABLE statement for a schema."""
    dialect = get_dialect(provider)
    lines = [_column_ddl(col, schema, dialect) for col in schema.columns]

    pk = schema.primary_key
    inline_pk = (
        dialect.inline_autoincrement
        and len(pk) == 1
        and schema.column_map()[pk[0]].auto_increment
    )
    if pk and not inline_pk:
        lines.append("PRIMARY KEY (" + ", ".join(dialect.quote(name) for name in pk) + ")")

    body = ",\n  ".join(lines)
    return f"CREATE TABLE {dialect.quote(schema.name)} (\n  {body}\n){dialect.table_suffix};"


def drop_table_sql(schema: TableSchema, provider: Provider) -> str:
    return f"DROP TABLE IF EXISTS {get_dialect(provider).quote(schema.name)};"


def table_to_sql(
    schema: TableSchema,
    docs: Sequence[Document],
    provider: Provider,
    update_only: bool = False,
    batch_size: int = DEFAULT_BATCH_SIZE,
    include_ddl: Optional[bool] = None,
) -> List[str]:
    """
    Full export script for one table.

    A regular export drops and recreates the table before inserting rows.
    An update-only export keeps the table and upserts rows instead.
    """
    if include_ddl is None:
        include_ddl = not update_only

    statements = []
    if include_ddl:
        statements.append(drop_table_sql(schema, provider))
        statements.append(schema_to_ddl(schema, provider))
    statements.extend(documents_to_sql(docs, schema, provider, replace=update_only, batch_size=batch_size))
    return statements


def staging_name(schema: TableSchema) -> str:
    return schema.name + STAGING_SUFFIX


def staged_table_to_sql(
    schema: TableSchema,
    docs: Sequence[Document],
    provider: Provider,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> List[str]:
    """
    Full export script that loads a staging table and swaps it in.

    For databases whose DDL commits implicitly (MySQL), so that a failed load
    never touches the live table. RENAME TABLE swaps both names in one step.
    """
    dialect = get_dialect(provider)
    staging = dataclasses.replace(schema, name=staging_name(schema))
    retired = dialect.quote(schema.name + RETIRED_SUFFIX)
    live = dialect.quote(schema.name)

    statements = [drop_table_sql(staging, provider), schema_to_ddl(staging, provider)]
    statements.extend(documents_to_sql(docs, staging, provider, batch_size=batch_size))
    statements.extend([
        f"DROP TABLE IF EXISTS {retired};",
        f"CREATE TABLE IF NOT EXISTS {live} LIKE {dialect.quote(staging.name)};",
        f"RENAME TABLE {live} TO {retired}, {dialect.quote(staging.name)} TO {live};",
        f"DROP TABLE {retired};",
    ])
    return statements
