"""
Row to document mapping.
Converts rows read from MySQL or SQLite into typed documents for the internal database.
"""

import base64
import json
import logging
import math
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Mapping

from ..core.errors import TypeMismatchError
from ..models.schema import ColumnDef, ColumnType, TableSchema

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

_INT_PATTERN = re.compile(r"^[+-]?\d+$")
_TRUE_STRINGS = {"1", "true", "t", "yes", "y"}
_FALSE_STRINGS = {"0", "false", "f", "no", "n"}


class CoercionError(ValueError):
    """Raised by a type handler; turned into TypeMismatchError with context."""


def _text_of(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise CoercionError(f"not valid UTF-8: {e}")
    return value


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise CoercionError("has a fractional part")
        return int(value)
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise CoercionError("has a fractional part")
        return int(value)
    value = _text_of(value)
    if isinstance(value, str) and _INT_PATTERN.match(value.strip()):
        return int(value.strip())
    raise CoercionError("not an integer")


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise CoercionError("booleans are not floats")
    if isinstance(value, (int, float, Decimal)):
        result = float(value)
    else:
        value = _text_of(value)
        if not isinstance(value, str):
            raise CoercionError("not a number")
        try:
            result = float(value.strip())
        except ValueError:
            raise CoercionError("not a number")
    if math.isnan(result) or math.isinf(result):
        raise CoercionError("NaN and infinity cannot be stored as JSON")
    return result


def _to_decimal(value: Any) -> str:
    if isinstance(value, bool):
        raise CoercionError("booleans are not decimals")
    if isinstance(value, float):
        value = repr(value)
    value = _text_of(value)
    try:
        number = Decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise CoercionError("not a decimal number")
    if not number.is_finite():
        raise CoercionError("not a finite decimal")
    # canonical plain form: 12.50 -> "12.5", 1E+2 -> "100"
    text = format(number.normalize(), "f")
    return "0" if text in ("-0", "+0") else text


def _to_text(value: Any) -> str:
    value = _text_of(value)
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise CoercionError("booleans are not text")
    if isinstance(value, (int, float, Decimal)):
        # SQLite's dynamic typing can hand back numbers from TEXT columns
        return str(value)
    raise CoercionError("not text")


def _to_blob(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
    elif isinstance(value, str):
        raw = value.encode("utf-8")
    else:
        raise CoercionError("not binary data")
    return base64.b64encode(raw).decode("ascii")


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, Decimal)) and value in (0, 1):
        return bool(value)
    value = _text_of(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise CoercionError("not a boolean")


def _to_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    value = _text_of(value)
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10]).isoformat()
        except ValueError:
            pass
    raise CoercionError("not a date")


def _to_datetime(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).isoformat()
    value = _text_of(value)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).isoformat()
        except ValueError:
            pass
    raise CoercionError("not a datetime")


def _to_time(value: Any) -> str:
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, timedelta):
        # MySQL TIME columns come back as timedelta
        if value < timedelta(0) or value >= timedelta(days=1):
            raise CoercionError("outside the time of day range")
        return (datetime.min + value).time().isoformat()
    value = _text_of(value)
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip()).isoformat()
        except ValueError:
            pass
    raise CoercionError("not a time of day")


def _to_json(value: Any) -> Any:
    value = _text_of(value)
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise CoercionError(f"invalid JSON: {e}")
    if isinstance(value, (dict, list, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return _to_float(value)
    raise CoercionError("not a JSON value")


class DataMapper:
    """
    Transforms raw rows into documents following the table schema.
    Every value is coerced to its column's canonical document representation.
    """

    def __init__(self):
        self.type_handlers: Dict[ColumnType, Callable[[Any], Any]] = {
            ColumnType.INTEGER: _to_integer,
            ColumnType.FLOAT: _to_float,
            ColumnType.DECIMAL: _to_decimal,
            ColumnType.TEXT: _to_text,
            ColumnType.BLOB: _to_blob,
            ColumnType.BOOLEAN: _to_boolean,
            ColumnType.DATE: _to_date,
            ColumnType.DATETIME: _to_datetime,
            ColumnType.TIME: _to_time,
            ColumnType.JSON: _to_json,
        }

    def row_to_document(self, raw_row: Mapping[str, Any], schema: TableSchema) -> Document:
        """
        Convert one row into a document with the schema's column order.

        Missing columns are treated as NULL, columns unknown to the schema
        are dropped.

        Raises:
            TypeMismatchError: a value cannot be coerced to its column type.
        """
        row = _case_insensitive(raw_row)
        document = {}
        for column in schema.columns:
            value = row.get(column.name.lower())
            document[column.name] = self.convert_value(value, column, schema.name)
        return document

    def convert_value(self, value: Any, column: ColumnDef, table_name: str = "") -> Any:
        if value is None:
            if not column.nullable:
                raise TypeMismatchError(table_name, column.name, value, column.sql_type.value,
                                        "column is not nullable")
            return None

        handler = self.type_handlers[column.sql_type]
        try:
            return handler(value)
        except CoercionError as e:
            raise TypeMismatchError(table_name, column.name, value, column.sql_type.value, str(e)) from e

    def transform_table_data(self, rows: Iterable[Mapping[str, Any]], schema: TableSchema) -> List[Document]:
        documents = [self.row_to_document(row, schema) for row in rows]
        logger.debug(f"Transformed {len(documents)} rows from table {schema.name}")
        return documents


def _case_insensitive(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key).lower(): value for key, value in row.items()}


# Default instance
data_mapper = DataMapper()


def row_to_document(raw_row: Mapping[str, Any], schema: TableSchema) -> Document:
    return data_mapper.row_to_document(raw_row, schema)
