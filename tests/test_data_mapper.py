from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from dbsync.core.errors import TypeMismatchError
from dbsync.models.schema import ColumnDef, ColumnType, TableSchema
from dbsync.sync.data_mapper import DataMapper, row_to_document


@pytest.fixture
def mapper():
    return DataMapper()


def column(sql_type, nullable=True):
    return ColumnDef("value", sql_type, nullable=nullable)


def test_row_to_document_follows_schema(items_schema):
    doc = row_to_document({"id": 1, "name": "Sword", "price": 100}, items_schema)
    assert doc == {"id": 1, "name": "Sword", "price": 100}
    assert list(doc) == ["id", "name", "price"]


def test_non_numeric_string_in_integer_column_is_a_mismatch(items_schema):
    with pytest.raises(TypeMismatchError) as exc_info:
        row_to_document({"id": 1, "name": "Sword", "price": "abc"}, items_schema)

    assert exc_info.value.table_name == "items"
    assert exc_info.value.column == "price"
    assert exc_info.value.value == "abc"


def test_missing_keys_become_null_and_extra_keys_are_dropped(items_schema):
    doc = row_to_document({"ID": 2, "Name": "Shield", "colour": "red"}, items_schema)
    assert doc == {"id": 2, "name": "Shield", "price": None}


def test_null_in_non_nullable_column_is_a_mismatch(items_schema):
    with pytest.raises(TypeMismatchError):
        row_to_document({"id": None, "name": "Sword"}, items_schema)


@pytest.mark.parametrize("sql_type,raw,expected", [
    (ColumnType.INTEGER, "42", 42),
    (ColumnType.INTEGER, Decimal("7"), 7),
    (ColumnType.INTEGER, 3.0, 3),
    (ColumnType.FLOAT, "2.5", 2.5),
    (ColumnType.FLOAT, Decimal("0.25"), 0.25),
    (ColumnType.DECIMAL, Decimal("12.50"), "12.5"),
    (ColumnType.DECIMAL, "0012.3400", "12.34"),
    (ColumnType.DECIMAL, Decimal("1E+2"), "100"),
    (ColumnType.DECIMAL, 12.5, "12.5"),
    (ColumnType.TEXT, b"caf\xc3\xa9", "café"),
    (ColumnType.TEXT, 17, "17"),
    (ColumnType.BLOB, b"\x00\xff", "AP8="),
    (ColumnType.BOOLEAN, 1, True),
    (ColumnType.BOOLEAN, "false", False),
    (ColumnType.BOOLEAN, " Yes ", True),
    (ColumnType.DATE, date(2024, 3, 1), "2024-03-01"),
    (ColumnType.DATE, datetime(2024, 3, 1, 12, 0), "2024-03-01"),
    (ColumnType.DATETIME, datetime(2024, 3, 1, 12, 30, 5), "2024-03-01T12:30:05"),
    (ColumnType.DATETIME, "2024-03-01 12:30:05", "2024-03-01T12:30:05"),
    (ColumnType.TIME, timedelta(hours=8, minutes=30), "08:30:00"),
    (ColumnType.TIME, time(23, 59, 1, 500), "23:59:01.000500"),
    (ColumnType.JSON, '{"a": [1, 2]}', {"a": [1, 2]}),
    (ColumnType.JSON, [1, "x"], [1, "x"]),
])
def test_convert_value_produces_canonical_form(mapper, sql_type, raw, expected):
    assert mapper.convert_value(raw, column(sql_type), "t") == expected


@pytest.mark.parametrize("sql_type,raw", [
    (ColumnType.INTEGER, "1.5"),
    (ColumnType.INTEGER, 2.5),
    (ColumnType.FLOAT, "NaN"),
    (ColumnType.DECIMAL, "twelve"),
    (ColumnType.TEXT, b"\xff\xfe"),
    (ColumnType.BOOLEAN, 2),
    (ColumnType.BOOLEAN, "maybe"),
    (ColumnType.DATE, "01/03/2024"),
    (ColumnType.TIME, timedelta(hours=25)),
    (ColumnType.JSON, "{not json"),
])
def test_convert_value_rejects_bad_values(mapper, sql_type, raw):
    with pytest.raises(TypeMismatchError):
        mapper.convert_value(raw, column(sql_type), "t")


def test_null_passes_through_nullable_columns(mapper):
    for sql_type in ColumnType:
        assert mapper.convert_value(None, column(sql_type), "t") is None


def test_transform_table_data_keeps_row_order(mapper, items_schema):
    rows = [{"id": i, "name": f"item{i}", "price": i * 10} for i in range(5)]
    docs = mapper.transform_table_data(rows, items_schema)
    assert [d["id"] for d in docs] == [0, 1, 2, 3, 4]


def test_schema_with_no_columns_yields_empty_documents(mapper):
    assert mapper.row_to_document({"a": 1}, TableSchema("empty")) == {}
