"""Tests for the record mapping module."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from dataload.ingestion.record_mapper import (
    FieldSpec,
    MappingError,
    TableSchema,
    convert_value,
    map_record,
)


class TestFieldSpec:
    """Tests for FieldSpec and TableSchema construction."""

    def test_rejects_unknown_type(self):
        with pytest.raises(ValueError, match="Unsupported type 'money'"):
            FieldSpec("amount", "money")

    def test_type_is_case_insensitive(self):
        assert FieldSpec("id", "INTEGER").type == "integer"

    def test_key_defaults_to_name(self):
        assert FieldSpec("id").key == "id"
        assert FieldSpec("id", source_key="orderId").key == "orderId"

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate field names: id"):
            TableSchema([FieldSpec("id"), FieldSpec("id")])

    def test_from_dicts_and_back(self):
        schema = TableSchema.from_dicts(
            [
                {"name": "id", "type": "integer", "nullable": False},
                {"name": "amount", "type": "decimal", "precision": 10, "scale": 2},
            ],
            null_values=["", "NULL"],
        )

        assert schema.names == ["id", "amount"]
        assert schema.null_values == ("", "NULL")
        assert schema.to_dicts() == [
            {"name": "id", "type": "integer", "nullable": False},
            {"name": "amount", "type": "decimal", "precision": 10, "scale": 2},
        ]

    def test_field_lookup(self, orders_schema):
        assert orders_schema.field("amount").type == "decimal"
        with pytest.raises(KeyError):
            orders_schema.field("missing")


class TestConvertValue:
    """Tests for convert_value."""

    def test_integer(self):
        assert convert_value(" 42 ", FieldSpec("n", "integer")) == 42
        assert convert_value(7.0, FieldSpec("n", "integer")) == 7

    def test_integer_rejects_fraction(self):
        with pytest.raises(MappingError, match="cannot convert 7.5 to integer"):
            convert_value(7.5, FieldSpec("n", "integer"))

    def test_integer_rejects_boolean(self):
        with pytest.raises(MappingError):
            convert_value(True, FieldSpec("n", "integer"))

    def test_float_rejects_nan(self):
        with pytest.raises(MappingError, match="not a finite number"):
            convert_value("nan", FieldSpec("x", "float"))

    def test_decimal_keeps_precision(self):
        assert convert_value("120.50", FieldSpec("amount", "decimal")) == Decimal("120.50")
        assert convert_value(0.1, FieldSpec("amount", "decimal")) == Decimal("0.1")

    def test_decimal_rejects_text(self):
        with pytest.raises(MappingError) as exc_info:
            convert_value("abc", FieldSpec("amount", "decimal"))
        assert exc_info.value.field == "amount"

    def test_boolean_words(self):
        spec = FieldSpec("flag", "boolean")
        assert convert_value("Yes", spec) is True
        assert convert_value("0", spec) is False
        with pytest.raises(MappingError):
            convert_value("maybe", spec)

    def test_date_iso_and_format(self):
        assert convert_value("2024-01-31", FieldSpec("d", "date")) == date(2024, 1, 31)
        spec = FieldSpec("d", "date", date_format="%d/%m/%Y")
        assert convert_value("31/01/2024", spec) == date(2024, 1, 31)

    def test_timestamp_with_zulu(self):
        result = convert_value("2024-01-01T10:30:00Z", FieldSpec("ts", "timestamp"))
        assert result.utcoffset() == timedelta(0)
        assert result.hour == 10

    def test_timestamp_from_date(self):
        assert convert_value(date(2024, 1, 1), FieldSpec("ts", "timestamp")) == datetime(2024, 1, 1)

    def test_string_max_length(self):
        spec = FieldSpec("code", "string", max_length=3)
        assert convert_value("abc", spec) == "abc"
        with pytest.raises(MappingError, match="exceeds maximum 3"):
            convert_value("abcd", spec)

    def test_null_values(self):
        assert convert_value("", FieldSpec("x", "integer")) is None
        assert convert_value(None, FieldSpec("x", "string")) is None
        assert convert_value("NULL", FieldSpec("x", "integer"), null_values=("NULL",)) is None

    def test_required_field(self):
        with pytest.raises(MappingError, match="Field 'id' is required"):
            convert_value("", FieldSpec("id", "integer", nullable=False))

    def test_bounds(self):
        spec = FieldSpec("qty", "integer", min_value=1, max_value=10)
        assert convert_value("5", spec) == 5
        with pytest.raises(MappingError, match="below minimum 1"):
            convert_value("0", spec)
        with pytest.raises(MappingError, match="above maximum 10"):
            convert_value("11", spec)

    def test_decimal_bound_from_float(self):
        spec = FieldSpec("amount", "decimal", min_value=0)
        with pytest.raises(MappingError, match="below minimum"):
            convert_value("-0.01", spec)

    def test_date_bound_from_text(self):
        spec = FieldSpec("d", "date", min_value="2024-01-01")
        with pytest.raises(MappingError):
            convert_value("2023-12-31", spec)

    def test_aware_timestamp_against_naive_bound(self):
        schema = TableSchema([FieldSpec("ts", "timestamp", min_value="2024-01-01T00:00:00")])

        with pytest.raises(MappingError, match="cannot compare") as exc_info:
            map_record(["2024-05-01T00:00:00Z"], schema)

        assert exc_info.value.field == "ts"
        assert exc_info.value.record == ["2024-05-01T00:00:00Z"]

    def test_timestamp_bound_given_as_date(self):
        # YAML reads an unquoted 2024-01-01 as a date
        spec = FieldSpec("ts", "timestamp", min_value=date(2024, 1, 1), max_value=date(2024, 12, 31))

        assert convert_value("2024-05-01T08:00:00", spec) == datetime(2024, 5, 1, 8)
        with pytest.raises(MappingError, match="below minimum"):
            convert_value("2023-12-31T23:59:59", spec)

    def test_date_bound_given_as_timestamp(self):
        spec = FieldSpec("d", "date", max_value=datetime(2024, 6, 30, 12))

        assert convert_value("2024-06-30", spec) == date(2024, 6, 30)
        with pytest.raises(MappingError, match="above maximum"):
            convert_value("2024-07-01", spec)

    def test_numeric_bound_on_string_field(self):
        with pytest.raises(MappingError, match="cannot compare") as exc_info:
            convert_value("abc", FieldSpec("code", "string", min_value=5))
        assert exc_info.value.field == "code"

    def test_decimal_precision_and_scale(self):
        spec = FieldSpec("amount", "decimal", precision=10, scale=2)

        assert convert_value("12345678.90", spec) == Decimal("12345678.90")
        assert convert_value("1.500", spec) == Decimal("1.500")
        assert convert_value("0", spec) == Decimal("0")
        with pytest.raises(MappingError, match="does not fit NUMERIC"):
            convert_value("123456789.00", spec)
        with pytest.raises(MappingError, match="does not fit NUMERIC"):
            convert_value(Decimal("123456789012345678"), spec)
        with pytest.raises(MappingError, match="more than 2 decimal places"):
            convert_value("1.234", spec)

    def test_decimal_scale_zero(self):
        spec = FieldSpec("units", "decimal", precision=3, scale=0)

        assert convert_value("999", spec) == Decimal("999")
        assert convert_value("1E+2", spec) == Decimal("100")
        with pytest.raises(MappingError):
            convert_value("1000", spec)
        with pytest.raises(MappingError):
            convert_value("0.5", spec)


class TestMapRecord:
    """Tests for map_record."""

    def test_positional_record(self, orders_schema):
        row = map_record(["1001", "C-1", "2024-01-01", "120.50", "shipped"], orders_schema)

        assert row == (1001, "C-1", date(2024, 1, 1), Decimal("120.50"), "shipped")

    def test_mapping_record(self, orders_schema):
        row = map_record(
            {"order_id": 7, "amount": 3.5, "status": "new", "extra": "ignored"},
            orders_schema,
        )

        assert row == (7, None, None, Decimal("3.5"), "new")

    def test_source_key(self):
        schema = TableSchema([FieldSpec("order_id", "integer", source_key="orderId")])
        assert map_record({"orderId": "9"}, schema) == (9,)

    def test_wrong_field_count(self, orders_schema):
        with pytest.raises(MappingError, match="Expected 5 fields, got 2") as exc_info:
            map_record(["1", "C-1"], orders_schema)
        assert exc_info.value.record == ["1", "C-1"]

    def test_error_carries_record(self, orders_schema):
        raw = ["x", "C-1", "2024-01-01", "1.00", "new"]
        with pytest.raises(MappingError) as exc_info:
            map_record(raw, orders_schema)
        assert exc_info.value.field == "order_id"
        assert exc_info.value.record is raw

    def test_unsupported_record_type(self, orders_schema):
        with pytest.raises(MappingError, match="Unsupported record type int"):
            map_record(42, orders_schema)
