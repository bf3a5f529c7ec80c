"""Tests for the schema detection module."""

import json

import pytest

from dataload.ingestion.schema_detector import (
    SchemaDetectionError,
    infer_schema_from_delimited,
    infer_schema_from_json,
    reflect_table_schema,
)
from dataload.loaders.destination_writer import DestinationWriter


class TestInferSchemaFromDelimited:
    """Tests for infer_schema_from_delimited."""

    def test_detects_columns(self, orders_csv):
        schema = infer_schema_from_delimited(orders_csv)

        assert schema.names == ["order_id", "customer_id", "order_date", "amount", "status"]

    def test_detects_types(self, orders_csv):
        schema = infer_schema_from_delimited(orders_csv)

        assert schema.field("order_id").type == "integer"
        assert schema.field("customer_id").type == "string"
        assert schema.field("order_date").type == "date"
        assert schema.field("amount").type == "float"

    def test_timestamp_column(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text("id,seen_at\n1,2024-01-01T10:00:00\n2,2024-01-02 11:30:00\n")

        schema = infer_schema_from_delimited(str(path))

        assert schema.field("seen_at").type == "timestamp"

    def test_nullable_detection(self, tmp_path):
        path = tmp_path / "gaps.csv"
        path.write_text("a,b\n1,x\n2,\n")

        schema = infer_schema_from_delimited(str(path))

        assert schema.field("a").nullable is False
        assert schema.field("b").nullable is True

    def test_no_header(self, tmp_path):
        path = tmp_path / "raw.txt"
        path.write_text("1|a\n2|b\n")

        schema = infer_schema_from_delimited(str(path), field_terminator="|", header_row=None)

        assert schema.names == ["col_1", "col_2"]
        assert schema.field("col_1").type == "integer"

    def test_header_on_later_line(self, tmp_path):
        path = tmp_path / "report.csv"
        path.write_text("Daily export\nid,name\n1,a\n")

        schema = infer_schema_from_delimited(str(path), header_row=2)

        assert schema.names == ["id", "name"]

    def test_missing_file_raises(self):
        with pytest.raises(SchemaDetectionError, match="Failed to read delimited file"):
            infer_schema_from_delimited("/nonexistent/path.csv")


class TestInferSchemaFromJson:
    """Tests for infer_schema_from_json."""

    def test_detects_types(self, orders_json):
        schema = infer_schema_from_json(orders_json)

        assert schema.field("order_id").type == "integer"
        assert schema.field("amount").type == "float"
        assert schema.field("status").type == "string"

    def test_ndjson(self, tmp_path):
        path = tmp_path / "data.jsonl"
        path.write_text('{"id": 1, "ok": true}\n{"id": 2, "ok": false}\n')

        schema = infer_schema_from_json(str(path))

        assert schema.field("id").type == "integer"
        assert schema.field("ok").type == "boolean"

    def test_empty_array_raises(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text(json.dumps([]))

        with pytest.raises(SchemaDetectionError, match="contains no records"):
            infer_schema_from_json(str(path))

    def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{broken")

        with pytest.raises(SchemaDetectionError, match="Failed to parse JSON"):
            infer_schema_from_json(str(path))


class TestReflectTableSchema:
    """Tests for reflect_table_schema."""

    def test_round_trips_destination_layout(self, engine, orders_schema):
        DestinationWriter(engine, "orders", orders_schema).ensure_table()

        schema = reflect_table_schema(engine, "orders")

        assert schema.names == orders_schema.names
        assert schema.field("order_id").type == "integer"
        assert schema.field("order_id").nullable is False
        assert schema.field("customer_id").max_length == 16
        assert schema.field("order_date").type == "date"
        assert schema.field("amount").type == "decimal"
        assert schema.field("amount").scale == 2

    def test_missing_table(self, engine):
        with pytest.raises(SchemaDetectionError, match="Table 'orders' not found"):
            reflect_table_schema(engine, "orders")
