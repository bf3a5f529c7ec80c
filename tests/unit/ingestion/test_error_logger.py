"""Tests for the load error logging module."""

import json
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import inspect

from dataload.ingestion.error_logger import (
    ERROR_TABLE,
    ensure_error_table,
    get_load_errors,
    log_load_error,
)


class TestEnsureErrorTable:
    """Tests for ensure_error_table."""

    def test_creates_table(self, engine):
        ensure_error_table(engine)

        assert inspect(engine).has_table(ERROR_TABLE)

    def test_is_idempotent(self, engine):
        ensure_error_table(engine)
        ensure_error_table(engine)

        assert inspect(engine).has_table(ERROR_TABLE)


class TestLogLoadError:
    """Tests for log_load_error and get_load_errors."""

    def test_entry_is_timestamped(self, engine):
        ensure_error_table(engine)
        before = datetime.now(timezone.utc)

        entry = log_load_error("Field 'id' is required", source_name="orders.csv", engine=engine)

        assert entry.message == "Field 'id' is required"
        assert entry.logged_at >= before
        assert entry.logged_at.tzinfo is not None

    def test_persists_context(self, engine):
        ensure_error_table(engine)

        log_load_error(
            "Record 3 rejected",
            source_name="orders.csv",
            run_id=7,
            position=3,
            record=["x", "C-1"],
            engine=engine,
        )
        df = get_load_errors(engine=engine)

        assert len(df) == 1
        row = df.iloc[0]
        assert row["error_message"] == "Record 3 rejected"
        assert row["source_name"] == "orders.csv"
        assert row["run_id"] == 7
        assert row["record_position"] == 3
        assert json.loads(row["record_data"]) == ["x", "C-1"]
        assert row["logged_at"] is not None

    def test_record_serialization(self, engine):
        ensure_error_table(engine)

        entry = log_load_error("bad", record={"amount": Decimal("1.50")}, engine=engine)
        text_entry = log_load_error("bad", record="1,2,3", engine=engine)

        assert json.loads(entry.record) == {"amount": "1.50"}
        assert text_entry.record == "1,2,3"

    def test_filters(self, engine):
        ensure_error_table(engine)
        log_load_error("a", source_name="orders.csv", run_id=1, engine=engine)
        log_load_error("b", source_name="orders.csv", run_id=2, engine=engine)
        log_load_error("c", source_name="customers.csv", run_id=3, engine=engine)

        assert list(get_load_errors(source_name="orders.csv", engine=engine)["error_message"]) == ["a", "b"]
        assert list(get_load_errors(run_id=3, engine=engine)["error_message"]) == ["c"]
        assert list(get_load_errors(limit=1, engine=engine)["error_message"]) == ["a"]

    def test_no_errors(self, engine):
        ensure_error_table(engine)

        assert get_load_errors(engine=engine).empty
