"""Pytest configuration and shared fixtures for loader tests."""

import csv
import json
import os
from unittest.mock import patch

import pandas as pd
import pytest
from sqlalchemy import create_engine

from dataload.ingestion.record_mapper import FieldSpec, TableSchema

ORDER_ROWS = [
    ["1001", "C-1", "2024-01-01", "120.50", "shipped"],
    ["1002", "C-2", "2024-01-02", "75.00", "pending"],
    ["1003", "C-1", "2024-01-03", "-15.25", "refunded"],
    ["1004", "C-3", "2024-01-04", "310.99", "shipped"],
]


@pytest.fixture
def engine(tmp_path):
    """SQLite engine backed by a file in the test's temp directory."""
    eng = create_engine(f"sqlite:///{tmp_path / 'dataload.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def orders_schema():
    """Target schema of the orders table."""
    return TableSchema([
        FieldSpec("order_id", "integer", nullable=False),
        FieldSpec("customer_id", "string", max_length=16),
        FieldSpec("order_date", "date"),
        FieldSpec("amount", "decimal", precision=10, scale=2),
        FieldSpec("status", "string"),
    ])


@pytest.fixture
def orders_csv(tmp_path):
    """Delimited orders file with a header row."""
    path = tmp_path / "orders.csv"
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["order_id", "customer_id", "order_date", "amount", "status"])
        writer.writerows(ORDER_ROWS)
    return str(path)


@pytest.fixture
def orders_json(tmp_path):
    """JSON array of order objects."""
    data = [
        {"order_id": int(r[0]), "customer_id": r[1], "order_date": r[2],
         "amount": float(r[3]), "status": r[4]}
        for r in ORDER_ROWS
    ]
    path = tmp_path / "orders.json"
    with open(path, "w") as f:
        json.dump(data, f)
    return str(path)


@pytest.fixture
def sample_parquet_file(tmp_path):
    """Parquet file with three product rows."""
    df = pd.DataFrame(
        {
            "product_id": [1, 2, 3],
            "name": ["Widget", "Gadget", "Doohickey"],
            "price": [9.99, 24.99, 4.99],
        }
    )
    path = tmp_path / "products.parquet"
    df.to_parquet(path, index=False)
    return str(path)


@pytest.fixture
def clean_env():
    """Remove loader environment variables for the duration of a test."""
    names = [k for k in os.environ if k.startswith(("DATALOAD_", "POSTGRES_"))]
    with patch.dict(os.environ, {}, clear=False):
        for name in names:
            del os.environ[name]
        yield


@pytest.fixture
def postgres_env():
    """Set PostgreSQL environment variables for testing."""
    env_vars = {
        "POSTGRES_USER": "test-user",
        "POSTGRES_PASSWORD": "test-password",
        "POSTGRES_HOST": "localhost",
        "POSTGRES_PORT": "5432",
        "POSTGRES_DB": "test-db",
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars
