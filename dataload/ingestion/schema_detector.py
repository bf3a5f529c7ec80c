"""Schema detection utilities for the loader.

Infers a target TableSchema from a sample of a delimited or JSON file, the
way an import wizard guesses column types, or reflects it from an existing
destination table.
"""

import json
import logging
from typing import List, Optional

import pandas as pd
from sqlalchemy import inspect
from sqlalchemy import types as sqltypes
from sqlalchemy.engine import Engine

from .record_mapper import FieldSpec, TableSchema

log = logging.getLogger(__name__)


class SchemaDetectionError(Exception):
    """Raised when schema detection fails."""


# Mapping from pandas/numpy dtype names to field types
_DTYPE_MAP = {
    "int64": "integer",
    "int32": "integer",
    "Int64": "integer",
    "float64": "float",
    "float32": "float",
    "object": "string",
    "bool": "boolean",
    "boolean": "boolean",
    "datetime64[ns]": "timestamp",
    "datetime64[ns, UTC]": "timestamp",
    "category": "string",
}

_DATE_FORMAT = "%Y-%m-%d"


def _text_type(series: pd.Series) -> str:
    """Refine a text column into date or timestamp when every value parses."""
    values = series.dropna().astype(str)
    values = values[values.str.strip() != ""]
    if values.empty:
        return "string"
    dates = pd.to_datetime(values, format=_DATE_FORMAT, errors="coerce")
    if dates.notna().all():
        return "date"
    stamps = pd.to_datetime(values, format="ISO8601", errors="coerce", utc=True)
    if stamps.notna().all() and values.str.contains(r"\d{4}-\d{2}-\d{2}[T ]\d", regex=True).all():
        return "timestamp"
    return "string"


def _field_type(series: pd.Series) -> str:
    name = str(series.dtype)
    field_type = _DTYPE_MAP.get(name, "string")
    if field_type == "string":
        return _text_type(series)
    return field_type


def _schema_from_frame(df: pd.DataFrame) -> TableSchema:
    fields: List[FieldSpec] = []
    for col in df.columns:
        fields.append(FieldSpec(
            name=str(col),
            type=_field_type(df[col]),
            nullable=bool(df[col].isnull().any()) or df.empty,
        ))
    return TableSchema(fields)


def infer_schema_from_delimited(
    file_path: str,
    field_terminator: str = ",",
    header_row: Optional[int] = 1,
    sample_size: int = 1000,
    encoding: str = "utf-8",
) -> TableSchema:
    """Infer a schema from a sample of a delimited file.

    Args:
        file_path: Path to the file.
        field_terminator: Field separator.
        header_row: 1-based line holding the column names, or ``None``
            when the file has no header (columns become ``col_1``...).
        sample_size: Maximum number of data rows to inspect.
        encoding: File encoding.

    Returns:
        TableSchema with one field per column.

    Raises:
        SchemaDetectionError: If the file cannot be read or parsed.
    """
    try:
        df = pd.read_csv(
            file_path,
            sep=field_terminator,
            header=None if header_row is None else 0,
            skiprows=0 if header_row is None else header_row - 1,
            nrows=sample_size,
            encoding=encoding,
            engine="c" if len(field_terminator) == 1 else "python",
        )
    except Exception as exc:
        raise SchemaDetectionError(f"Failed to read delimited file '{file_path}': {exc}") from exc

    if header_row is None:
        df.columns = [f"col_{i}" for i in range(1, len(df.columns) + 1)]

    schema = _schema_from_frame(df)
    log.info("Detected schema for '%s': %d columns, %d sample rows",
             file_path, len(schema), len(df))
    return schema


def infer_schema_from_json(file_path: str, sample_size: int = 100) -> TableSchema:
    """Infer a schema from sample records of a JSON file.

    Expects the file to contain either a JSON array of objects or
    newline-delimited JSON objects.

    Raises:
        SchemaDetectionError: If the file cannot be read or parsed.
    """
    try:
        with open(file_path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError:
        # Try newline-delimited JSON
        try:
            data = []
            with open(file_path, "r") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        data.append(json.loads(line))
                    if len(data) >= sample_size:
                        break
        except Exception as exc:
            raise SchemaDetectionError(
                f"Failed to parse JSON file '{file_path}': {exc}"
            ) from exc
    except Exception as exc:
        raise SchemaDetectionError(f"Failed to read JSON file '{file_path}': {exc}") from exc

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or len(data) == 0:
        raise SchemaDetectionError(f"JSON file '{file_path}' contains no records")

    df = pd.DataFrame(data[:sample_size])
    schema = _schema_from_frame(df)
    log.info("Detected schema for '%s': %d columns, %d sample records",
             file_path, len(schema), len(df))
    return schema


def _reflected_field(column: dict) -> FieldSpec:
    col_type = column["type"]
    spec = {"name": column["name"], "nullable": bool(column.get("nullable", True))}
    if isinstance(col_type, sqltypes.Boolean):
        spec["type"] = "boolean"
    elif isinstance(col_type, sqltypes.Integer):
        spec["type"] = "integer"
    elif isinstance(col_type, sqltypes.Float):
        spec["type"] = "float"
    elif isinstance(col_type, sqltypes.Numeric):
        spec["type"] = "decimal"
        if col_type.precision is not None:
            spec["precision"] = col_type.precision
        if col_type.scale is not None:
            spec["scale"] = col_type.scale
    elif isinstance(col_type, sqltypes.DateTime):
        spec["type"] = "timestamp"
    elif isinstance(col_type, sqltypes.Date):
        spec["type"] = "date"
    else:
        spec["type"] = "string"
        length = getattr(col_type, "length", None)
        if length:
            spec["max_length"] = length
    return FieldSpec(**spec)


def reflect_table_schema(
    engine: Engine,
    table_name: str,
    db_schema: Optional[str] = None,
) -> TableSchema:
    """Read the column layout of an existing destination table.

    Raises:
        SchemaDetectionError: If the table does not exist.
    """
    inspector = inspect(engine)
    if not inspector.has_table(table_name, schema=db_schema):
        raise SchemaDetectionError(f"Table '{table_name}' not found")
    columns = inspector.get_columns(table_name, schema=db_schema)
    schema = TableSchema([_reflected_field(c) for c in columns])
    log.info("Reflected schema for '%s': %d columns", table_name, len(schema))
    return schema
