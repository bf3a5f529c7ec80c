"""Load run tracking for the loader.

Tracks load runs in a table with source, target, row counts and status.
Provides functions to log start, success, and failure of a load.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from dataload.utils.database_client import (
    create_tables,
    fetch_dataframe,
    get_engine,
    qualified_name,
)
from .error_logger import error_table

log = logging.getLogger(__name__)


class IngestionError(Exception):
    """Raised when a load run fails."""


RUNS_TABLE = "load_runs"


def runs_table(schema: Optional[str] = None, metadata: Optional[MetaData] = None) -> Table:
    """Return the SQLAlchemy definition of the load run table."""
    metadata = metadata if metadata is not None else MetaData()
    return Table(
        RUNS_TABLE,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("source_name", String(512), nullable=False),
        Column("source_type", String(64), nullable=False),
        Column("target_table", String(512), nullable=False),
        Column("status", String(32), nullable=False, default="running"),
        Column("rows_read", Integer),
        Column("rows_written", Integer),
        Column("rows_rejected", Integer),
        Column("error_message", Text),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
        schema=schema,
    )


def ensure_metadata_tables(engine: Optional[Engine] = None, schema: Optional[str] = None) -> None:
    """Create the load_runs and load_errors tables if they do not exist."""
    metadata = MetaData()
    runs_table(schema, metadata)
    error_table(schema, metadata)
    try:
        create_tables(metadata, engine=engine, schema=schema)
        log.info("Ensured load tracking tables exist")
    except Exception as exc:
        log.error("Failed to create load tracking tables: %s", exc)
        raise


def log_load_start(
    source_name: str,
    source_type: str,
    target_table: str,
    engine: Optional[Engine] = None,
    schema: Optional[str] = None,
) -> int:
    """Log the start of a load run.

    Args:
        source_name: Identifier for the data source.
        source_type: Type of source (``delimited``, ``json``, ``api``, ...).
        target_table: Destination table name.
        engine: Optional SQLAlchemy engine.
        schema: Database schema holding the run table.

    Returns:
        The ``id`` of the newly created run row.
    """
    now = datetime.now(timezone.utc)
    eng = engine or get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            runs_table(schema).insert().values(
                source_name=source_name,
                source_type=source_type,
                target_table=target_table,
                status="running",
                created_at=now,
                updated_at=now,
            )
        )
        run_id = result.inserted_primary_key[0]
    log.info("Load started: run_id=%d source='%s' type='%s' target='%s'",
             run_id, source_name, source_type, target_table)
    return run_id


def _update_run(run_id: int, values: Dict[str, Any], engine: Optional[Engine], schema: Optional[str]) -> None:
    table = runs_table(schema)
    values["updated_at"] = datetime.now(timezone.utc)
    eng = engine or get_engine()
    with eng.begin() as conn:
        conn.execute(table.update().where(table.c.id == run_id).values(**values))


def log_load_success(
    run_id: int,
    rows_read: int,
    rows_written: int,
    rows_rejected: int,
    engine: Optional[Engine] = None,
    schema: Optional[str] = None,
) -> None:
    """Log the successful completion of a load run.

    Args:
        run_id: The run id from ``log_load_start``.
        rows_read: Number of raw records read from the source.
        rows_written: Number of rows written to the destination.
        rows_rejected: Number of records rejected during mapping or writing.
    """
    _update_run(run_id, {
        "status": "success",
        "rows_read": rows_read,
        "rows_written": rows_written,
        "rows_rejected": rows_rejected,
    }, engine, schema)
    log.info("Load succeeded: run_id=%d read=%d written=%d rejected=%d",
             run_id, rows_read, rows_written, rows_rejected)


def log_load_failure(
    run_id: int,
    error_message: str,
    rows_read: Optional[int] = None,
    rows_written: Optional[int] = None,
    rows_rejected: Optional[int] = None,
    engine: Optional[Engine] = None,
    schema: Optional[str] = None,
) -> None:
    """Log the failure of a load run.

    Args:
        run_id: The run id from ``log_load_start``.
        error_message: Description of the error.
    """
    _update_run(run_id, {
        "status": "failed",
        "error_message": error_message,
        "rows_read": rows_read,
        "rows_written": rows_written,
        "rows_rejected": rows_rejected,
    }, engine, schema)
    log.error("Load failed: run_id=%d error='%s'", run_id, error_message)


def get_run(run_id: int, engine: Optional[Engine] = None, schema: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Return the run row for ``run_id`` as a dict, or ``None``."""
    sql = f"SELECT * FROM {qualified_name(RUNS_TABLE, schema)} WHERE id = :run_id"
    df = fetch_dataframe(sql, params={"run_id": run_id}, engine=engine)
    if df.empty:
        return None
    return df.iloc[0].to_dict()


def get_last_successful_run(
    source_name: str,
    engine: Optional[Engine] = None,
    schema: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Retrieve the most recent successful load run for a source.

    Args:
        source_name: Identifier for the data source.

    Returns:
        Dict with run metadata, or ``None`` if no successful run exists.
    """
    sql = f"""
        SELECT id, source_name, source_type, target_table,
               rows_read, rows_written, rows_rejected, created_at
        FROM {qualified_name(RUNS_TABLE, schema)}
        WHERE source_name = :source_name AND status = 'success'
        ORDER BY id DESC
        LIMIT 1
    """
    df = fetch_dataframe(sql, params={"source_name": source_name}, engine=engine)
    if df.empty:
        return None
    row = df.iloc[0].to_dict()
    log.info("Last successful run for '%s': id=%s", source_name, row.get("id"))
    return row
