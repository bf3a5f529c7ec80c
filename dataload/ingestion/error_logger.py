"""Load error logging for the loader.

Appends timestamped error entries to a side table in the destination
database. Entries are free text plus optional context (source, run id,
record position and the raw record); nothing is remediated automatically.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import pandas as pd
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from dataload.utils.database_client import (
    create_tables,
    fetch_dataframe,
    get_engine,
    qualified_name,
)

log = logging.getLogger(__name__)

ERROR_TABLE = "load_errors"


@dataclass
class ErrorEntry:
    """One logged load error."""

    message: str
    logged_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source_name: Optional[str] = None
    run_id: Optional[int] = None
    position: Optional[int] = None
    record: Optional[str] = None


def error_table(schema: Optional[str] = None, metadata: Optional[MetaData] = None) -> Table:
    """Return the SQLAlchemy definition of the error table."""
    metadata = metadata if metadata is not None else MetaData()
    return Table(
        ERROR_TABLE,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("logged_at", DateTime(timezone=True), nullable=False),
        Column("source_name", String(512)),
        Column("run_id", Integer),
        Column("record_position", Integer),
        Column("error_message", Text, nullable=False),
        Column("record_data", Text),
        schema=schema,
    )


def ensure_error_table(engine: Optional[Engine] = None, schema: Optional[str] = None) -> None:
    """Create the load_errors table if it does not exist."""
    metadata = MetaData()
    error_table(schema, metadata)
    try:
        create_tables(metadata, engine=engine, schema=schema)
        log.info("Ensured %s table exists", qualified_name(ERROR_TABLE, schema))
    except Exception as exc:
        log.error("Failed to create %s table: %s", ERROR_TABLE, exc)
        raise


def _serialize_record(record: Any) -> Optional[str]:
    if record is None:
        return None
    if isinstance(record, str):
        return record
    return json.dumps(record, default=str)


def log_load_error(
    message: str,
    source_name: Optional[str] = None,
    run_id: Optional[int] = None,
    position: Optional[int] = None,
    record: Any = None,
    engine: Optional[Engine] = None,
    schema: Optional[str] = None,
) -> ErrorEntry:
    """Append an error entry to the error table.

    Args:
        message: Description of the failure.
        source_name: Identifier of the source the record came from.
        run_id: Load run id from ``log_load_start``.
        position: 1-based position of the record within the source.
        record: The raw record; non-text values are stored as JSON.
        engine: Optional SQLAlchemy engine.
        schema: Database schema holding the error table.

    Returns:
        The logged ErrorEntry.
    """
    entry = ErrorEntry(
        message=message,
        source_name=source_name,
        run_id=run_id,
        position=position,
        record=_serialize_record(record),
    )
    eng = engine or get_engine()
    with eng.begin() as conn:
        conn.execute(
            error_table(schema).insert().values(
                logged_at=entry.logged_at,
                source_name=entry.source_name,
                run_id=entry.run_id,
                record_position=entry.position,
                error_message=entry.message,
                record_data=entry.record,
            )
        )
    log.warning("Load error logged: source='%s' position=%s error='%s'",
                source_name, position, message)
    return entry


def get_load_errors(
    source_name: Optional[str] = None,
    run_id: Optional[int] = None,
    limit: Optional[int] = None,
    engine: Optional[Engine] = None,
    schema: Optional[str] = None,
) -> pd.DataFrame:
    """Retrieve logged errors, oldest first.

    Args:
        source_name: Only errors for this source.
        run_id: Only errors for this load run.
        limit: Maximum number of rows to return.
        engine: Optional SQLAlchemy engine.
        schema: Database schema holding the error table.

    Returns:
        DataFrame with one row per error entry.
    """
    conditions = []
    params = {}
    if source_name is not None:
        conditions.append("source_name = :source_name")
        params["source_name"] = source_name
    if run_id is not None:
        conditions.append("run_id = :run_id")
        params["run_id"] = run_id

    sql = f"""
        SELECT id, logged_at, source_name, run_id, record_position,
               error_message, record_data
        FROM {qualified_name(ERROR_TABLE, schema)}
    """
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += " ORDER BY id"
    if limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = int(limit)

    return fetch_dataframe(sql, params=params, engine=engine)
