"""Database client utilities for the loader.

All destination access goes through a SQLAlchemy engine so the same code
runs against PostgreSQL in production and SQLite in tests.
"""

import logging
from contextlib import contextmanager
from typing import Any, List, Optional

import pandas as pd
from sqlalchemy import MetaData, create_engine, inspect, text
from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def get_engine(connection_string: Optional[str] = None) -> Engine:
    """Create or return a cached SQLAlchemy engine.

    Args:
        connection_string: Optional explicit SQLAlchemy URL. If not
            provided, it is built from the environment through
            ``DatabaseConfig`` and the resulting engine is cached.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine
    if connection_string is None and _engine is not None:
        return _engine

    cache = connection_string is None
    if connection_string is None:
        from dataload.config.load_config import DatabaseConfig

        connection_string = DatabaseConfig().connection_string

    if connection_string.startswith("sqlite"):
        engine = create_engine(connection_string)
    else:
        engine = create_engine(
            connection_string,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )

    if cache:
        _engine = engine

    log.info("Database engine created for dialect '%s'", engine.dialect.name)
    return engine


def reset_engine() -> None:
    """Dispose of the cached engine, if any."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


@contextmanager
def _get_connection(engine: Optional[Engine] = None):
    """Context manager for database connections with automatic cleanup."""
    eng = engine or get_engine()
    conn = eng.connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute_query(sql: str, params: Optional[dict] = None, engine: Optional[Engine] = None) -> Any:
    """Execute a SQL statement and commit.

    Args:
        sql: SQL statement string with ``:name`` placeholders.
        params: Optional statement parameters.
        engine: Optional SQLAlchemy engine (uses default if not provided).

    Returns:
        List of result rows for statements that return rows, otherwise
        the affected row count.
    """
    with _get_connection(engine) as conn:
        result = conn.execute(text(sql), params or {})
        log.debug("Executed query: %s", sql[:100])
        if result.returns_rows:
            return result.fetchall()
        return result.rowcount


def fetch_scalar(sql: str, params: Optional[dict] = None, engine: Optional[Engine] = None) -> Any:
    """Execute a query and return the first column of the first row."""
    with _get_connection(engine) as conn:
        return conn.execute(text(sql), params or {}).scalar()


def fetch_dataframe(sql: str, params: Optional[dict] = None, engine: Optional[Engine] = None) -> pd.DataFrame:
    """Execute a SQL query and return results as a pandas DataFrame.

    Args:
        sql: SQL query string.
        params: Optional query parameters.
        engine: Optional SQLAlchemy engine.

    Returns:
        pandas DataFrame with query results.
    """
    eng = engine or get_engine()
    df = pd.read_sql(text(sql), eng, params=params or {})
    log.debug("Fetched DataFrame with %d rows from query: %s", len(df), sql[:100])
    return df


def create_tables(metadata: MetaData, engine: Optional[Engine] = None, schema: Optional[str] = None) -> None:
    """Create all tables of ``metadata`` that do not exist yet.

    Args:
        metadata: SQLAlchemy MetaData holding the table definitions.
        engine: Optional SQLAlchemy engine.
        schema: Database schema to create first (skipped on SQLite).
    """
    eng = engine or get_engine()
    if schema and eng.dialect.name != "sqlite":
        execute_query(f"CREATE SCHEMA IF NOT EXISTS {schema}", engine=eng)
    metadata.create_all(eng, checkfirst=True)


def qualified_name(table_name: str, schema: Optional[str] = None) -> str:
    """Return ``schema.table`` or just ``table`` when no schema is set."""
    return f"{schema}.{table_name}" if schema else table_name


def list_tables(engine: Optional[Engine] = None, schema: Optional[str] = None) -> List[str]:
    """List table names in ``schema`` (or the default schema)."""
    eng = engine or get_engine()
    return inspect(eng).get_table_names(schema=schema)
