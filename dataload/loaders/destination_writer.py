"""Destination writer for typed rows.

Inserts typed tuples into a named table either in bulk (batches, one
transaction per batch) or row by row with a commit after every row. There
is no upsert or deduplication: loading the same rows twice stores them
twice.
"""

import logging
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    func,
    inspect,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dataload.config.load_config import LOAD_MODES, WRITE_MODES
from dataload.ingestion.record_mapper import FieldSpec, TableSchema
from dataload.utils.database_client import create_tables, qualified_name

log = logging.getLogger(__name__)


class WriteError(Exception):
    """Raised when rows cannot be written to the destination."""

    def __init__(self, message: str, row: Optional[Tuple[Any, ...]] = None):
        super().__init__(message)
        self.row = row


def _column_type(spec: FieldSpec):
    if spec.type == "integer":
        return BigInteger()
    if spec.type == "float":
        return Float()
    if spec.type == "decimal":
        return Numeric(spec.precision, spec.scale)
    if spec.type == "boolean":
        return Boolean()
    if spec.type == "date":
        return Date()
    if spec.type == "timestamp":
        return DateTime()
    if spec.max_length is not None:
        return String(spec.max_length)
    return Text()


def build_table(
    table_name: str,
    schema: TableSchema,
    db_schema: Optional[str] = None,
    metadata: Optional[MetaData] = None,
) -> Table:
    """Build a SQLAlchemy table definition from a TableSchema."""
    metadata = metadata if metadata is not None else MetaData()
    columns = [
        Column(spec.name, _column_type(spec), nullable=spec.nullable)
        for spec in schema.fields
    ]
    return Table(table_name, metadata, *columns, schema=db_schema)


class DestinationWriter:
    """Write typed tuples into one destination table.

    Args:
        engine: SQLAlchemy engine for the destination database.
        table_name: Destination table name.
        schema: Field layout of the destination table.
        db_schema: Database schema holding the table.
        mode: ``bulk`` (batched inserts) or ``row`` (commit per row).
        batch_size: Rows per transaction in bulk mode.
        load_mode: ``append`` keeps existing rows, ``replace`` deletes
            them before the first write.
        create_table: Create the table when it does not exist.
    """

    def __init__(
        self,
        engine: Engine,
        table_name: str,
        schema: TableSchema,
        db_schema: Optional[str] = None,
        mode: str = "bulk",
        batch_size: int = 1000,
        load_mode: str = "append",
        create_table: bool = True,
    ):
        if mode not in WRITE_MODES:
            raise ValueError(f"Unknown write mode '{mode}'")
        if load_mode not in LOAD_MODES:
            raise ValueError(f"Unknown load mode '{load_mode}'")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.engine = engine
        self.table_name = table_name
        self.schema = schema
        self.db_schema = db_schema
        self.mode = mode
        self.batch_size = batch_size
        self.load_mode = load_mode
        self.create_table = create_table
        self.table = build_table(table_name, schema, db_schema)
        self._prepared = False
        self.rows_written = 0

    @property
    def qualified_name(self) -> str:
        return qualified_name(self.table_name, self.db_schema)

    def table_exists(self) -> bool:
        return inspect(self.engine).has_table(self.table_name, schema=self.db_schema)

    def ensure_table(self) -> None:
        """Create the destination table if it does not exist."""
        create_tables(self.table.metadata, engine=self.engine, schema=self.db_schema)
        log.info("Ensured destination table %s exists", self.qualified_name)

    def count_rows(self) -> int:
        """Return the number of rows currently in the destination table."""
        if not self.table_exists():
            return 0
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(self.table)).scalar()

    def prepare(self, force: bool = False) -> None:
        """Create or clear the destination table before the first write.

        Runs once per writer unless ``force`` is set, which starts a new load
        and resets ``rows_written``, the count of rows committed since.
        """
        if self._prepared and not force:
            return
        self.rows_written = 0
        try:
            if self.create_table:
                self.ensure_table()
            elif not self.table_exists():
                raise WriteError(f"Destination table {self.qualified_name} does not exist")
            if self.load_mode == "replace":
                with self.engine.begin() as conn:
                    deleted = conn.execute(self.table.delete()).rowcount
                log.info("Cleared %s existing rows from %s", deleted, self.qualified_name)
        except SQLAlchemyError as exc:
            raise WriteError(f"Failed to prepare {self.qualified_name}: {exc}") from exc
        self._prepared = True

    def _as_params(self, row: Sequence[Any]) -> dict:
        if len(row) != len(self.schema.fields):
            raise WriteError(
                f"Row has {len(row)} values, {self.qualified_name} expects {len(self.schema.fields)}",
                row=tuple(row),
            )
        return dict(zip(self.schema.names, row))

    def write_batch(self, rows: Sequence[Sequence[Any]]) -> int:
        """Insert ``rows`` in a single transaction.

        Raises:
            WriteError: If the insert fails; the whole batch is rolled back.
        """
        if not rows:
            return 0
        self.prepare()
        params = [self._as_params(row) for row in rows]
        try:
            with self.engine.begin() as conn:
                conn.execute(self.table.insert(), params)
        except SQLAlchemyError as exc:
            raise WriteError(
                f"Bulk insert of {len(rows)} rows into {self.qualified_name} failed: {exc}"
            ) from exc
        self.rows_written += len(rows)
        log.debug("Inserted batch of %d rows into %s", len(rows), self.qualified_name)
        return len(rows)

    def write_row(self, row: Sequence[Any]) -> int:
        """Insert and commit a single row.

        Raises:
            WriteError: If the insert fails.
        """
        self.prepare()
        params = self._as_params(row)
        try:
            with self.engine.begin() as conn:
                conn.execute(self.table.insert(), params)
        except SQLAlchemyError as exc:
            raise WriteError(
                f"Insert into {self.qualified_name} failed: {exc}", row=tuple(row)
            ) from exc
        self.rows_written += 1
        return 1

    def write(
        self,
        rows: Iterable[Sequence[Any]],
        on_row_error: Optional[Callable[[Tuple[Any, ...], WriteError], None]] = None,
    ) -> int:
        """Write all ``rows`` and return the number written.

        Args:
            rows: Typed tuples in schema order.
            on_row_error: Row mode only. Called with the failing row and
                the error instead of raising, so later rows still load.

        Raises:
            WriteError: On the first failure in bulk mode, or in row mode
                when no ``on_row_error`` callback is given.
        """
        self.prepare()
        written = 0

        if self.mode == "row":
            for row in rows:
                try:
                    written += self.write_row(row)
                except WriteError as exc:
                    if on_row_error is None:
                        raise
                    on_row_error(tuple(row), exc)
        else:
            batch = []
            for row in rows:
                batch.append(row)
                if len(batch) >= self.batch_size:
                    written += self.write_batch(batch)
                    batch = []
            written += self.write_batch(batch)

        log.info("Wrote %d rows to %s (mode=%s)", written, self.qualified_name, self.mode)
        return written
