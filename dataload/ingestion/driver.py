"""Ingestion driver.

Runs one load: read raw records from a source, map each onto the target
schema, write the typed rows, then validate. A record that fails mapping is
rejected on its own and logged to the error table; the rest of the load
continues. Source and write failures abort the run.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from sqlalchemy.engine import Engine

from dataload.loaders.destination_writer import DestinationWriter, WriteError
from dataload.quality.load_validator import RowPredicate, ValidationReport, validate_load
from dataload.utils.database_client import get_engine
from dataload.utils.logging_config import load_logging_context
from .error_logger import log_load_error
from .metadata_logger import (
    IngestionError,
    ensure_metadata_tables,
    log_load_failure,
    log_load_start,
    log_load_success,
)
from .record_mapper import MappingError, TableSchema, map_record
from .source_base import RecordSource

log = logging.getLogger(__name__)


class TooManyErrors(IngestionError):
    """Raised when more records were rejected than ``max_errors`` allows."""


@dataclass
class LoadResult:
    """Summary of a load run."""

    run_id: int
    source_name: str
    target_table: str
    rows_read: int = 0
    rows_written: int = 0
    rows_rejected: int = 0
    validation: Optional[ValidationReport] = None

    @property
    def succeeded(self) -> bool:
        return self.validation is None or self.validation.passed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "source_name": self.source_name,
            "target_table": self.target_table,
            "rows_read": self.rows_read,
            "rows_written": self.rows_written,
            "rows_rejected": self.rows_rejected,
            "validation_passed": None if self.validation is None else self.validation.passed,
            "violations": [] if self.validation is None else list(self.validation.violations),
        }


class IngestionDriver:
    """Load records from any source into one destination table.

    Args:
        engine: SQLAlchemy engine for the destination database.
        table_name: Destination table name.
        schema: Target schema used for mapping and table creation.
        db_schema: Database schema holding the destination table.
        mode: ``bulk`` or ``row`` write mode.
        batch_size: Rows per transaction in bulk mode.
        load_mode: ``append`` or ``replace``.
        max_errors: Abort once more than this many records were rejected;
            ``None`` never aborts on rejections.
        metadata_schema: Database schema holding the run and error tables.
        create_table: Create the destination table when missing.
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
        max_errors: Optional[int] = None,
        metadata_schema: Optional[str] = None,
        create_table: bool = True,
    ):
        self.engine = engine
        self.table_name = table_name
        self.schema = schema
        self.db_schema = db_schema
        self.max_errors = max_errors
        self.metadata_schema = metadata_schema
        self.writer = DestinationWriter(
            engine,
            table_name,
            schema,
            db_schema=db_schema,
            mode=mode,
            batch_size=batch_size,
            load_mode=load_mode,
            create_table=create_table,
        )

    def _log_error(self, message: str, result: LoadResult, position: Optional[int] = None, record: Any = None) -> None:
        log_load_error(
            message,
            source_name=result.source_name,
            run_id=result.run_id,
            position=position,
            record=record,
            engine=self.engine,
            schema=self.metadata_schema,
        )

    def _mapped_rows(self, source: RecordSource, result: LoadResult) -> Iterator[Tuple[Any, ...]]:
        for position, raw in enumerate(source, start=1):
            result.rows_read += 1
            try:
                yield map_record(raw, self.schema)
            except MappingError as exc:
                result.rows_rejected += 1
                self._log_error(f"Record {position} rejected: {exc}", result, position, raw)
                self._check_error_budget(result, exc)

    def _check_error_budget(self, result: LoadResult, cause: Exception) -> None:
        if self.max_errors is not None and result.rows_rejected > self.max_errors:
            raise TooManyErrors(
                f"Aborting load of '{result.source_name}': {result.rows_rejected} "
                f"records rejected (max_errors={self.max_errors})"
            ) from cause

    def run(
        self,
        source: RecordSource,
        predicates: Sequence[RowPredicate] = (),
        checks: Sequence[Dict[str, Any]] = (),
        validate: bool = True,
    ) -> LoadResult:
        """Run one load from ``source`` into the destination table.

        Args:
            source: Any record source.
            predicates: Row-level conditions checked after the load.
            checks: Threshold checks run after the load.
            validate: Run post-load validation.

        Returns:
            LoadResult with counts and the validation report.

        Raises:
            IngestionError: If the source fails, a write fails, or too many
                records are rejected. The run is marked failed first.
        """
        ensure_metadata_tables(self.engine, self.metadata_schema)
        source_name = getattr(source, "name", repr(source))
        source_type = getattr(source, "source_type", "unknown")
        run_id = log_load_start(
            source_name,
            source_type,
            self.writer.qualified_name,
            engine=self.engine,
            schema=self.metadata_schema,
        )
        result = LoadResult(run_id=run_id, source_name=source_name, target_table=self.writer.qualified_name)

        with load_logging_context(run_id, source_name, self.writer.qualified_name):
            try:
                self.writer.prepare(force=True)
                baseline = self.writer.count_rows()

                def _on_row_error(row: Tuple[Any, ...], exc: WriteError) -> None:
                    result.rows_rejected += 1
                    self._log_error(f"Row rejected by destination: {exc}", result, record=list(row))
                    self._check_error_budget(result, exc)

                result.rows_written = self.writer.write(
                    self._mapped_rows(source, result), on_row_error=_on_row_error
                )

                if validate:
                    result.validation = validate_load(
                        self.engine,
                        self.table_name,
                        expected_rows=result.rows_read - result.rows_rejected,
                        actual_rows=self.writer.count_rows() - baseline,
                        predicates=predicates,
                        checks=checks,
                        db_schema=self.db_schema,
                        source_name=source_name,
                        run_id=run_id,
                        error_schema=self.metadata_schema,
                    )
            except TooManyErrors as exc:
                self._fail(result, str(exc))
                raise
            except Exception as exc:
                self._fail(result, str(exc))
                raise IngestionError(f"Failed to load '{source_name}': {exc}") from exc

            log_load_success(
                run_id,
                result.rows_read,
                result.rows_written,
                result.rows_rejected,
                engine=self.engine,
                schema=self.metadata_schema,
            )
            log.info("Load complete: %s -> %s (%d read, %d written, %d rejected)",
                     source_name, result.target_table, result.rows_read,
                     result.rows_written, result.rows_rejected)
        return result

    def _fail(self, result: LoadResult, message: str) -> None:
        # Batches committed before the failure stay in the table.
        result.rows_written = self.writer.rows_written
        log_load_failure(
            result.run_id,
            message,
            rows_read=result.rows_read,
            rows_written=result.rows_written,
            rows_rejected=result.rows_rejected,
            engine=self.engine,
            schema=self.metadata_schema,
        )
        self._log_error(message, result)


def run_load(
    source: RecordSource,
    table_name: str,
    schema: TableSchema,
    engine: Optional[Engine] = None,
    predicates: Sequence[RowPredicate] = (),
    checks: Sequence[Dict[str, Any]] = (),
    **options,
) -> LoadResult:
    """Load ``source`` into ``table_name`` with a one-off driver.

    Args:
        source: Any record source.
        table_name: Destination table name.
        schema: Target schema.
        engine: Optional SQLAlchemy engine (defaults to the configured one).
        predicates: Row-level conditions checked after the load.
        checks: Threshold checks run after the load.
        **options: Further ``IngestionDriver`` arguments.

    Returns:
        LoadResult for the run.
    """
    driver = IngestionDriver(engine or get_engine(), table_name, schema, **options)
    return driver.run(source, predicates=predicates, checks=checks)
