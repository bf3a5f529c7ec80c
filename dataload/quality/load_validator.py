"""Post-load validation for the loader.

Compares source and destination row counts, flags destination rows that
fail simple SQL predicates (for example ``amount >= 0``), and runs
single-value threshold checks. Every violation is written to the error
table; nothing is remediated.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from sqlalchemy.engine import Engine

from dataload.ingestion.error_logger import log_load_error
from dataload.utils.database_client import fetch_dataframe, fetch_scalar, qualified_name

log = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when post-load validation fails."""

    def __init__(self, message: str, report: "ValidationReport" = None):
        super().__init__(message)
        self.report = report


@dataclass
class RowPredicate:
    """A condition every destination row must satisfy.

    ``condition`` is a SQL boolean expression over the table's columns.
    Rows where it evaluates to NULL are not flagged.
    """

    description: str
    condition: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RowPredicate":
        return cls(
            description=data.get("description", data["condition"]),
            condition=data["condition"],
        )


@dataclass
class ValidationReport:
    """Outcome of a post-load validation."""

    expected_rows: Optional[int] = None
    actual_rows: Optional[int] = None
    violations: List[str] = field(default_factory=list)
    flagged_rows: int = 0

    @property
    def passed(self) -> bool:
        return not self.violations


def check_row_count(expected: int, actual: int) -> Optional[str]:
    """Return a violation message when the counts differ, else ``None``."""
    if expected == actual:
        return None
    return f"Row count mismatch: expected {expected} rows, destination has {actual}"


def count_table_rows(engine: Engine, table_name: str, db_schema: Optional[str] = None) -> int:
    """Return ``SELECT COUNT(*)`` for a table."""
    return int(fetch_scalar(f"SELECT COUNT(*) FROM {qualified_name(table_name, db_schema)}", engine=engine))


def find_predicate_violations(
    engine: Engine,
    table_name: str,
    predicate: RowPredicate,
    db_schema: Optional[str] = None,
) -> pd.DataFrame:
    """Return the destination rows that fail ``predicate``."""
    sql = (
        f"SELECT * FROM {qualified_name(table_name, db_schema)} "
        f"WHERE NOT ({predicate.condition})"
    )
    return fetch_dataframe(sql, engine=engine)


def run_threshold_check(
    engine: Engine,
    check: Dict[str, Any],
    index: int = 0,
    min_threshold: Optional[float] = None,
    max_threshold: Optional[float] = None,
) -> List[str]:
    """Run one single-value SQL check.

    Each check is a dict with keys:
        - sql: The SQL query to execute (must return a single numeric value).
        - description: Human-readable description of the check.
        - min_threshold: Minimum acceptable value (optional).
        - max_threshold: Maximum acceptable value (optional).

    With neither threshold set, a value of zero fails.

    Returns:
        List of failure messages (empty when the check passes).
    """
    sql = check["sql"]
    description = check.get("description", f"Check #{index + 1}")
    check_min = check.get("min_threshold", min_threshold)
    check_max = check.get("max_threshold", max_threshold)

    log.info("Running quality check: %s", description)
    log.debug("SQL: %s", sql)

    result = fetch_scalar(sql, engine=engine)
    if result is None:
        return [f"{description}: query returned no results"]

    value = float(result)
    log.info("Check '%s' returned value: %s", description, value)

    failures = []
    if check_min is not None and value < check_min:
        failures.append(
            f"{description}: value {value} is below minimum threshold {check_min}"
        )
    if check_max is not None and value > check_max:
        failures.append(
            f"{description}: value {value} is above maximum threshold {check_max}"
        )
    if check_min is None and check_max is None and value == 0:
        failures.append(f"{description}: value is 0 (expected non-zero)")
    return failures


def validate_load(
    engine: Engine,
    table_name: str,
    expected_rows: Optional[int] = None,
    actual_rows: Optional[int] = None,
    predicates: Sequence[RowPredicate] = (),
    checks: Sequence[Dict[str, Any]] = (),
    db_schema: Optional[str] = None,
    source_name: Optional[str] = None,
    run_id: Optional[int] = None,
    log_errors: bool = True,
    error_schema: Optional[str] = None,
    raise_on_failure: bool = False,
) -> ValidationReport:
    """Validate a completed load and log every violation.

    Args:
        engine: SQLAlchemy engine for the destination database.
        table_name: Destination table name.
        expected_rows: Rows the source delivered; enables the count check.
        actual_rows: Rows the destination received. Defaults to the
            current table row count.
        predicates: Row-level conditions; each failing row is flagged.
        checks: Threshold checks (see ``run_threshold_check``).
        db_schema: Database schema holding the destination table.
        source_name: Source identifier written to error entries.
        run_id: Load run id written to error entries.
        log_errors: Write violations to the error table.
        error_schema: Database schema holding the error table.
        raise_on_failure: Raise ValidationError when any check fails.

    Returns:
        ValidationReport describing the outcome.

    Raises:
        ValidationError: If ``raise_on_failure`` is set and validation fails.
    """
    report = ValidationReport(expected_rows=expected_rows)

    def _record(message: str, position: Optional[int] = None, record: Any = None) -> None:
        report.violations.append(message)
        if log_errors:
            log_load_error(
                message,
                source_name=source_name,
                run_id=run_id,
                position=position,
                record=record,
                engine=engine,
                schema=error_schema,
            )

    if expected_rows is not None:
        if actual_rows is None:
            actual_rows = count_table_rows(engine, table_name, db_schema)
        report.actual_rows = actual_rows
        mismatch = check_row_count(expected_rows, actual_rows)
        if mismatch:
            log.error(mismatch)
            _record(mismatch)

    for predicate in predicates:
        offending = find_predicate_violations(engine, table_name, predicate, db_schema)
        if offending.empty:
            log.info("Predicate '%s' passed", predicate.description)
            continue
        log.error("Predicate '%s' flagged %d rows", predicate.description, len(offending))
        report.flagged_rows += len(offending)
        for row in offending.to_dict(orient="records"):
            _record(
                f"{predicate.description}: row violates '{predicate.condition}'",
                record=row,
            )

    for i, check in enumerate(checks):
        for failure in run_threshold_check(engine, check, index=i):
            log.error(failure)
            _record(failure)

    if report.passed:
        log.info("Validation of %s passed", qualified_name(table_name, db_schema))
    elif raise_on_failure:
        raise ValidationError(
            f"Validation of {qualified_name(table_name, db_schema)} failed "
            f"({len(report.violations)} violations):\n" + "\n".join(report.violations),
            report=report,
        )
    return report
