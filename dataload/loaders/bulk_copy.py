"""Native bulk-copy loaders.

Builds and runs a ``bcp``-style bulk-copy command line for delimited files,
and streams a delimited file into PostgreSQL with ``COPY ... FROM STDIN``.
Both bypass the row mapper entirely: the database parses the file.
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.engine import Engine

from dataload.utils.database_client import qualified_name

log = logging.getLogger(__name__)

_ROWS_COPIED = re.compile(r"(\d+)\s+rows\s+copied", re.IGNORECASE)
_TERMINATOR_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0"}


class BulkCopyError(Exception):
    """Raised when a bulk-copy invocation fails."""


@dataclass
class BulkCopyOptions:
    """Arguments of one bulk-copy invocation."""

    table: str
    data_file: str
    server: str
    database: str
    username: Optional[str] = None
    password: Optional[str] = None
    trusted_connection: bool = False
    field_terminator: str = ","
    row_terminator: str = "\n"
    first_row: int = 1
    batch_size: Optional[int] = None
    max_errors: Optional[int] = None
    error_file: Optional[str] = None
    executable: str = "bcp"


def _escape_terminator(terminator: str) -> str:
    return "".join(_TERMINATOR_ESCAPES.get(ch, ch) for ch in terminator)


def build_bcp_command(options: BulkCopyOptions) -> List[str]:
    """Build the argument list for a character-mode bulk copy in.

    Raises:
        ValueError: If neither a trusted connection nor a username is given.
    """
    if not options.trusted_connection and not options.username:
        raise ValueError("Bulk copy needs a username or a trusted connection")

    cmd = [
        options.executable,
        options.table,
        "in",
        options.data_file,
        "-S", options.server,
        "-d", options.database,
    ]
    if options.trusted_connection:
        cmd.append("-T")
    else:
        cmd.extend(["-U", options.username, "-P", options.password or ""])
    cmd.extend([
        "-c",
        "-t", _escape_terminator(options.field_terminator),
        "-r", _escape_terminator(options.row_terminator),
        "-F", str(options.first_row),
    ])
    if options.batch_size:
        cmd.extend(["-b", str(options.batch_size)])
    if options.max_errors is not None:
        cmd.extend(["-m", str(options.max_errors)])
    if options.error_file:
        cmd.extend(["-e", options.error_file])
    return cmd


def _redact(cmd: List[str]) -> str:
    shown = list(cmd)
    if "-P" in shown:
        shown[shown.index("-P") + 1] = "****"
    return " ".join(shown)


def parse_rows_copied(output: str) -> Optional[int]:
    """Extract the copied row count from bulk-copy output, if reported."""
    match = _ROWS_COPIED.search(output or "")
    return int(match.group(1)) if match else None


def run_bulk_copy(options: BulkCopyOptions, timeout: int = 3600) -> int:
    """Run a bulk copy and return the number of rows copied.

    Args:
        options: Bulk-copy arguments.
        timeout: Seconds before the invocation is killed.

    Returns:
        Rows copied as reported by the tool.

    Raises:
        BulkCopyError: If the data file is missing, the tool cannot be run,
            exits non-zero, times out, or reports no row count.
    """
    if not os.path.isfile(options.data_file):
        raise BulkCopyError(f"Data file not found: {options.data_file}")

    cmd = build_bcp_command(options)
    log.info("Running bulk copy: %s", _redact(cmd))

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise BulkCopyError(f"Bulk copy into {options.table} exceeded {timeout}s") from exc
    except OSError as exc:
        raise BulkCopyError(f"Failed to start '{options.executable}': {exc}") from exc

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "Unknown error")[-500:]
        raise BulkCopyError(
            f"Bulk copy into {options.table} failed with exit code {result.returncode}: {detail}"
        )

    rows = parse_rows_copied(result.stdout)
    if rows is None:
        raise BulkCopyError(f"Bulk copy into {options.table} reported no row count")
    log.info("Bulk copy complete: %d rows copied into %s", rows, options.table)
    return rows


def copy_from_file(
    engine: Engine,
    table_name: str,
    file_path: str,
    columns: Optional[List[str]] = None,
    db_schema: Optional[str] = None,
    delimiter: str = ",",
    header: bool = True,
    null: str = "",
    encoding: str = "utf-8",
) -> int:
    """Bulk-load a delimited file into PostgreSQL with ``COPY FROM STDIN``.

    Args:
        engine: SQLAlchemy engine using the psycopg2 driver.
        table_name: Destination table name.
        file_path: Path to the delimited file.
        columns: Target column list, in file order. Defaults to all.
        db_schema: Database schema holding the table.
        delimiter: Single-character field delimiter.
        header: Skip the first line.
        null: Text representing NULL.
        encoding: File encoding.

    Returns:
        Number of rows copied.

    Raises:
        BulkCopyError: If the engine is not PostgreSQL or the copy fails.
    """
    if engine.dialect.name != "postgresql":
        raise BulkCopyError(f"COPY FROM STDIN needs PostgreSQL, not {engine.dialect.name}")

    target = qualified_name(table_name, db_schema)
    column_sql = f" ({', '.join(columns)})" if columns else ""
    sql = (
        f"COPY {target}{column_sql} FROM STDIN WITH (FORMAT csv, "
        f"DELIMITER '{delimiter}', HEADER {'true' if header else 'false'}, NULL '{null}')"
    )

    conn = engine.raw_connection()
    try:
        with open(file_path, "r", encoding=encoding) as f:
            cursor = conn.cursor()
            cursor.copy_expert(sql, f)
            rows = cursor.rowcount
            cursor.close()
        conn.commit()
    except Exception as exc:
        conn.rollback()
        raise BulkCopyError(f"COPY into {target} failed: {exc}") from exc
    finally:
        conn.close()

    log.info("Copied %d rows from '%s' into %s", rows, file_path, target)
    return rows
