"""Command-line entry point for the loader.

Usage:
    dataload init
    dataload run jobs/orders.yaml
    dataload infer-schema data/input/orders.csv
    dataload errors --source orders.csv --limit 20
    dataload bcp jobs/orders.yaml
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from dataload.config.job_config import JobConfigError, load_job
from dataload.config.load_config import get_config
from dataload.ingestion.driver import run_load
from dataload.ingestion.error_logger import ERROR_TABLE, get_load_errors
from dataload.ingestion.metadata_logger import IngestionError, ensure_metadata_tables
from dataload.ingestion.schema_detector import (
    SchemaDetectionError,
    infer_schema_from_delimited,
    infer_schema_from_json,
)
from dataload.ingestion.source_base import SourceError
from dataload.loaders.bulk_copy import BulkCopyError, run_bulk_copy
from dataload.utils.database_client import get_engine
from dataload.utils.logging_config import setup_logging

log = logging.getLogger(__name__)


def _cmd_init(args, config) -> int:
    engine = get_engine(args.database_url)
    ensure_metadata_tables(engine, config.load.metadata_schema)
    log.info("Load tracking tables are ready")
    return 0


def _cmd_run(args, config) -> int:
    job = load_job(args.job, defaults=config.load)
    engine = get_engine(args.database_url)
    source = job.build_source(http_timeout=config.http.timeout)

    try:
        result = run_load(
            source,
            job.table,
            job.schema,
            engine=engine,
            predicates=job.predicates,
            checks=job.checks,
            db_schema=job.db_schema,
            mode=job.mode,
            batch_size=job.batch_size,
            load_mode=job.load_mode,
            max_errors=job.max_errors,
            metadata_schema=config.load.metadata_schema,
        )
    except IngestionError as exc:
        log.error("Job '%s' failed: %s", job.name, exc)
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    if not result.succeeded:
        log.error("Job '%s' finished with %d validation violations",
                  job.name, len(result.validation.violations))
        return 1
    return 0


def _cmd_infer_schema(args, config) -> int:
    if args.file.lower().endswith((".json", ".jsonl", ".ndjson")):
        schema = infer_schema_from_json(args.file)
    else:
        schema = infer_schema_from_delimited(
            args.file,
            field_terminator=args.field_terminator,
            header_row=None if args.no_header else 1,
        )
    print(yaml.safe_dump({"fields": schema.to_dicts()}, sort_keys=False), end="")
    return 0


def _cmd_errors(args, config) -> int:
    engine = get_engine(args.database_url)
    if not inspect(engine).has_table(ERROR_TABLE, schema=config.load.metadata_schema):
        log.error("No %s table found; run 'dataload init' first", ERROR_TABLE)
        return 1
    df = get_load_errors(
        source_name=args.source,
        run_id=args.run_id,
        limit=args.limit,
        engine=engine,
        schema=config.load.metadata_schema,
    )
    if df.empty:
        print("No load errors logged")
    else:
        print(df.to_string(index=False))
    return 0


def _cmd_bcp(args, config) -> int:
    job = load_job(args.job, defaults=config.load)
    rows = run_bulk_copy(job.bulk_copy_options(), timeout=args.timeout)
    print(json.dumps({"job": job.name, "table": job.table, "rows_copied": rows}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dataload",
        description="Load files, API responses and streams into a relational table",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy database URL (default: from DATALOAD_DATABASE_URL / POSTGRES_*)",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("init", help="Create the load run and error tables")
    init.set_defaults(func=_cmd_init)

    run = subparsers.add_parser("run", help="Run a YAML load job")
    run.add_argument("job", help="Path to the job file")
    run.set_defaults(func=_cmd_run)

    infer = subparsers.add_parser("infer-schema", help="Infer a schema from a sample file")
    infer.add_argument("file", help="Delimited or JSON file")
    infer.add_argument("--field-terminator", default=",", help="Field separator (default: ,)")
    infer.add_argument("--no-header", action="store_true", help="The file has no header row")
    infer.set_defaults(func=_cmd_infer_schema)

    errors = subparsers.add_parser("errors", help="Show logged load errors")
    errors.add_argument("--source", default=None, help="Only errors for this source")
    errors.add_argument("--run-id", type=int, default=None, help="Only errors for this run")
    errors.add_argument("--limit", type=int, default=50, help="Maximum rows (default: 50)")
    errors.set_defaults(func=_cmd_errors)

    bcp = subparsers.add_parser("bcp", help="Run a job through the bulk-copy tool")
    bcp.add_argument("job", help="Path to the job file")
    bcp.add_argument("--timeout", type=int, default=3600, help="Seconds before giving up")
    bcp.set_defaults(func=_cmd_bcp)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = get_config()
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    setup_logging(args.log_level or config.logging.level, config.logging.json_format)

    try:
        return args.func(args, config)
    except (JobConfigError, SchemaDetectionError, SourceError, BulkCopyError, ValueError) as exc:
        log.error("%s", exc)
        return 1
    except SQLAlchemyError as exc:
        log.error("Database error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
