"""YAML job definitions.

A job file names a source, a target table, the target schema and the
post-load validation to run. Example::

    name: daily_orders
    source:
      type: delimited
      path: data/input/orders.csv
      first_row: 2
    target:
      table: orders
      mode: bulk
    schema:
      fields:
        - {name: order_id, type: integer, nullable: false}
        - {name: amount, type: decimal}
    validation:
      predicates:
        - {description: Amount must not be negative, condition: amount >= 0}
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from dataload.config.load_config import LOAD_MODES, WRITE_MODES, LoadConfig
from dataload.ingestion.api_reader import ApiSource
from dataload.ingestion.file_reader import DelimitedFileSource, JsonFileSource, ParquetFileSource
from dataload.ingestion.record_mapper import TableSchema
from dataload.ingestion.schema_detector import (
    SchemaDetectionError,
    infer_schema_from_delimited,
    infer_schema_from_json,
)
from dataload.ingestion.source_base import RecordSource
from dataload.loaders.bulk_copy import BulkCopyOptions
from dataload.quality.load_validator import RowPredicate

log = logging.getLogger(__name__)

SOURCE_TYPES = ("delimited", "csv", "json", "parquet", "api")


class JobConfigError(Exception):
    """Raised when a job file is missing or invalid."""


@dataclass
class LoadJob:
    """A parsed job definition."""

    name: str
    source: Dict[str, Any]
    table: str
    schema: TableSchema
    db_schema: Optional[str] = None
    mode: str = "bulk"
    load_mode: str = "append"
    batch_size: int = 1000
    max_errors: Optional[int] = None
    predicates: List[RowPredicate] = field(default_factory=list)
    checks: List[Dict[str, Any]] = field(default_factory=list)
    bulk_copy: Dict[str, Any] = field(default_factory=dict)
    base_dir: str = "."

    @property
    def source_type(self) -> str:
        return self.source["type"]

    def source_path(self) -> str:
        path = self.source.get("path")
        if not path:
            raise JobConfigError(f"Job '{self.name}': source needs a 'path'")
        return path if os.path.isabs(path) else os.path.join(self.base_dir, path)

    def build_source(self, http_timeout: float = 30.0) -> RecordSource:
        """Instantiate the reader described by the ``source`` section."""
        options = {k: v for k, v in self.source.items() if k not in ("type", "path", "url")}
        source_type = self.source_type
        try:
            if source_type in ("delimited", "csv"):
                return DelimitedFileSource(self.source_path(), **options)
            if source_type == "json":
                return JsonFileSource(self.source_path(), **options)
            if source_type == "parquet":
                return ParquetFileSource(self.source_path(), **options)
            if source_type == "api":
                if not self.source.get("url"):
                    raise JobConfigError(f"Job '{self.name}': api source needs a 'url'")
                options.setdefault("timeout", http_timeout)
                return ApiSource(self.source["url"], **options)
        except (TypeError, ValueError) as exc:
            raise JobConfigError(f"Job '{self.name}': invalid source option: {exc}") from exc
        raise JobConfigError(f"Job '{self.name}': unsupported source type '{source_type}'")

    def bulk_copy_options(self) -> BulkCopyOptions:
        """Bulk-copy arguments for a delimited source."""
        if self.source_type not in ("delimited", "csv"):
            raise JobConfigError(f"Job '{self.name}': bulk copy needs a delimited source")
        if not self.bulk_copy.get("server") or not self.bulk_copy.get("database"):
            raise JobConfigError(f"Job '{self.name}': bulk_copy needs 'server' and 'database'")
        table = f"{self.db_schema}.{self.table}" if self.db_schema else self.table
        try:
            return BulkCopyOptions(
                table=table,
                data_file=self.source_path(),
                field_terminator=self.source.get("field_terminator", ","),
                row_terminator=self.source.get("row_terminator", "\n"),
                first_row=self.source.get("first_row", 1),
                batch_size=self.batch_size,
                max_errors=self.max_errors,
                **self.bulk_copy,
            )
        except TypeError as exc:
            raise JobConfigError(f"Job '{self.name}': invalid bulk_copy option: {exc}") from exc


def _infer_schema(source: Dict[str, Any], base_dir: str, name: str) -> TableSchema:
    path = source.get("path")
    if not path:
        raise JobConfigError(f"Job '{name}': a schema is required for '{source['type']}' sources")
    path = path if os.path.isabs(path) else os.path.join(base_dir, path)
    if source["type"] in ("delimited", "csv"):
        first_row = source.get("first_row", 1)
        if first_row < 2:
            raise JobConfigError(
                f"Job '{name}': cannot infer a schema without a header row (set first_row: 2)"
            )
        return infer_schema_from_delimited(
            path,
            field_terminator=source.get("field_terminator", ","),
            header_row=first_row - 1,
        )
    if source["type"] == "json":
        return infer_schema_from_json(path)
    raise JobConfigError(f"Job '{name}': a schema is required for '{source['type']}' sources")


def parse_job(data: Dict[str, Any], base_dir: str = ".", defaults: Optional[LoadConfig] = None) -> LoadJob:
    """Build a LoadJob from a decoded job document.

    Raises:
        JobConfigError: If a required section is missing or a value is invalid.
    """
    if not isinstance(data, dict):
        raise JobConfigError("Job definition must be a mapping")
    defaults = defaults or LoadConfig()
    name = data.get("name", "job")

    source = data.get("source")
    if not isinstance(source, dict) or "type" not in source:
        raise JobConfigError(f"Job '{name}': 'source' with a 'type' is required")
    source = dict(source)
    source["type"] = str(source["type"]).lower()
    if source["type"] not in SOURCE_TYPES:
        raise JobConfigError(f"Job '{name}': unsupported source type '{source['type']}'")

    target = data.get("target") or {}
    table = target.get("table")
    if not table:
        raise JobConfigError(f"Job '{name}': 'target.table' is required")

    mode = str(target.get("mode", defaults.write_mode)).lower()
    load_mode = str(target.get("load_mode", defaults.load_mode)).lower()
    if mode not in WRITE_MODES:
        raise JobConfigError(f"Job '{name}': mode must be one of {', '.join(WRITE_MODES)}")
    if load_mode not in LOAD_MODES:
        raise JobConfigError(f"Job '{name}': load_mode must be one of {', '.join(LOAD_MODES)}")

    schema_doc = data.get("schema")
    if isinstance(schema_doc, list):
        schema_doc = {"fields": schema_doc}
    try:
        if schema_doc:
            schema = TableSchema.from_dicts(
                schema_doc.get("fields", []),
                schema_doc.get("null_values", ("",)),
            )
            if not schema.fields:
                raise JobConfigError(f"Job '{name}': schema has no fields")
        else:
            schema = _infer_schema(source, base_dir, name)
    except (TypeError, ValueError, SchemaDetectionError) as exc:
        raise JobConfigError(f"Job '{name}': invalid schema: {exc}") from exc

    validation = data.get("validation") or {}
    try:
        predicates = [RowPredicate.from_dict(p) for p in validation.get("predicates", [])]
    except KeyError as exc:
        raise JobConfigError(f"Job '{name}': predicate is missing {exc}") from exc
    checks = list(validation.get("checks", []))
    for check in checks:
        if "sql" not in check:
            raise JobConfigError(f"Job '{name}': every check needs 'sql'")

    max_errors = data.get("max_errors", defaults.max_errors)
    return LoadJob(
        name=name,
        source=source,
        table=table,
        schema=schema,
        db_schema=target.get("db_schema"),
        mode=mode,
        load_mode=load_mode,
        batch_size=int(target.get("batch_size", defaults.batch_size)),
        max_errors=None if max_errors is None else int(max_errors),
        predicates=predicates,
        checks=checks,
        bulk_copy=dict(data.get("bulk_copy") or {}),
        base_dir=base_dir,
    )


def load_job(path: str, defaults: Optional[LoadConfig] = None) -> LoadJob:
    """Read and parse a YAML job file.

    Relative source paths are resolved against the job file's directory.

    Raises:
        JobConfigError: If the file cannot be read or is invalid.
    """
    log.info("Loading job definition from: %s", path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise JobConfigError(f"Cannot read job file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise JobConfigError(f"Invalid YAML in job file '{path}': {exc}") from exc

    base_dir = os.path.dirname(os.path.abspath(path))
    return parse_job(data, base_dir=base_dir, defaults=defaults)
