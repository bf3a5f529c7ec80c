"""Ingestion modules for the loader.

Modules:
    source_base: Common interface of every record source.
    file_reader: Delimited, JSON and Parquet file sources.
    api_reader: REST JSON source with fixed polling.
    stream_reader: Message stream source.
    record_mapper: Map raw records onto a typed target schema.
    schema_detector: Infer or reflect target schemas.
    metadata_logger: Track load runs with row counts and status.
    error_logger: Persist timestamped load errors.
    driver: Run a load end to end (import from ``dataload.ingestion.driver``).
"""

from .source_base import RecordSource, SourceError
from .file_reader import (
    DelimitedFileSource,
    JsonFileSource,
    ParquetFileSource,
    open_file_source,
)
from .api_reader import ApiSource
from .stream_reader import StreamSource
from .record_mapper import (
    FieldSpec,
    TableSchema,
    convert_value,
    map_record,
    MappingError,
)
from .schema_detector import (
    infer_schema_from_delimited,
    infer_schema_from_json,
    reflect_table_schema,
    SchemaDetectionError,
)
from .metadata_logger import (
    ensure_metadata_tables,
    log_load_start,
    log_load_success,
    log_load_failure,
    get_run,
    get_last_successful_run,
    IngestionError,
)
from .error_logger import (
    ErrorEntry,
    ensure_error_table,
    log_load_error,
    get_load_errors,
)

__all__ = [
    # Sources
    "RecordSource",
    "SourceError",
    "DelimitedFileSource",
    "JsonFileSource",
    "ParquetFileSource",
    "open_file_source",
    "ApiSource",
    "StreamSource",
    # Record mapping
    "FieldSpec",
    "TableSchema",
    "convert_value",
    "map_record",
    "MappingError",
    # Schema detection
    "infer_schema_from_delimited",
    "infer_schema_from_json",
    "reflect_table_schema",
    "SchemaDetectionError",
    # Run tracking
    "ensure_metadata_tables",
    "log_load_start",
    "log_load_success",
    "log_load_failure",
    "get_run",
    "get_last_successful_run",
    "IngestionError",
    # Error logging
    "ErrorEntry",
    "ensure_error_table",
    "log_load_error",
    "get_load_errors",
]
