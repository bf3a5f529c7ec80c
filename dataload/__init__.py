"""Data ingestion driver.

Reads records from files, HTTP APIs and message streams, maps each record
onto a typed target schema, writes the rows to a relational table and
validates the result.
"""

from dataload.ingestion.api_reader import ApiSource
from dataload.ingestion.driver import IngestionDriver, LoadResult, TooManyErrors, run_load
from dataload.ingestion.file_reader import (
    DelimitedFileSource,
    JsonFileSource,
    ParquetFileSource,
    open_file_source,
)
from dataload.ingestion.record_mapper import FieldSpec, MappingError, TableSchema, map_record
from dataload.ingestion.stream_reader import StreamSource

__version__ = "0.1.0"

__all__ = [
    "ApiSource",
    "DelimitedFileSource",
    "FieldSpec",
    "IngestionDriver",
    "JsonFileSource",
    "LoadResult",
    "MappingError",
    "ParquetFileSource",
    "StreamSource",
    "TableSchema",
    "TooManyErrors",
    "map_record",
    "open_file_source",
    "run_load",
]
