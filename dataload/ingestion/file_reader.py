"""File-based record sources for the loader.

Reads delimited text, JSON and Parquet files lazily. Delimited files follow
bulk-load conventions: a configurable field terminator, row terminator and
1-based first row, so ``first_row=2`` skips a header line.
"""

import csv
import json
import logging
import os
from typing import Any, Dict, Iterator, List, Optional

import pyarrow.parquet as pq

from .source_base import RecordSource, SourceError

log = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def _split_rows(handle, terminator: str, chunk_size: int = _CHUNK_SIZE) -> Iterator[str]:
    """Yield rows from ``handle`` separated by ``terminator``."""
    buffer = ""
    while True:
        chunk = handle.read(chunk_size)
        if not chunk:
            break
        buffer += chunk
        parts = buffer.split(terminator)
        buffer = parts.pop()
        for part in parts:
            yield part
    if buffer:
        yield buffer


class DelimitedFileSource(RecordSource):
    """Delimited text file with configurable terminators.

    Args:
        path: Path to the file.
        field_terminator: Separator between fields. Quoting is honoured
            only when this is a single character.
        row_terminator: Separator between rows.
        first_row: 1-based number of the first row to load.
        quote_char: Quote character, or ``None`` to disable quoting.
        encoding: File encoding.
    """

    source_type = "delimited"

    def __init__(
        self,
        path: str,
        field_terminator: str = ",",
        row_terminator: str = "\n",
        first_row: int = 1,
        quote_char: Optional[str] = '"',
        encoding: str = "utf-8",
    ):
        super().__init__(os.path.basename(path))
        if not field_terminator or not row_terminator:
            raise ValueError("Field and row terminators must not be empty")
        if first_row < 1:
            raise ValueError("first_row is 1-based and must be at least 1")
        self.path = path
        self.field_terminator = field_terminator
        self.row_terminator = row_terminator
        self.first_row = first_row
        self.quote_char = quote_char
        self.encoding = encoding

    def _split_fields(self, row: str) -> List[str]:
        if self.quote_char and len(self.field_terminator) == 1:
            return next(csv.reader([row], delimiter=self.field_terminator, quotechar=self.quote_char))
        return row.split(self.field_terminator)

    def read(self) -> Iterator[List[str]]:
        try:
            with open(self.path, "r", encoding=self.encoding, newline="") as handle:
                for row_number, row in enumerate(_split_rows(handle, self.row_terminator), start=1):
                    if row_number < self.first_row:
                        continue
                    if self.row_terminator == "\n" and row.endswith("\r"):
                        row = row[:-1]
                    if not row.strip():
                        continue
                    yield self._split_fields(row)
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise SourceError(f"Failed to read delimited file '{self.path}': {exc}") from exc


class JsonFileSource(RecordSource):
    """JSON array, single JSON object, or newline-delimited JSON file."""

    source_type = "json"

    def __init__(self, path: str, encoding: str = "utf-8"):
        super().__init__(os.path.basename(path))
        self.path = path
        self.encoding = encoding

    def _check(self, record: Any) -> Dict[str, Any]:
        if not isinstance(record, dict):
            raise SourceError(
                f"JSON file '{self.path}' must contain objects, found {type(record).__name__}"
            )
        return record

    def _read_lines(self) -> Iterator[Dict[str, Any]]:
        with open(self.path, "r", encoding=self.encoding) as handle:
            for line_number, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield self._check(json.loads(line))
                except json.JSONDecodeError as exc:
                    raise SourceError(
                        f"Malformed JSON on line {line_number} of '{self.path}': {exc}"
                    ) from exc

    def read(self) -> Iterator[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding=self.encoding) as handle:
                data = json.load(handle)
        except json.JSONDecodeError:
            # Try newline-delimited JSON
            try:
                yield from self._read_lines()
            except (OSError, UnicodeDecodeError) as exc:
                raise SourceError(f"Failed to read JSON file '{self.path}': {exc}") from exc
            return
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceError(f"Failed to read JSON file '{self.path}': {exc}") from exc

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise SourceError(f"JSON file '{self.path}' does not contain an array of objects")
        log.debug("Loaded %d JSON records from '%s'", len(data), self.path)
        for record in data:
            yield self._check(record)


class ParquetFileSource(RecordSource):
    """Parquet file read batch by batch."""

    source_type = "parquet"

    def __init__(self, path: str, batch_size: int = 1024):
        super().__init__(os.path.basename(path))
        self.path = path
        self.batch_size = batch_size

    def read(self) -> Iterator[Dict[str, Any]]:
        try:
            parquet_file = pq.ParquetFile(self.path)
            for batch in parquet_file.iter_batches(batch_size=self.batch_size):
                yield from batch.to_pylist()
        except (OSError, ValueError) as exc:
            raise SourceError(f"Failed to read Parquet file '{self.path}': {exc}") from exc


_EXTENSION_SOURCES = {
    ".csv": DelimitedFileSource,
    ".txt": DelimitedFileSource,
    ".tsv": DelimitedFileSource,
    ".dat": DelimitedFileSource,
    ".json": JsonFileSource,
    ".jsonl": JsonFileSource,
    ".ndjson": JsonFileSource,
    ".parquet": ParquetFileSource,
}


def open_file_source(path: str, **options) -> RecordSource:
    """Pick a file source from the file extension.

    Args:
        path: Path to the file.
        **options: Reader options passed to the source constructor.

    Returns:
        A file source for ``path``.

    Raises:
        SourceError: If the extension is not supported.
    """
    ext = os.path.splitext(path)[1].lower()
    source_cls = _EXTENSION_SOURCES.get(ext)
    if source_cls is None:
        raise SourceError(f"Unsupported file type '{ext}' for '{path}'")
    if ext == ".tsv":
        options.setdefault("field_terminator", "\t")
    return source_cls(path, **options)
