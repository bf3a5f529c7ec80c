"""Common base for record sources.

A source is anything that can be iterated to produce raw records. The
driver only relies on iteration plus the ``name`` and ``source_type``
attributes, so file, API and stream sources share one load loop.
"""

from typing import Any, Iterator


class SourceError(Exception):
    """Raised when a source is unreachable or malformed."""


class RecordSource:
    """Base class for lazy record sources."""

    source_type = "unknown"

    def __init__(self, name: str):
        self.name = name

    def read(self) -> Iterator[Any]:
        raise NotImplementedError

    def __iter__(self) -> Iterator[Any]:
        return self.read()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"
