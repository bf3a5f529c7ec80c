"""Destination writers and native bulk-copy loaders."""

from dataload.loaders.bulk_copy import BulkCopyError, BulkCopyOptions, copy_from_file, run_bulk_copy
from dataload.loaders.destination_writer import DestinationWriter, WriteError, build_table

__all__ = [
    "BulkCopyError",
    "BulkCopyOptions",
    "DestinationWriter",
    "WriteError",
    "build_table",
    "copy_from_file",
    "run_bulk_copy",
]
