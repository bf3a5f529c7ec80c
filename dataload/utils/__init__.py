"""Shared utility functions for the loader."""

from dataload.utils.database_client import execute_query, fetch_dataframe, fetch_scalar, get_engine
from dataload.utils.logging_config import get_logger, setup_logging

__all__ = [
    "execute_query",
    "fetch_dataframe",
    "fetch_scalar",
    "get_engine",
    "get_logger",
    "setup_logging",
]
