"""Structured logging configuration for the loader."""

import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone

_CONTEXT_FIELDS = ("run_id", "source_name", "target_table")


class JSONFormatter(logging.Formatter):
    """Log formatter that outputs JSON-structured log lines."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add load context if available
        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = None, json_format: bool = None):
    """Configure logging for the application.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR).
            Defaults to the DATALOAD_LOG_LEVEL env var or INFO.
        json_format: Emit JSON lines instead of plain text. Defaults to
            ``DATALOAD_LOG_FORMAT == "json"``.
    """
    if level is None:
        level = os.environ.get("DATALOAD_LOG_LEVEL", "INFO")
    if json_format is None:
        json_format = os.environ.get("DATALOAD_LOG_FORMAT", "text").lower() == "json"

    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    if json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    # Avoid adding duplicate handlers
    if not any(isinstance(h, logging.StreamHandler) for h in root_logger.handlers):
        root_logger.addHandler(console_handler)


def get_logger(name: str, run_id: int = None, source_name: str = None) -> logging.Logger:
    """Get a logger with optional load context.

    Args:
        name: Logger name (typically __name__).
        run_id: Optional load run id for context.
        source_name: Optional source name for context.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    if run_id is not None or source_name:
        adapter_extra = {}
        if run_id is not None:
            adapter_extra["run_id"] = run_id
        if source_name:
            adapter_extra["source_name"] = source_name
        return logging.LoggerAdapter(logger, adapter_extra)

    return logger


@contextmanager
def load_logging_context(run_id: int = None, source_name: str = None, target_table: str = None):
    """Context manager that adds load context to all log messages.

    Usage:
        with load_logging_context(run_id=7, source_name="orders.csv"):
            log.info("This message carries the run id and source")
    """
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        if run_id is not None:
            record.run_id = run_id
        if source_name:
            record.source_name = source_name
        if target_table:
            record.target_table = target_table
        return record

    logging.setLogRecordFactory(record_factory)
    try:
        yield
    finally:
        logging.setLogRecordFactory(old_factory)
