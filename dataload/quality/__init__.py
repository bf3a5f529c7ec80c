"""Post-load validation."""

from dataload.quality.load_validator import (
    RowPredicate,
    ValidationError,
    ValidationReport,
    validate_load,
)

__all__ = ["RowPredicate", "ValidationError", "ValidationReport", "validate_load"]
