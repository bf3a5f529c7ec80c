"""Record mapping for the loader.

Converts raw records (lists of text fields from delimited files, or dicts
from JSON files, API responses and stream messages) into typed tuples that
match the destination schema. Mapping is positional for sequences and by
key for mappings; there is no transformation language.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

log = logging.getLogger(__name__)

FIELD_TYPES = ("integer", "float", "decimal", "string", "boolean", "date", "timestamp")

_TRUE_VALUES = {"true", "t", "yes", "y", "1"}
_FALSE_VALUES = {"false", "f", "no", "n", "0"}


class MappingError(Exception):
    """Raised when a raw record cannot be mapped onto the target schema."""

    def __init__(self, message: str, field: Optional[str] = None, record: Any = None):
        super().__init__(message)
        self.field = field
        self.record = record


@dataclass
class FieldSpec:
    """One destination column."""

    name: str
    type: str = "string"
    nullable: bool = True
    source_key: Optional[str] = None
    date_format: Optional[str] = None
    max_length: Optional[int] = None
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
    precision: int = 18
    scale: int = 2

    def __post_init__(self):
        self.type = self.type.lower()
        if self.type not in FIELD_TYPES:
            raise ValueError(
                f"Unsupported type '{self.type}' for field '{self.name}'; "
                f"expected one of {', '.join(FIELD_TYPES)}"
            )

    @property
    def key(self) -> str:
        return self.source_key or self.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldSpec":
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "type": self.type}
        if not self.nullable:
            out["nullable"] = False
        for attr in ("source_key", "date_format", "max_length", "min_value", "max_value"):
            value = getattr(self, attr)
            if value is not None:
                out[attr] = value
        if self.type == "decimal":
            out["precision"] = self.precision
            out["scale"] = self.scale
        return out


@dataclass
class TableSchema:
    """Ordered field list of a destination table."""

    fields: List[FieldSpec]
    null_values: Tuple[str, ...] = ("",)

    def __post_init__(self):
        names = [f.name for f in self.fields]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field names: {', '.join(duplicates)}")
        self.null_values = tuple(self.null_values)

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    @classmethod
    def from_dicts(cls, fields: Sequence[Dict[str, Any]], null_values: Sequence[str] = ("",)) -> "TableSchema":
        return cls([FieldSpec.from_dict(f) for f in fields], tuple(null_values))

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [f.to_dict() for f in self.fields]


def _convert_integer(value: Any, spec: FieldSpec) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not a whole number")
        return int(value)
    return int(str(value).strip())


def _convert_float(value: Any, spec: FieldSpec) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    result = float(str(value).strip()) if isinstance(value, str) else float(value)
    if math.isnan(result) or math.isinf(result):
        raise ValueError(f"{value!r} is not a finite number")
    return result


def _convert_decimal(value: Any, spec: FieldSpec) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{value!r} is not a decimal number")
    if not result.is_finite():
        raise ValueError(f"{value!r} is not a finite number")
    if result:
        # Trailing zeros do not count against the scale.
        places = max(0, -result.normalize().as_tuple().exponent)
        if places > spec.scale:
            raise ValueError(f"{value!r} has more than {spec.scale} decimal places")
        if result.adjusted() + 1 > spec.precision - spec.scale:
            raise ValueError(f"{value!r} does not fit NUMERIC({spec.precision}, {spec.scale})")
    return result


def _convert_string(value: Any, spec: FieldSpec) -> str:
    result = value if isinstance(value, str) else str(value)
    if spec.max_length is not None and len(result) > spec.max_length:
        raise ValueError(f"length {len(result)} exceeds maximum {spec.max_length}")
    return result


def _convert_boolean(value: Any, spec: FieldSpec) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{value!r} is not a boolean")


def _parse_timestamp(text: str, date_format: Optional[str]) -> datetime:
    if date_format:
        return datetime.strptime(text, date_format)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _convert_date(value: Any, spec: FieldSpec) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if spec.date_format:
        return datetime.strptime(text, spec.date_format).date()
    return date.fromisoformat(text)


def _convert_timestamp(value: Any, spec: FieldSpec) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return _parse_timestamp(str(value).strip(), spec.date_format)


_CONVERTERS = {
    "integer": _convert_integer,
    "float": _convert_float,
    "decimal": _convert_decimal,
    "string": _convert_string,
    "boolean": _convert_boolean,
    "date": _convert_date,
    "timestamp": _convert_timestamp,
}


def _coerce_bound(bound: Any, spec: FieldSpec) -> Any:
    # Bounds come from YAML as plain scalars or dates; compare like with like.
    if spec.type == "decimal":
        return bound if isinstance(bound, Decimal) else Decimal(str(bound).strip())
    if spec.type in ("integer", "float") and isinstance(bound, str):
        return _CONVERTERS[spec.type](bound, spec)
    if spec.type in ("date", "timestamp") and isinstance(bound, (str, date)):
        return _CONVERTERS[spec.type](bound, spec)
    return bound


def convert_value(value: Any, spec: FieldSpec, null_values: Sequence[str] = ("",)) -> Any:
    """Convert one raw value according to ``spec``.

    Args:
        value: Raw field value.
        spec: Target field specification.
        null_values: Raw text values treated as NULL.

    Returns:
        The typed value, or ``None`` for a NULL.

    Raises:
        MappingError: If the value is missing for a required field, cannot
            be converted, or falls outside the field's bounds.
    """
    if value is None or (isinstance(value, str) and value in null_values):
        if not spec.nullable:
            raise MappingError(f"Field '{spec.name}' is required", field=spec.name)
        return None

    try:
        result = _CONVERTERS[spec.type](value, spec)
    except (TypeError, ValueError) as exc:
        raise MappingError(
            f"Field '{spec.name}': cannot convert {value!r} to {spec.type}: {exc}",
            field=spec.name,
        ) from exc

    try:
        below = spec.min_value is not None and result < _coerce_bound(spec.min_value, spec)
        above = spec.max_value is not None and result > _coerce_bound(spec.max_value, spec)
    except (TypeError, ValueError, ArithmeticError) as exc:
        # e.g. a timezone-aware value against a naive bound
        raise MappingError(
            f"Field '{spec.name}': cannot compare {result!r} with its bounds: {exc}",
            field=spec.name,
        ) from exc
    if below:
        raise MappingError(
            f"Field '{spec.name}': value {result} is below minimum {spec.min_value}",
            field=spec.name,
        )
    if above:
        raise MappingError(
            f"Field '{spec.name}': value {result} is above maximum {spec.max_value}",
            field=spec.name,
        )
    return result


def map_record(raw: Any, schema: TableSchema) -> Tuple[Any, ...]:
    """Map a raw record onto ``schema`` and return a typed tuple.

    Sequences are mapped positionally and must have exactly one value per
    field. Mappings are looked up by each field's ``source_key`` (or its
    name); missing keys are treated as NULL and extra keys are ignored.

    Args:
        raw: Raw record (list/tuple of values or dict).
        schema: Target table schema.

    Returns:
        Tuple of typed values in schema order.

    Raises:
        MappingError: If the record has the wrong shape or any field fails
            conversion.
    """
    if isinstance(raw, Mapping):
        values = [raw.get(spec.key) for spec in schema.fields]
    elif isinstance(raw, (list, tuple)):
        if len(raw) != len(schema.fields):
            raise MappingError(
                f"Expected {len(schema.fields)} fields, got {len(raw)}",
                record=raw,
            )
        values = list(raw)
    else:
        raise MappingError(
            f"Unsupported record type {type(raw).__name__}", record=raw
        )

    typed = []
    for spec, value in zip(schema.fields, values):
        try:
            typed.append(convert_value(value, spec, schema.null_values))
        except MappingError as exc:
            exc.record = raw
            raise
    return tuple(typed)
