"""
Structured-value model for captured row images.

A row image maps column names to JSON-compatible values: None, bool, int,
finite float, str, lists and string-keyed dicts. Host values are normalised
the way PostgreSQL's ``to_jsonb`` renders them (temporal types become ISO-8601
strings, UUIDs become strings). Anything else raises UnrepresentableValue so a
column is never silently dropped or corrupted.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional
from uuid import UUID

from changeset_history.errors import UnrepresentableValue

RowImage = Dict[str, Any]


def _decimal_to_number(column: str, value: Decimal) -> Any:
    if not value.is_finite():
        raise UnrepresentableValue(column, "Decimal", reason="not finite")
    if value == value.to_integral_value():
        return int(value)
    as_float = float(value)
    try:
        exact = Decimal(repr(as_float)) == value
    except InvalidOperation:
        exact = False
    if not exact:
        raise UnrepresentableValue(column, "Decimal", reason="precision would be lost")
    return as_float


def to_structured(column: str, value: Any) -> Any:
    """
    Convert a host value into the structured-value model.

    Parameters
    ----------
    column : str
        Column name, used only to label errors.
    value : Any
        The raw value supplied by the host.

    Raises
    ------
    UnrepresentableValue
        If the value (or anything nested in it) has no structured form.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise UnrepresentableValue(column, "float", reason="not finite")
        return value
    if isinstance(value, Decimal):
        return _decimal_to_number(column, value)
    if isinstance(value, Enum):
        return to_structured(column, value.value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Mapping):
        result: Dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise UnrepresentableValue(column, type(key).__name__, reason="non-string key")
            result[key] = to_structured(column, item)
        return result
    if isinstance(value, (list, tuple)):
        return [to_structured(column, item) for item in value]
    raise UnrepresentableValue(column, type(value).__name__)


def strip_columns(image: Mapping[str, Any], *excluded: Iterable[str]) -> RowImage:
    """
    Return a structured copy of ``image`` without the excluded columns.

    Excluded columns are removed before conversion, so an unrepresentable
    value in an ignored column never raises.
    """
    skip = set()
    for columns in excluded:
        skip.update(columns)
    return {
        column: to_structured(column, value)
        for column, value in image.items()
        if column not in skip
    }


def values_equal(left: Any, right: Any) -> bool:
    """
    Null-safe deep structural equality.

    Objects compare by key regardless of order, arrays by position. Unlike
    Python's ``==``, booleans never equal numbers (``True != 1``).
    """
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(values_equal(left[key], right[key]) for key in left)
    if isinstance(left, list) and isinstance(right, list):
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def images_equal(left: Optional[Mapping[str, Any]], right: Optional[Mapping[str, Any]]) -> bool:
    """Structural equality for whole row images; ``None`` means absent."""
    if left is None or right is None:
        return left is None and right is None
    return values_equal(dict(left), dict(right))


__all__ = [
    "RowImage",
    "to_structured",
    "strip_columns",
    "values_equal",
    "images_equal",
]
