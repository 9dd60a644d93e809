"""Numeric coercion boundary.

Parquet readers hand 64-bit columns over as Python ints, numpy scalars or,
from some writers, strings and Decimals. Every count, index or timestamp
that crosses from storage into domain logic goes through these functions;
raw storage values are never compared with native numbers directly.
"""

from __future__ import annotations

import math
import numbers
from decimal import Decimal
from typing import Any

import numpy as np


def to_number(value: Any, default: float | int | None = None) -> float | int | None:
    """Coerce a storage value to a native int or float.

    Args:
        value: Raw value from a parquet row or JSON document.
        default: Returned when the value is missing or not numeric.

    Returns:
        Native int for integral inputs, float for real inputs, else default.
        NaN and infinities map to default.
    """
    if value is None:
        return default
    if isinstance(value, (bool, np.bool_)):
        return int(bool(value))
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, (numbers.Real, Decimal)):
        result = float(value)
        return result if math.isfinite(result) else default
    if isinstance(value, np.ndarray) and value.ndim == 0:
        return to_number(value.item(), default)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(text)
        except ValueError:
            pass
        try:
            result = float(text)
        except ValueError:
            return default
        return result if math.isfinite(result) else default
    return default


def to_int(value: Any, default: int | None = None) -> int | None:
    """Coerce a storage value to a native int.

    Floats are accepted only when they hold an integral value.
    """
    number = to_number(value)
    if number is None:
        return default
    if isinstance(number, int):
        return number
    if float(number).is_integer():
        return int(number)
    return default


def to_float(value: Any, default: float | None = None) -> float | None:
    """Coerce a storage value to a native float."""
    number = to_number(value)
    if number is None:
        return default
    return float(number)


def is_sequence_value(value: Any) -> bool:
    """Check whether a cell holds an array (list, tuple or ndarray)."""
    if isinstance(value, np.ndarray):
        return value.ndim > 0
    return isinstance(value, (list, tuple))
