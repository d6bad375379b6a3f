"""Importance weights and rounding rules shared by every progress computation.

Nothing else in the package keeps its own weight table or rounding rule;
task progress, issue rollups and project rollups all go through here.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict

IMPORTANCE_WEIGHTS: Dict[str, int] = {
    "Critical": 4,
    "High": 3,
    "Medium": 2,
    "Low": 1,
}
DEFAULT_WEIGHT = IMPORTANCE_WEIGHTS["Low"]
UNIFORM_WEIGHT = 1

_TENTH = Decimal("0.1")


def importance_weight(importance: Any) -> int:
    """Return the aggregation weight for ``importance``.

    Accepts the enum or its plain string value. Missing or unknown
    importance counts as ``Low``.
    """
    key = getattr(importance, "value", importance)
    if not isinstance(key, str):
        return DEFAULT_WEIGHT
    return IMPORTANCE_WEIGHTS.get(key, DEFAULT_WEIGHT)


def round1(value: float) -> float:
    """Round ``value`` to one decimal place, halves away from zero."""
    try:
        rounded = Decimal(str(value)).quantize(_TENTH, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return 0.0
    return float(rounded)


def clamp_progress(value: Any) -> float:
    """Coerce ``value`` to a float within ``[0, 100]``.

    ``None``, booleans, non-numeric values and NaN become 0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(100.0, max(0.0, number))


__all__ = [
    "IMPORTANCE_WEIGHTS",
    "DEFAULT_WEIGHT",
    "UNIFORM_WEIGHT",
    "importance_weight",
    "round1",
    "clamp_progress",
]
