"""Statistics helpers shared by outlier detection and confidence scoring."""

from __future__ import annotations

import math
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal


def average(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation (divides by N), 0 below two values."""
    if len(values) < 2:
        return 0.0
    mean = average(values)
    variance = average([(v - mean) ** 2 for v in values])
    return math.sqrt(variance)


def clamp(value: float, minimum: float, maximum: float) -> float:
    return min(max(value, minimum), maximum)


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest whole unit, halves away from zero.

    Scores and amounts are non-negative, so halves always round up
    (2.5 -> 3).
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
