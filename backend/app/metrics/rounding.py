from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence


def round_half_up(value: Optional[float], decimals: int = 2) -> float:
    """Round half away from zero on the decimal representation.

    Non-finite or missing values become 0.0.
    """
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(repr(number)).quantize(quantum, rounding=ROUND_HALF_UP))


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[middle - 1] + ordered[middle]) / 2
    return float(ordered[middle])


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def pct(part: float, whole: float) -> float:
    """part / whole × 100, 0 when whole is not positive."""
    return (part / whole) * 100 if whole > 0 else 0.0
