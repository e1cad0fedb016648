"""
ONPOST Analytics — Order Statistics

median / percentile over unsorted price lists. Both return 0 for empty input
so snapshot fields are always numeric.
"""

from __future__ import annotations

import math
import statistics
from typing import Sequence


def median(values: Sequence[float]) -> float:
    """Middle value; mean of the two middle values for even length; 0 if empty."""
    if not values:
        return 0
    return statistics.median(values)


def percentile(values: Sequence[float], p: float) -> float:
    """
    Linear-interpolated percentile.

    The fractional rank is p/100 * (n-1); the result interpolates between the
    two sorted order statistics that bracket it.

    Examples:
        >>> percentile([10, 20, 30, 40], 50)
        25.0
    """
    if not values:
        return 0
    ordered = sorted(values)
    rank = (p / 100) * (len(ordered) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return ordered[lower]
    return ordered[lower] * (upper - rank) + ordered[upper] * (rank - lower)
