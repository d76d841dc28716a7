"""
Baseline estimation over historical series.

Each data point carries its own history, so baselines are computed from
that series alone: no state is kept between data points.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Optional, Sequence

from .schema import BaselineStats


@dataclass
class TrailingStatsEstimator:
    """
    Mean/std over the trailing window of a series.

    Warm-up: returns None until min_points are available.
    """

    window_size: int
    min_points: int

    def peek(self, values: Optional[Sequence[float]]) -> Optional[BaselineStats]:
        if not values or len(values) < self.min_points:
            return None
        window = [float(v) for v in values[-self.window_size:]]
        mean = sum(window) / len(window)
        variance = sum((v - mean) ** 2 for v in window) / len(window)
        return BaselineStats(mean=mean, std=sqrt(variance), count=len(window))


def mean_relative_change(values: Sequence[float]) -> float:
    """
    Average |v[i] - v[i-1]| / v[i-1] over consecutive pairs.

    Pairs with a non-positive previous value contribute 0.
    """
    if len(values) < 2:
        return 0.0
    changes = [
        abs(curr - prev) / prev if prev > 0 else 0.0
        for prev, curr in zip(values, values[1:])
    ]
    return sum(changes) / len(changes)
