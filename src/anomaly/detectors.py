"""
Detectors for statistical deviations.

Implements explainable methods:
- Z-score detection
- Relative deviation from an expected value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .schema import BaselineStats


@dataclass
class ZScoreDetector:
    """
    Absolute z-score detector.

    A flat baseline (std <= min_std) yields 0: no deviation can be measured.
    """

    min_std: float = 0.0

    def compute(self, observed: float, baseline: BaselineStats) -> float:
        if baseline.std <= self.min_std:
            return 0.0
        return abs(observed - baseline.mean) / baseline.std


@dataclass
class RelativeDeviationDetector:
    """
    Relative deviation detector.

    Computes |observed - expected| / expected; None when expected is not positive.
    """

    def compute(self, observed: Optional[float], expected: Optional[float]) -> Optional[float]:
        if observed is None or expected is None or expected <= 0:
            return None
        return abs(observed - expected) / expected
