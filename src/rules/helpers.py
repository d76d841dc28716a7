"""
Helper functions exposed to rule conditions and actions.

All helpers are pure functions of their arguments. Date helpers accept
datetimes or any timestamp format the normalizers understand.
"""

from __future__ import annotations

from typing import Optional, Sequence

from src.data.normalizers import normalize_timestamp

SECONDS_PER_DAY = 86400.0


def is_within_range(value: float, minimum: float, maximum: float) -> bool:
    return minimum <= value <= maximum


def is_outside_range(value: float, minimum: float, maximum: float) -> bool:
    return value < minimum or value > maximum


def percentage_change(current: float, previous: float) -> float:
    """Percent change from previous to current; 0.0 when previous is zero."""
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def days_between(first, second) -> float:
    """
    Absolute number of days between two dates.

    Accepts datetimes or any timestamp normalize_timestamp understands.
    """
    a = normalize_timestamp(first)
    b = normalize_timestamp(second)
    return abs((a - b).total_seconds()) / SECONDS_PER_DAY


def is_weekend(date) -> bool:
    return normalize_timestamp(date).weekday() >= 5


def moving_average(values: Sequence[float], window: int) -> Optional[float]:
    """Mean of the last `window` values; None when the series is too short."""
    if window <= 0 or not values or len(values) < window:
        return None
    return sum(values[-window:]) / window


class RuleHelpers:
    """Namespace passed to rules as context.helpers."""

    is_within_range = staticmethod(is_within_range)
    is_outside_range = staticmethod(is_outside_range)
    percentage_change = staticmethod(percentage_change)
    days_between = staticmethod(days_between)
    is_weekend = staticmethod(is_weekend)
    moving_average = staticmethod(moving_average)


helpers = RuleHelpers()

