"""
Validation of raw store records before feature derivation.

Checks presence of required fields, numeric types and ranges, timestamp
parseability and the shape of historical series. Validation is read-only:
the input record is never modified.
"""

import logging
import numbers
from typing import Any, Iterable, List, Mapping

from src.core.config import config
from src.data.normalizers import NormalizationError, normalize_keys, normalize_timestamp
from src.data.schema import ValidationResult

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("medicine_name", "location", "current_stock", "timestamp")

NUMERIC_FIELDS = (
    "current_stock",
    "current_price",
    "critical_threshold",
    "reorder_point",
    "average_market_price",
    "daily_consumption",
    "average_daily_consumption",
    "max_capacity",
    "max_stock",
    "current_demand",
    "average_demand",
    "maximum_retail_price",
    "manufacturing_cost",
)

HISTORY_FIELDS = (
    "stock_history",
    "price_history",
    "demand_history",
    "daily_consumption_history",
)

# Short series only degrade confidence; they never invalidate a record
WARNED_HISTORIES = (
    ("price_history", "price"),
    ("stock_history", "stock"),
)


def is_number(value: Any) -> bool:
    """True for real numbers, excluding booleans and NaN."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return value == value


def _is_non_negative_series(values: Iterable[Any]) -> bool:
    return all(is_number(v) and v >= 0 for v in values)


def validate(record: Mapping[str, Any]) -> ValidationResult:
    """
    Validate a raw data point record.

    Args:
        record: Store document (camelCase or snake_case keys)

    Returns:
        ValidationResult with errors (fatal) and warnings (non-fatal)
    """
    errors: List[str] = []
    warnings: List[str] = []

    try:
        data = normalize_keys(record)
    except NormalizationError as e:
        return ValidationResult(is_valid=False, errors=[str(e)])

    for field in REQUIRED_FIELDS:
        if data.get(field) is None:
            errors.append(f"Missing required field: {field}")

    for field in NUMERIC_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        if not is_number(value) or value < 0:
            errors.append(f"{field} must be a non-negative number")

    if data.get("timestamp") is not None:
        try:
            normalize_timestamp(data["timestamp"])
        except NormalizationError:
            errors.append("timestamp must be a valid date")

    for field in HISTORY_FIELDS:
        series = data.get(field)
        if series is None:
            continue
        if not isinstance(series, (list, tuple)):
            errors.append(f"{field} must be an array")
        elif not _is_non_negative_series(series):
            errors.append(f"{field} must contain only non-negative numbers")

    min_len = config.features.min_history_warning
    for field, label in WARNED_HISTORIES:
        series = data.get(field)
        if not isinstance(series, (list, tuple)) or len(series) < min_len:
            warnings.append(f"Limited {label} history may affect anomaly detection accuracy")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
