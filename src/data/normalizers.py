"""
Record normalization: standardize keys and timestamps of store records.

Converts raw store documents (which may use camelCase keys, epoch or ISO
timestamps, and store-specific metadata keys) into a canonical form that is
consistent across the entire pipeline.

Design:
- Key normalization camelCase -> snake_case (top level and known nested records)
- Timestamp normalization to timezone-aware UTC datetime
- Input records are never mutated; a new dict is returned
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

# Fields whose list items / mapping values are records with their own keys
_NESTED_LIST_FIELDS = {"regional_data", "regional_prices"}
_NESTED_MAPPING_FIELDS = {"seasonal_data"}


class NormalizationError(Exception):
    """Raised when a record value cannot be normalized."""
    pass


def normalize_key(key: str) -> str:
    """
    Convert a camelCase key to snake_case.

    Already snake_case keys are returned unchanged.

    Args:
        key: Raw key from the store

    Returns:
        snake_case key
    """
    return _CAMEL_BOUNDARY.sub(r"_\1", str(key)).lower()


def _normalize_mapping_keys(record: Mapping[str, Any]) -> Dict[str, Any]:
    return {normalize_key(k): v for k, v in record.items()}


def normalize_keys(record: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Normalize all keys of a store record.

    Args:
        record: Raw store document

    Returns:
        New dict with snake_case keys

    Notes:
        - Store metadata keys ("$id", "$createdAt", ...) are dropped, except
          that "$id" fills in "id" when the record has none
        - Nested regional and seasonal records are normalized as well;
          free-form mappings (e.g. region -> price) keep their keys
    """
    if not isinstance(record, Mapping):
        raise NormalizationError(f"Expected mapping, got {type(record).__name__}")

    normalized: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(key, str) and key.startswith("$"):
            continue
        normalized[normalize_key(key)] = value

    if "id" not in normalized and record.get("$id") is not None:
        normalized["id"] = record["$id"]

    for field in _NESTED_LIST_FIELDS:
        items = normalized.get(field)
        if isinstance(items, list):
            normalized[field] = [
                _normalize_mapping_keys(item) if isinstance(item, Mapping) else item
                for item in items
            ]

    for field in _NESTED_MAPPING_FIELDS:
        entries = normalized.get(field)
        if isinstance(entries, Mapping):
            normalized[field] = {
                k: _normalize_mapping_keys(v) if isinstance(v, Mapping) else v
                for k, v in entries.items()
            }

    return normalized


def normalize_timestamp(value: Any) -> datetime:
    """
    Normalize a timestamp value to UTC datetime.

    Supports common formats:
    - datetime objects (naive values are assumed UTC)
    - ISO 8601: 2025-02-07T10:30:45Z, 2025-02-07T10:30:45+05:30
    - Date-time: 2025-02-07 10:30:45
    - Date only: 2025-02-07
    - Epoch seconds: 1707315045
    - Epoch millis: 1707315045000

    Args:
        value: Timestamp value

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        NormalizationError: If timestamp format not recognized
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if value is None or isinstance(value, bool):
        raise NormalizationError(f"Invalid timestamp: {value!r}")

    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    ts_str = str(value).strip()
    if not ts_str:
        raise NormalizationError("Empty timestamp")

    try:
        return _from_epoch(float(ts_str))
    except ValueError:
        pass

    iso = ts_str[:-1] + "+00:00" if ts_str.endswith("Z") else ts_str
    try:
        dt = datetime.fromisoformat(iso)
    except ValueError as e:
        raise NormalizationError(f"Could not parse timestamp: {ts_str}") from e

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch(ts_float: float) -> datetime:
    # Timestamps before year 3000 are seconds
    try:
        if ts_float < 32503680000:
            return datetime.fromtimestamp(ts_float, tz=timezone.utc)
        return datetime.fromtimestamp(ts_float / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise NormalizationError(f"Epoch timestamp out of range: {ts_float}") from e
