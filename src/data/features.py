"""
Feature derivation for medicine supply data points.

Converts validated store records into EnrichedDataPoint objects suitable for
rule evaluation and scoring. Features are deterministic functions of the data
point alone: elapsed-day features are measured against the observation
timestamp, never against the wall clock.

Design:
- Four feature groups: derived, temporal, normalized, contextual
- Features with missing inputs are left absent (no silent zero-fill)
- Each data point is processed independently; failures skip one item only
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from math import sqrt
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from src.core.config import config
from src.core.exceptions import DataValidationError, FeatureExtractionError
from src.data.normalizers import normalize_keys
from src.data.schema import (
    ContextualFeatures,
    DataPoint,
    DerivedFeatures,
    EnrichedDataPoint,
    NormalizedFeatures,
    TemporalFeatures,
    ValidationResult,
)
from src.data.validation import validate

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0

LOCATION_RISK = {
    "delhi": 0.8,
    "mumbai": 0.7,
    "bangalore": 0.5,
    "chennai": 0.4,
    "kolkata": 0.6,
    "hyderabad": 0.5,
    "pune": 0.4,
    "ahmedabad": 0.6,
}
DEFAULT_LOCATION_RISK = 0.5

METRO_CITIES = {"delhi", "mumbai", "bangalore", "chennai", "kolkata", "hyderabad"}

# Substring -> category; first match wins
MEDICINE_CATEGORIES = (
    ("insulin", "diabetes"),
    ("metformin", "diabetes"),
    ("levothyroxine", "thyroid"),
    ("amlodipine", "cardiovascular"),
    ("atorvastatin", "cardiovascular"),
    ("paracetamol", "analgesic"),
    ("amoxicillin", "antibiotic"),
)

CRITICAL_MEDICINES = ("insulin", "levothyroxine", "amlodipine", "metformin")


def calculate_trend(values: Sequence[float]) -> float:
    """
    Ordinary least squares slope over the index sequence 0..n-1.

    Returns 0.0 for fewer than two values.
    """
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for i, v in enumerate(values):
        sum_x += i
        sum_y += v
        sum_xy += i * v
        sum_xx += i * i

    denom = n * sum_xx - sum_x * sum_x
    if denom == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denom


def calculate_volatility(values: Sequence[float]) -> float:
    """
    Coefficient of variation (population std / mean).

    Returns 0.0 for fewer than two values or a non-positive mean.
    """
    if len(values) < 2:
        return 0.0

    mean = sum(values) / len(values)
    if mean <= 0:
        return 0.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return sqrt(variance) / mean


def _days_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def _trend_features(series: Optional[List[float]]) -> tuple:
    if not series or len(series) < config.features.min_trend_points:
        return None, None
    window = series[-config.features.trend_window:]
    return calculate_trend(window), calculate_volatility(window)


def extract_derived_features(point: DataPoint) -> DerivedFeatures:
    """
    Derive stock, price, trend, delivery and expiry features.

    Args:
        point: Validated data point

    Returns:
        DerivedFeatures with absent values where inputs are missing
    """
    cfg = config.features
    features = {}

    if point.critical_threshold is not None:
        if point.critical_threshold > 0:
            features["stock_ratio"] = point.current_stock / point.critical_threshold
        features["is_low_stock"] = point.current_stock <= point.critical_threshold

    if point.reorder_point is not None:
        features["needs_reorder"] = point.current_stock <= point.reorder_point

    if point.current_price is not None and point.average_market_price:
        deviation = (point.current_price - point.average_market_price) / point.average_market_price
        features["price_deviation"] = deviation
        features["is_price_anomaly"] = abs(deviation) > cfg.price_deviation_threshold

    features["stock_trend"], features["stock_volatility"] = _trend_features(point.stock_history)
    features["price_trend"], features["price_volatility"] = _trend_features(point.price_history)
    features["demand_trend"], features["demand_volatility"] = _trend_features(point.demand_history)

    if point.last_delivery_date is not None:
        days_since = _days_between(point.timestamp, point.last_delivery_date)
        interval = point.average_delivery_interval or cfg.default_delivery_interval_days
        features["days_since_last_delivery"] = days_since
        features["is_delivery_overdue"] = days_since > interval * cfg.overdue_multiplier

    if point.expiry_date is not None:
        days_to_expiry = _days_between(point.expiry_date, point.timestamp)
        features["days_to_expiry"] = days_to_expiry
        features["is_near_expiry"] = 0 < days_to_expiry <= cfg.near_expiry_days
        features["is_expired"] = days_to_expiry <= 0

    return DerivedFeatures(**features)


def extract_temporal_features(timestamp: datetime) -> TemporalFeatures:
    """
    Calendar features of a timestamp.

    Notes:
        - day_of_week follows Python's convention (Monday = 0)
        - business hours are 09:00 through the 17:00 hour inclusive
        - week_of_year is the ISO week number
    """
    weekday = timestamp.weekday()
    return TemporalFeatures(
        hour=timestamp.hour,
        day_of_week=weekday,
        day_of_month=timestamp.day,
        month=timestamp.month,
        quarter=(timestamp.month - 1) // 3 + 1,
        is_weekend=weekday >= 5,
        is_business_hour=9 <= timestamp.hour <= 17,
        week_of_year=timestamp.isocalendar()[1],
    )


def extract_normalized_features(point: DataPoint) -> NormalizedFeatures:
    """Scale stock, price and demand against their supplied baselines."""
    features = {}

    if point.max_capacity:
        features["stock_level"] = min(point.current_stock / point.max_capacity, 1.0)

    if point.current_price is not None and point.average_market_price:
        features["relative_price"] = point.current_price / point.average_market_price

    if point.current_demand is not None and point.average_demand:
        features["relative_demand"] = point.current_demand / point.average_demand

    return NormalizedFeatures(**features)


def get_location_risk(location: Optional[str]) -> float:
    return LOCATION_RISK.get((location or "").strip().lower(), DEFAULT_LOCATION_RISK)


def get_region_type(location: Optional[str]) -> str:
    return "metro" if (location or "").strip().lower() in METRO_CITIES else "non-metro"


def get_medicine_category(medicine_name: Optional[str]) -> str:
    name = (medicine_name or "").lower()
    for key, category in MEDICINE_CATEGORIES:
        if key in name:
            return category
    return "other"


def is_critical_medicine(medicine_name: Optional[str]) -> bool:
    name = (medicine_name or "").lower()
    return any(med in name for med in CRITICAL_MEDICINES)


def extract_contextual_features(point: DataPoint) -> ContextualFeatures:
    """Location, category and seasonal lookups for a data point."""
    seasonal = point.seasonal_factor(point.timestamp.month)
    return ContextualFeatures(
        location_risk=get_location_risk(point.location),
        region_type=get_region_type(point.location),
        medicine_category=get_medicine_category(point.medicine_name),
        is_critical_medicine=is_critical_medicine(point.medicine_name),
        seasonal_demand_factor=seasonal,
        is_high_demand_season=seasonal > config.features.high_demand_season_factor,
    )


def enrich(point: DataPoint) -> EnrichedDataPoint:
    """
    Build the enriched record for one data point.

    Raises:
        FeatureExtractionError: If feature computation fails
    """
    try:
        return EnrichedDataPoint(
            data=point,
            derived=extract_derived_features(point),
            temporal=extract_temporal_features(point.timestamp),
            normalized=extract_normalized_features(point),
            contextual=extract_contextual_features(point),
        )
    except Exception as e:
        raise FeatureExtractionError(
            f"Failed to derive features for data point {point.id}: {e}"
        ) from e


def to_data_point(record: Any) -> DataPoint:
    """
    Validate a raw record and build a DataPoint.

    DataPoint instances pass through unchanged.

    Raises:
        DataValidationError: If the record fails validation
    """
    if isinstance(record, DataPoint):
        return record

    result = validate(record)
    if not result.is_valid:
        raise DataValidationError(
            f"Invalid data point: {'; '.join(result.errors)}", errors=result.errors
        )

    try:
        return DataPoint.model_validate(normalize_keys(record))
    except Exception as e:
        raise DataValidationError(f"Invalid data point: {e}", errors=[str(e)]) from e


class FeatureProcessor:
    """
    Validates and enriches batches of raw data points.

    Items are independent: a bad record is logged and skipped, the rest of
    the batch continues. With max_workers > 1 items are enriched on a thread
    pool; output order always follows input order.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers or config.detection.max_workers

    def validate(self, record: Mapping[str, Any]) -> ValidationResult:
        return validate(record)

    def preprocess_one(self, record: Any) -> Optional[EnrichedDataPoint]:
        try:
            return enrich(to_data_point(record))
        except DataValidationError as e:
            logger.warning(f"Skipped data point due to validation error: {e}")
        except FeatureExtractionError as e:
            logger.warning(f"Skipped data point due to feature error: {e}")
        except Exception as e:
            logger.error(f"Unexpected error preprocessing data point: {e}")
        return None

    def preprocess(self, records: Iterable[Any]) -> List[EnrichedDataPoint]:
        """
        Enrich a batch of records.

        Args:
            records: Raw store records or DataPoint objects

        Returns:
            EnrichedDataPoint list (skipped items omitted, order preserved)
        """
        records = list(records)
        if self.max_workers > 1 and len(records) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(self.preprocess_one, records))
        else:
            results = [self.preprocess_one(r) for r in records]

        enriched = [r for r in results if r is not None]
        skipped = len(records) - len(enriched)
        if skipped:
            logger.info(f"Preprocessed {len(enriched)} data points, skipped {skipped}")
        return enriched
