"""
Canonical data point schema for the anomaly detection pipeline.

This module defines the standardized representation of a single medicine
supply observation after key normalization and validation, and the enriched
record produced by feature derivation. All store records are converted to
this schema before rule evaluation or scoring.

Design rationale:
- snake_case fields; camelCase store keys are normalized upstream
- All timestamps in UTC for consistency
- Records are frozen once built (one batch owns them read-only)
- Unknown store fields are preserved as extras
"""

from datetime import datetime
from typing import Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.data.normalizers import normalize_timestamp


class RegionalStock(BaseModel):
    """Stock snapshot of a neighbouring location in the same region."""

    model_config = ConfigDict(frozen=True, extra="allow")

    location: str
    current_stock: float = Field(..., ge=0)
    critical_threshold: float = Field(..., ge=0)


class RegionalPrice(BaseModel):
    """Price quoted by one pharmacy in the same region."""

    model_config = ConfigDict(frozen=True, extra="allow")

    name: Optional[str] = None
    price: float = Field(..., ge=0)


class SeasonalDemand(BaseModel):
    """Historical demand reference for one calendar month."""

    model_config = ConfigDict(frozen=True, extra="allow")

    average_demand: float = Field(..., ge=0)


class DataPoint(BaseModel):
    """
    One observation of a medicine's stock, price and demand at a location.

    Attributes:
        id: Identifier (generated when the store record has none)
        medicine_id: Store identifier of the medicine (optional)
        medicine_name: Display name, used for category lookups
        location: City or facility name, used for risk lookups
        current_stock: Units on hand
        current_price: Unit price (optional)
        timestamp: UTC observation time
        stock_history / price_history / demand_history: most-recent-last series
        seasonal_factors: Demand multipliers by calendar month. Either a
            12-item list (January first) or a mapping keyed by month 1-12.

    Notes:
        - Frozen: a data point never changes after ingestion
        - Threshold and baseline fields are optional; features that depend
          on them are left absent rather than zero-filled
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = Field(default_factory=lambda: str(uuid4()))
    medicine_id: Optional[str] = None
    medicine_name: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    current_stock: float = Field(..., ge=0)
    current_price: Optional[float] = Field(default=None, ge=0)
    timestamp: datetime

    # Historical series
    stock_history: Optional[List[float]] = None
    price_history: Optional[List[float]] = None
    demand_history: Optional[List[float]] = None
    daily_consumption_history: Optional[List[float]] = None

    # Thresholds and baselines
    critical_threshold: Optional[float] = Field(default=None, ge=0)
    reorder_point: Optional[float] = Field(default=None, ge=0)
    average_market_price: Optional[float] = Field(default=None, ge=0)
    daily_consumption: Optional[float] = Field(default=None, ge=0)
    average_daily_consumption: Optional[float] = Field(default=None, ge=0)
    max_capacity: Optional[float] = Field(default=None, ge=0)
    max_stock: Optional[float] = Field(default=None, ge=0)
    current_demand: Optional[float] = Field(default=None, ge=0)
    average_demand: Optional[float] = Field(default=None, ge=0)
    maximum_retail_price: Optional[float] = Field(default=None, ge=0)
    manufacturing_cost: Optional[float] = Field(default=None, ge=0)

    # Supplier / expiry metadata
    supplier: Optional[str] = None
    supplier_reliability: Optional[float] = Field(default=None, ge=0, le=1)
    expiry_date: Optional[datetime] = None
    batch_number: Optional[str] = None
    last_delivery_date: Optional[datetime] = None
    average_delivery_interval: Optional[float] = Field(default=None, gt=0)
    days_since_restock: Optional[float] = Field(default=None, ge=0)

    # Regional context
    region: Optional[str] = None
    regional_data: Optional[List[RegionalStock]] = None
    regional_prices: Optional[List[RegionalPrice]] = None
    cross_regional_prices: Optional[Dict[str, float]] = None

    # Seasonal context
    seasonal_factors: Optional[Union[List[float], Dict[int, float]]] = None
    seasonal_data: Optional[Dict[int, SeasonalDemand]] = None

    # Informational dates carried into finding details
    last_stock_date: Optional[str] = None
    expected_restock_date: Optional[str] = None
    projected_stockout_date: Optional[str] = None
    expected_delivery_date: Optional[str] = None

    @field_validator("timestamp", "expiry_date", "last_delivery_date", mode="before")
    @classmethod
    def _coerce_datetime(cls, value):
        if value is None or value == "":
            return None
        return normalize_timestamp(value)

    def seasonal_factor(self, month: int) -> float:
        """Demand multiplier for a calendar month (1-12); 1.0 when unknown."""
        factors = self.seasonal_factors
        if not factors:
            return 1.0
        if isinstance(factors, list):
            if 1 <= month <= len(factors):
                return factors[month - 1] or 1.0
            return 1.0
        return factors.get(month) or 1.0

    def seasonal_average_demand(self, month: int) -> Optional[float]:
        """Historical average demand for a calendar month, if known."""
        if not self.seasonal_data:
            return None
        entry = self.seasonal_data.get(month)
        return entry.average_demand if entry else None


class ValidationResult(BaseModel):
    """
    Outcome of validating a raw store record.

    Fields:
    - is_valid: True when no errors were found
    - errors: fatal problems (the record is skipped)
    - warnings: non-fatal problems (reduced detection confidence expected)
    """

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class DerivedFeatures(BaseModel):
    """
    Features derived from the data point's own fields and histories.

    All fields are optional: a feature is absent when its inputs are absent.
    """

    model_config = ConfigDict(frozen=True)

    stock_ratio: Optional[float] = None
    is_low_stock: Optional[bool] = None
    needs_reorder: Optional[bool] = None
    price_deviation: Optional[float] = None
    is_price_anomaly: Optional[bool] = None
    stock_trend: Optional[float] = None
    stock_volatility: Optional[float] = None
    price_trend: Optional[float] = None
    price_volatility: Optional[float] = None
    demand_trend: Optional[float] = None
    demand_volatility: Optional[float] = None
    days_since_last_delivery: Optional[float] = None
    is_delivery_overdue: Optional[bool] = None
    days_to_expiry: Optional[float] = None
    is_near_expiry: Optional[bool] = None
    is_expired: Optional[bool] = None


class TemporalFeatures(BaseModel):
    """Calendar features of the observation timestamp (Monday is day 0)."""

    model_config = ConfigDict(frozen=True)

    hour: int = Field(..., ge=0, le=23)
    day_of_week: int = Field(..., ge=0, le=6)
    day_of_month: int = Field(..., ge=1, le=31)
    month: int = Field(..., ge=1, le=12)
    quarter: int = Field(..., ge=1, le=4)
    is_weekend: bool
    is_business_hour: bool
    week_of_year: int = Field(..., ge=1, le=53)


class NormalizedFeatures(BaseModel):
    """Ratios scaled against supplied baselines; absent without a baseline."""

    model_config = ConfigDict(frozen=True)

    stock_level: Optional[float] = None
    relative_price: Optional[float] = None
    relative_demand: Optional[float] = None


class ContextualFeatures(BaseModel):
    """Static lookups about where and what the observation concerns."""

    model_config = ConfigDict(frozen=True)

    location_risk: float = Field(..., ge=0.0, le=1.0)
    region_type: str
    medicine_category: str
    is_critical_medicine: bool
    seasonal_demand_factor: float = 1.0
    is_high_demand_season: bool = False


class EnrichedDataPoint(BaseModel):
    """
    A data point together with every derived feature group.

    Produced fresh per batch by the feature processor and consumed
    read-only by the rule engine and the scoring ensemble.
    """

    model_config = ConfigDict(frozen=True)

    data: DataPoint
    derived: DerivedFeatures
    temporal: TemporalFeatures
    normalized: NormalizedFeatures
    contextual: ContextualFeatures

    @property
    def id(self) -> str:
        return self.data.id
