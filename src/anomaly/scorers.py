"""
Scoring models for the ensemble.

Each scorer is a pure function of one enriched data point: the same point
always yields the same ScorerResult. Scorers never raise for missing inputs;
they report is_anomaly=False with a reason instead.

Models:
- time-series-anomaly: z-score of current stock against trailing history
- isolation-forest: deviation of a bounded feature vector from its midpoint
- price-anomaly: recent price volatility vs deviation from market average
- demand-forecast: current demand vs seasonally adjusted trailing average
"""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, List, Optional, Protocol

from src.core.config import ScoringConfig, config
from src.data.schema import EnrichedDataPoint

from .baselines import TrailingStatsEstimator, mean_relative_change
from .detectors import RelativeDeviationDetector, ZScoreDetector
from .schema import ScorerResult
from .scoring import severity_from_confidence


class ScoringModel(Protocol):
    """Interface every scorer implements."""

    model_id: ClassVar[str]
    category: ClassVar[str]
    version: ClassVar[str]

    @property
    def parameters(self) -> Dict[str, Any]: ...

    def score(self, point: EnrichedDataPoint) -> ScorerResult: ...


def _not_anomalous(confidence: float = 0.0, reason: Optional[str] = None) -> ScorerResult:
    return ScorerResult(
        is_anomaly=False, confidence=min(max(confidence, 0.0), 1.0), reason=reason
    )


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


@dataclass
class TimeSeriesScorer:
    """
    Flags current stock far from the trailing-window mean.

    confidence = min(|z| / threshold, 1)
    """

    model_id: ClassVar[str] = "time-series-anomaly"
    category: ClassVar[str] = "time-series"
    version: ClassVar[str] = "1.0.0"

    window_size: int = 7
    threshold: float = 2.5

    @property
    def parameters(self) -> Dict[str, Any]:
        return asdict(self)

    def score(self, point: EnrichedDataPoint) -> ScorerResult:
        data = point.data
        estimator = TrailingStatsEstimator(self.window_size, self.window_size)
        baseline = estimator.peek(data.stock_history)
        if baseline is None:
            return _not_anomalous(reason="Insufficient data")

        z = ZScoreDetector().compute(data.current_stock, baseline)
        if z <= self.threshold:
            return _not_anomalous()

        confidence = min(z / self.threshold, 1.0)
        return ScorerResult(
            is_anomaly=True,
            confidence=confidence,
            severity=severity_from_confidence(confidence),
            anomaly_type="Time Series Anomaly",
            message=f"ML Anomaly: {data.medicine_name} stock is {z:.2f} SD from normal.",
            description=(
                f"Current stock of {data.medicine_name} ({data.current_stock:g}) is "
                f"{z:.2f} standard deviations from the recent mean ({baseline.mean:.2f})."
            ),
            details={
                "z_score": z,
                "mean": baseline.mean,
                "std_dev": baseline.std,
                "current_value": data.current_stock,
                "medicine_name": data.medicine_name,
                "medicine_id": data.medicine_id,
            },
            causes=[
                "unexpected demand surge",
                "supply chain bottleneck",
                "inventory miscount",
                "logistics delay",
            ],
        )


@dataclass
class IsolationScorer:
    """
    Outlier score over a bounded feature vector.

    Each feature is clamped to [0, 1]; the score is the mean of
    |v - 0.5| x w_i with per-feature weights w_i in [0.5, 1.0). The weights
    come from a PRNG seeded with the model seed and the data point id, so a
    given point always scores the same.

    Notes:
    - The score cannot exceed 0.5, so with the default threshold of 0.6
      this model never votes; lower the threshold to enable it.
    """

    model_id: ClassVar[str] = "isolation-forest"
    category: ClassVar[str] = "anomaly-detection"
    version: ClassVar[str] = "1.0.0"

    threshold: float = 0.6
    seed: int = 42

    @property
    def parameters(self) -> Dict[str, Any]:
        return asdict(self)

    def extract_features(self, point: EnrichedDataPoint) -> Dict[str, float]:
        data = point.data
        price = data.current_price or 0.0
        demand = data.current_demand or 0.0
        return {
            "stock_ratio": data.current_stock / (data.max_stock or 1),
            "price_ratio": price / (data.average_market_price or price or 1),
            "demand_ratio": demand / (data.average_demand or demand or 1),
            "days_since_restock": data.days_since_restock or 0.0,
            "seasonal_factor": point.contextual.seasonal_demand_factor,
            "location_risk": point.contextual.location_risk,
            "supplier_reliability": (
                data.supplier_reliability if data.supplier_reliability is not None else 0.5
            ),
        }

    def isolation_score(self, point_id: str, features: Dict[str, float]) -> float:
        rng = random.Random(f"{self.seed}:{point_id}")
        values = [_clamp(v) for v in features.values()]
        total = sum(abs(v - 0.5) * (rng.random() * 0.5 + 0.5) for v in values)
        return min(total / len(values), 1.0)

    def score(self, point: EnrichedDataPoint) -> ScorerResult:
        features = self.extract_features(point)
        score = self.isolation_score(point.id, features)
        if score <= self.threshold:
            return _not_anomalous(score)

        data = point.data
        return ScorerResult(
            is_anomaly=True,
            confidence=score,
            severity=severity_from_confidence(score),
            anomaly_type="Isolation Forest Anomaly",
            message=(
                f"ML Anomaly: {data.medicine_name} shows unusual behavior "
                f"(Isolation Score: {score:.3f})."
            ),
            description=(
                f"{data.medicine_name} is an outlier across its feature set "
                f"(isolation score {score:.3f})."
            ),
            details={
                "isolation_score": score,
                "features": features,
                "medicine_name": data.medicine_name,
                "medicine_id": data.medicine_id,
            },
            causes=[
                "data quality issue",
                "system error",
                "unforeseen event",
                "unusual transaction volume",
            ],
        )


@dataclass
class PriceScorer:
    """
    Flags volatile prices or prices far from the market average.

    score = max(2 x mean relative change over recent prices, market deviation)
    """

    model_id: ClassVar[str] = "price-anomaly"
    category: ClassVar[str] = "price-analysis"
    version: ClassVar[str] = "1.0.0"

    threshold: float = 0.3
    change_window: int = 5
    min_points: int = 3

    @property
    def parameters(self) -> Dict[str, Any]:
        return asdict(self)

    def score(self, point: EnrichedDataPoint) -> ScorerResult:
        data = point.data
        history = data.price_history
        if not history or len(history) < self.min_points:
            return _not_anomalous(reason="Insufficient price data")

        volatility = mean_relative_change(history[-self.change_window:])
        deviation = RelativeDeviationDetector().compute(
            data.current_price, data.average_market_price
        ) or 0.0

        score = max(volatility * 2, deviation)
        if score <= self.threshold:
            return _not_anomalous(score)

        confidence = min(score, 1.0)
        return ScorerResult(
            is_anomaly=True,
            confidence=confidence,
            severity=severity_from_confidence(confidence),
            anomaly_type="Price Anomaly",
            message=f"ML Anomaly: {data.medicine_name} price anomaly detected (Score: {score:.3f}).",
            description=(
                f"Unusual price pattern for {data.medicine_name}: volatility "
                f"{volatility * 100:.1f}%, deviation from market average {deviation * 100:.1f}%."
            ),
            details={
                "current_price": data.current_price,
                "avg_volatility": volatility,
                "market_deviation": deviation,
                "anomaly_score": score,
                "average_market_price": data.average_market_price,
                "medicine_name": data.medicine_name,
                "medicine_id": data.medicine_id,
            },
            causes=[
                "price volatility",
                "market deviation",
                "raw material cost increase",
                "import restrictions",
                "competitor pricing strategy",
                "economic instability",
            ],
        )


@dataclass
class DemandScorer:
    """
    Flags demand far from the seasonally adjusted trailing average.

    expected = trailing mean x seasonal factor of the observation month
    """

    model_id: ClassVar[str] = "demand-forecast"
    category: ClassVar[str] = "forecasting"
    version: ClassVar[str] = "1.0.0"

    window_size: int = 7
    threshold: float = 0.4

    @property
    def parameters(self) -> Dict[str, Any]:
        return asdict(self)

    def score(self, point: EnrichedDataPoint) -> ScorerResult:
        data = point.data
        estimator = TrailingStatsEstimator(self.window_size, self.window_size)
        baseline = estimator.peek(data.demand_history)
        if baseline is None:
            return _not_anomalous(reason="Insufficient demand data")
        if data.current_demand is None:
            return _not_anomalous(reason="No current demand")

        seasonal = point.contextual.seasonal_demand_factor
        expected = baseline.mean * seasonal
        deviation = RelativeDeviationDetector().compute(data.current_demand, expected) or 0.0
        if deviation <= self.threshold:
            return _not_anomalous(deviation)

        confidence = min(deviation, 1.0)
        return ScorerResult(
            is_anomaly=True,
            confidence=confidence,
            severity=severity_from_confidence(confidence),
            anomaly_type="Demand Anomaly",
            message=(
                f"ML Anomaly: {data.medicine_name} demand deviation "
                f"{deviation * 100:.1f}% from expected."
            ),
            description=(
                f"Current demand for {data.medicine_name} ({data.current_demand:g}) differs "
                f"by {deviation * 100:.1f}% from the expected {expected:.2f}, "
                f"seasonal factors considered."
            ),
            details={
                "current_demand": data.current_demand,
                "expected_demand": expected,
                "demand_deviation": deviation,
                "seasonal_adjustment": seasonal,
                "medicine_name": data.medicine_name,
                "medicine_id": data.medicine_id,
            },
            causes=[
                "unexpected demand fluctuation",
                "seasonal peak",
                "disease outbreak",
                "manpower shortage (distribution)",
                "public health campaign",
                "competitor stockout",
            ],
        )


def default_scorers(scoring: Optional[ScoringConfig] = None) -> List[ScoringModel]:
    """Build the four built-in scorers from configuration."""
    scoring = scoring or config.scoring
    return [
        TimeSeriesScorer(window_size=scoring.window_size, threshold=scoring.zscore_threshold),
        IsolationScorer(threshold=scoring.isolation_threshold, seed=scoring.isolation_seed),
        PriceScorer(
            threshold=scoring.price_threshold,
            change_window=scoring.price_change_window,
            min_points=scoring.min_price_points,
        ),
        DemandScorer(window_size=scoring.window_size, threshold=scoring.demand_threshold),
    ]
