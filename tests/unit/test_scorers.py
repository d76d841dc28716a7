"""
Unit tests for the individual scoring models.
"""

import pytest

from src.anomaly.schema import AnomalySeverity
from src.anomaly.scorers import (
    DemandScorer,
    IsolationScorer,
    PriceScorer,
    TimeSeriesScorer,
    default_scorers,
)
from src.core.config import ScoringConfig


class TestTimeSeriesScorer:
    """Z-score of current stock against trailing history."""

    def test_stock_far_from_history(self, make_point):
        point = make_point(stock_history=[100, 102, 98, 101, 99, 100, 100], current_stock=150)

        result = TimeSeriesScorer().score(point)

        assert result.is_anomaly
        assert result.confidence == 1.0
        assert result.severity == AnomalySeverity.CRITICAL
        assert result.details["mean"] == pytest.approx(100.0)
        assert result.details["z_score"] > 2.5

    def test_stable_stock_not_anomalous(self, make_point):
        result = TimeSeriesScorer().score(make_point())

        assert not result.is_anomaly

    def test_flat_history_not_anomalous(self, make_point):
        point = make_point(stock_history=[100] * 7, current_stock=400)

        assert not TimeSeriesScorer().score(point).is_anomaly

    def test_insufficient_history(self, make_point):
        result = TimeSeriesScorer().score(make_point(stock_history=[1, 2]))

        assert not result.is_anomaly
        assert result.reason == "Insufficient data"


class TestIsolationScorer:
    """Seeded outlier score."""

    def test_score_is_deterministic(self, make_point):
        point = make_point()
        scorer = IsolationScorer()

        first = scorer.score(point)
        second = scorer.score(point)

        assert first == second
        assert scorer.isolation_score(point.id, scorer.extract_features(point)) == first.confidence

    def test_default_threshold_never_reached(self, make_point):
        point = make_point(
            current_stock=0,
            current_price=90.0,
            current_demand=900,
            days_since_restock=60,
            supplier_reliability=0.0,
        )

        result = IsolationScorer().score(point)

        assert not result.is_anomaly
        assert result.confidence <= 0.5

    def test_lower_threshold_enables_votes(self, make_point):
        result = IsolationScorer(threshold=0.0).score(make_point())

        assert result.is_anomaly
        assert result.anomaly_type == "Isolation Forest Anomaly"
        assert set(result.details["features"]) == {
            "stock_ratio",
            "price_ratio",
            "demand_ratio",
            "days_since_restock",
            "seasonal_factor",
            "location_risk",
            "supplier_reliability",
        }

    def test_seed_changes_score(self, make_point):
        point = make_point()
        features = IsolationScorer().extract_features(point)

        assert IsolationScorer(seed=1).isolation_score(point.id, features) != IsolationScorer(
            seed=2
        ).isolation_score(point.id, features)


class TestPriceScorer:
    """Price volatility and market deviation."""

    def test_price_far_from_market(self, make_point):
        result = PriceScorer().score(make_point(current_price=20.0))

        assert result.is_anomaly
        assert result.confidence == 1.0
        assert result.details["market_deviation"] == pytest.approx(1.0)

    def test_volatile_history(self, make_point):
        result = PriceScorer().score(make_point(price_history=[10, 13, 10, 13, 10]))

        assert result.is_anomaly
        assert result.details["avg_volatility"] == pytest.approx((0.3 + 3 / 13) / 2)

    def test_stable_price_not_anomalous(self, make_point):
        assert not PriceScorer().score(make_point()).is_anomaly

    def test_insufficient_price_data(self, make_point):
        result = PriceScorer().score(make_point(price_history=[10, 10]))

        assert result.reason == "Insufficient price data"


class TestDemandScorer:
    """Demand against the seasonally adjusted trailing mean."""

    def test_demand_spike(self, make_point):
        result = DemandScorer().score(make_point(current_demand=100))

        assert result.is_anomaly
        assert result.details["expected_demand"] == pytest.approx(50.0)
        assert result.confidence == 1.0

    def test_seasonal_adjustment_explains_spike(self, make_point):
        factors = [1.0] * 12
        factors[2] = 2.0  # March
        point = make_point(current_demand=100, seasonal_factors=factors)

        assert not DemandScorer().score(point).is_anomaly

    def test_missing_current_demand(self, make_point):
        result = DemandScorer().score(make_point(current_demand=None))

        assert result.reason == "No current demand"


def test_default_scorers_follow_config():
    scorers = default_scorers(ScoringConfig(zscore_threshold=3.0, isolation_seed=7))

    assert [s.model_id for s in scorers] == [
        "time-series-anomaly",
        "isolation-forest",
        "price-anomaly",
        "demand-forecast",
    ]
    assert scorers[0].parameters == {"window_size": 7, "threshold": 3.0}
    assert scorers[1].parameters["seed"] == 7
