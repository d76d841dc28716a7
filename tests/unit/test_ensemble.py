"""
Unit tests for severity banding and the scoring ensemble.
"""

import itertools

import pytest

from src.anomaly.ensemble import ScoringEnsemble
from src.anomaly.schema import AnomalySeverity, ScorerResult
from src.anomaly.scoring import combine_confidences, overall_severity, severity_from_confidence
from src.core.config import ScoringConfig


class _FixedScorer:
    """Scorer returning a canned result."""

    category = "test"
    version = "0.0.1"
    parameters = {}

    def __init__(self, model_id: str, confidence: float, is_anomaly: bool = True):
        self.model_id = model_id
        self.confidence = confidence
        self.is_anomaly = is_anomaly

    def score(self, point):
        return ScorerResult(
            is_anomaly=self.is_anomaly,
            confidence=self.confidence,
            message=f"{self.model_id} says so",
            anomaly_type=f"{self.model_id} anomaly",
            causes=["shared cause", f"{self.model_id} cause"],
            details={"value": self.confidence},
        )


class _BrokenScorer(_FixedScorer):
    def score(self, point):
        raise RuntimeError("model crashed")


WEIGHTS = ScoringConfig(weights={"a": 0.5, "b": 0.3, "c": 0.2})


class TestSeverityBanding:
    """Confidence to severity mapping."""

    @pytest.mark.parametrize(
        "confidence,expected",
        [
            (0.95, AnomalySeverity.CRITICAL),
            (0.9, AnomalySeverity.CRITICAL),
            (0.75, AnomalySeverity.HIGH),
            (0.7, AnomalySeverity.HIGH),
            (0.55, AnomalySeverity.MEDIUM),
            (0.5, AnomalySeverity.MEDIUM),
            (0.3, AnomalySeverity.LOW),
            (0.0, AnomalySeverity.LOW),
        ],
    )
    def test_bands(self, confidence, expected):
        assert severity_from_confidence(confidence) == expected

    def test_overall_severity(self):
        assert overall_severity(AnomalySeverity.LOW, AnomalySeverity.HIGH) == AnomalySeverity.HIGH
        assert overall_severity("medium", "critical") == AnomalySeverity.CRITICAL


class TestCombineConfidences:
    """Weighted average of model confidences."""

    def test_weighted_average(self):
        combined = combine_confidences([("a", 0.9), ("b", 0.6)], {"a": 0.7, "b": 0.3}, 0.1)

        assert combined == pytest.approx(0.81)

    def test_unknown_model_gets_default_weight(self):
        combined = combine_confidences([("a", 1.0), ("zz", 0.0)], {"a": 0.3}, 0.1)

        assert combined == pytest.approx(0.75)

    def test_no_contributors(self):
        assert combine_confidences([], {"a": 1.0}, 0.1) == 0.0


class TestScoringEnsemble:
    """Ensemble combination and statistics."""

    def test_healthy_point_not_anomalous(self, make_point):
        prediction = ScoringEnsemble().predict_one(make_point())

        assert not prediction.is_anomaly
        assert prediction.confidence == 0.0
        assert prediction.contributors == []

    def test_combination_is_order_independent(self, make_point):
        point = make_point()
        scorers = [_FixedScorer("a", 0.9), _FixedScorer("b", 0.6), _FixedScorer("c", 0.8)]

        results = set()
        for order in itertools.permutations(scorers):
            prediction = ScoringEnsemble(scorers=list(order), scoring=WEIGHTS).predict_one(point)
            results.add((prediction.confidence, prediction.message, tuple(prediction.contributors)))

        assert len(results) == 1

    def test_prediction_merges_contributors(self, make_point):
        ensemble = ScoringEnsemble(
            scorers=[_FixedScorer("b", 0.6), _FixedScorer("a", 0.9), _FixedScorer("c", 0.1, is_anomaly=False)],
            scoring=WEIGHTS,
        )

        prediction = ensemble.predict_one(make_point())

        assert prediction.is_anomaly
        assert prediction.confidence == pytest.approx((0.9 * 0.5 + 0.6 * 0.3) / 0.8)
        assert prediction.severity == AnomalySeverity.HIGH
        assert prediction.contributors == ["a", "b"]
        assert prediction.message == "a says so | b says so"
        assert prediction.anomaly_type == "a anomaly, b anomaly"
        assert prediction.causes == ["shared cause", "a cause", "b cause"]
        assert prediction.details == {"a": {"value": 0.9}, "b": {"value": 0.6}}

    def test_low_combined_confidence_not_anomalous(self, make_point):
        ensemble = ScoringEnsemble(scorers=[_FixedScorer("a", 0.4)], scoring=WEIGHTS)

        prediction = ensemble.predict_one(make_point())

        assert not prediction.is_anomaly
        assert prediction.confidence == pytest.approx(0.4)

    def test_failing_scorer_excluded(self, make_point):
        ensemble = ScoringEnsemble(
            scorers=[_BrokenScorer("a", 1.0), _FixedScorer("b", 0.8)],
            scoring=WEIGHTS,
        )

        prediction = ensemble.predict_one(make_point())

        assert prediction.is_anomaly
        assert prediction.contributors == ["b"]
        assert prediction.confidence == pytest.approx(0.8)
        stats = ensemble.get_model_stats()
        assert stats["a"]["total_predictions"] == 0
        assert stats["b"]["total_predictions"] == 1

    def test_default_models_vote_together(self, make_point):
        point = make_point(
            stock_history=[100, 102, 98, 101, 99, 100, 100],
            current_stock=150,
            current_demand=100,
        )

        prediction = ScoringEnsemble().predict_one(point)

        assert prediction.is_anomaly
        assert prediction.contributors == ["demand-forecast", "time-series-anomaly"]
        assert prediction.confidence == pytest.approx(1.0)
        assert prediction.severity == AnomalySeverity.CRITICAL

    def test_model_stats(self, make_point):
        ensemble = ScoringEnsemble(scorers=[_FixedScorer("a", 0.9), _FixedScorer("b", 0.2)], scoring=WEIGHTS)

        ensemble.predict([make_point(), make_point()])

        stats = ensemble.get_model_stats()
        assert stats["a"]["total_predictions"] == 2
        assert stats["a"]["anomalies_detected"] == 2
        assert stats["a"]["detection_rate"] == 100.0
        assert stats["a"]["average_confidence"] == pytest.approx(0.9)
        assert stats["b"]["anomalies_detected"] == 0
        assert stats["b"]["last_used"] is not None
        assert ensemble.model_ids == ["a", "b"]
