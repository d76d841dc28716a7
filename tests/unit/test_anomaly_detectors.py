"""
Unit tests for anomaly detectors.
"""

from src.anomaly.detectors import RelativeDeviationDetector, ZScoreDetector
from src.anomaly.schema import BaselineStats


def test_zscore_detector_computes_value():
    detector = ZScoreDetector()
    baseline = BaselineStats(mean=10.0, std=2.0, count=10)

    z = detector.compute(6.0, baseline)
    assert abs(z - 2.0) < 1e-6


def test_zscore_detector_suppresses_small_std():
    detector = ZScoreDetector(min_std=1.0)
    baseline = BaselineStats(mean=10.0, std=0.5, count=10)

    assert detector.compute(12.0, baseline) == 0.0


def test_relative_deviation_detector():
    detector = RelativeDeviationDetector()

    assert abs(detector.compute(observed=15.0, expected=10.0) - 0.5) < 1e-6
    assert abs(detector.compute(observed=5.0, expected=10.0) - 0.5) < 1e-6
    assert detector.compute(observed=10.0, expected=None) is None
    assert detector.compute(observed=10.0, expected=0.0) is None
    assert detector.compute(observed=None, expected=10.0) is None
