"""
Anomaly module: scoring models, the scoring ensemble and the detection
orchestrator.

Implements deterministic scorers, weighted combination, severity banding
and the periodic detection cycle.
"""

from .baselines import TrailingStatsEstimator, mean_relative_change
from .detectors import RelativeDeviationDetector, ZScoreDetector
from .engine import AlertHandler, AnomalyStore, DataSource, DetectionEngine
from .ensemble import ModelStats, ScoringEnsemble
from .schema import (
	Anomaly,
	AnomalySeverity,
	AnomalyStatus,
	BaselineStats,
	DetectionMethod,
	Prediction,
	ScorerResult,
)
from .scorers import (
	DemandScorer,
	IsolationScorer,
	PriceScorer,
	ScoringModel,
	TimeSeriesScorer,
	default_scorers,
)
from .scoring import combine_confidences, overall_severity, severity_from_confidence

__all__ = [
	"DetectionEngine",
	"DataSource",
	"AnomalyStore",
	"AlertHandler",
	"ScoringEnsemble",
	"ModelStats",
	"Anomaly",
	"AnomalySeverity",
	"AnomalyStatus",
	"DetectionMethod",
	"BaselineStats",
	"Prediction",
	"ScorerResult",
	"ScoringModel",
	"TimeSeriesScorer",
	"IsolationScorer",
	"PriceScorer",
	"DemandScorer",
	"default_scorers",
	"TrailingStatsEstimator",
	"mean_relative_change",
	"ZScoreDetector",
	"RelativeDeviationDetector",
	"combine_confidences",
	"overall_severity",
	"severity_from_confidence",
]
