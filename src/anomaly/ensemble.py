"""
Scoring ensemble: runs every scorer on each data point and combines the
anomalous results into one Prediction.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from src.core.config import ScoringConfig, config
from src.core.exceptions import ScorerError
from src.data.schema import EnrichedDataPoint

from .schema import Prediction, ScorerResult
from .scorers import ScoringModel, default_scorers
from .scoring import combine_confidences, severity_from_confidence

logger = logging.getLogger(__name__)


@dataclass
class ModelStats:
    """Aggregate statistics for one scorer."""

    total_predictions: int = 0
    total_execution_time_ms: float = 0.0
    average_confidence: float = 0.0
    anomalies_detected: int = 0
    last_used: Optional[datetime] = None

    @property
    def average_execution_time_ms(self) -> float:
        if self.total_predictions == 0:
            return 0.0
        return self.total_execution_time_ms / self.total_predictions

    @property
    def detection_rate(self) -> float:
        if self.total_predictions == 0:
            return 0.0
        return self.anomalies_detected / self.total_predictions * 100

    def record(self, elapsed_ms: float, confidence: float, detection_confidence: float) -> None:
        self.total_predictions += 1
        n = self.total_predictions
        self.total_execution_time_ms += elapsed_ms
        self.average_confidence = (self.average_confidence * (n - 1) + confidence) / n
        self.last_used = datetime.now(timezone.utc)
        if confidence > detection_confidence:
            self.anomalies_detected += 1


@dataclass
class ScoringEnsemble:
    """
    Weighted ensemble of scoring models.

    Notes:
    - Only anomalous scorer results vote; their confidences are averaged
      with per-model weights (unknown models get default_weight).
    - A failing scorer is logged and excluded; the others still vote.
    - Statistics updates are serialized so points may be scored on threads.
    """

    scorers: Optional[Sequence[ScoringModel]] = None
    scoring: ScoringConfig = field(default_factory=lambda: config.scoring)

    def __post_init__(self) -> None:
        if self.scorers is None:
            self.scorers = default_scorers(self.scoring)
        self._stats: Dict[str, ModelStats] = {s.model_id: ModelStats() for s in self.scorers}
        self._lock = threading.Lock()

    @property
    def model_ids(self) -> List[str]:
        return [s.model_id for s in self.scorers]

    def predict(self, points: Iterable[EnrichedDataPoint]) -> List[Prediction]:
        return [self.predict_one(p) for p in points]

    def predict_one(self, point: EnrichedDataPoint) -> Prediction:
        results: Dict[str, ScorerResult] = {}

        for scorer in self.scorers:
            start = time.perf_counter()
            try:
                result = scorer.score(point)
            except Exception as e:
                err = ScorerError(scorer.model_id, e)
                logger.error(f"{err} (data point {point.id})")
                continue
            elapsed_ms = (time.perf_counter() - start) * 1000

            with self._lock:
                self._stats[scorer.model_id].record(
                    elapsed_ms, result.confidence, self.scoring.detection_confidence
                )

            if result.is_anomaly:
                results[scorer.model_id] = result

        return self._combine(point.id, results)

    def _combine(self, point_id: str, results: Dict[str, ScorerResult]) -> Prediction:
        if not results:
            return Prediction(data_point_id=point_id, is_anomaly=False, confidence=0.0)

        contributors = sorted(results)
        confidence = combine_confidences(
            ((m, results[m].confidence) for m in contributors),
            self.scoring.weights,
            self.scoring.default_weight,
        )

        causes: List[str] = []
        for model_id in contributors:
            for cause in results[model_id].causes:
                if cause not in causes:
                    causes.append(cause)

        return Prediction(
            data_point_id=point_id,
            is_anomaly=confidence > self.scoring.combined_threshold,
            confidence=confidence,
            severity=severity_from_confidence(confidence),
            message=" | ".join(results[m].message for m in contributors if results[m].message),
            description="\n\n".join(
                results[m].description for m in contributors if results[m].description
            ),
            anomaly_type=", ".join(
                results[m].anomaly_type or m for m in contributors
            ),
            causes=causes,
            details={m: results[m].details for m in contributors},
            contributors=contributors,
        )

    def get_model_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-model statistics keyed by model id."""
        stats: Dict[str, Dict[str, Any]] = {}
        with self._lock:
            for scorer in self.scorers:
                s = self._stats[scorer.model_id]
                stats[scorer.model_id] = {
                    "category": scorer.category,
                    "version": scorer.version,
                    "parameters": scorer.parameters,
                    "total_predictions": s.total_predictions,
                    "average_execution_time_ms": s.average_execution_time_ms,
                    "average_confidence": s.average_confidence,
                    "anomalies_detected": s.anomalies_detected,
                    "last_used": s.last_used,
                    "detection_rate": s.detection_rate,
                }
        return stats
