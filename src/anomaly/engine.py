"""
Detection orchestrator.

Pulls pending data points on a fixed schedule, derives features, evaluates
rules and the scoring ensemble, records every detection and forwards
high-confidence anomalies to the alert handler.

Lifecycle: stopped -> running -> stopped. start() and stop() are idempotent.
Stopping cancels the schedule only; a batch already in flight completes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

from src.core.config import DetectionConfig, config
from src.core.exceptions import EngineNotRunningError, NotFoundError
from src.data.features import FeatureProcessor
from src.data.schema import DataPoint, EnrichedDataPoint
from src.rules.engine import RuleEngine
from src.rules.schema import RuleFinding

from .ensemble import ScoringEnsemble
from .schema import Anomaly, AnomalyStatus, DetectionMethod, Prediction

logger = logging.getLogger(__name__)


class DataSource(Protocol):
    """Supplies data points awaiting analysis."""

    async def list_pending(self) -> List[Mapping[str, Any]]: ...


class AnomalyStore(Protocol):
    """Persists detected anomalies."""

    async def save(self, anomaly: Anomaly) -> None: ...

    async def update_status(self, anomaly_id: str, fields: Dict[str, Any]) -> None: ...

    async def list(self, limit: int = 100) -> List[Anomaly]: ...


AlertHandler = Callable[[Anomaly], Awaitable[Any]]


@dataclass
class DetectionEngine:
    """
    Periodic anomaly detection over pending data points.

    Notes:
    - Rule findings get a confidence by severity (critical 1.0, high 0.8,
      otherwise 0.6); ML detections carry the ensemble's combined confidence.
    - Anomalies with confidence >= alert_threshold go to alert_handler.
    - Errors within one cycle are logged and the schedule continues.
    """

    data_source: Optional[DataSource] = None
    store: Optional[AnomalyStore] = None
    alert_handler: Optional[AlertHandler] = None
    rule_engine: Optional[RuleEngine] = None
    ensemble: Optional[ScoringEnsemble] = None
    processor: Optional[FeatureProcessor] = None
    settings: DetectionConfig = field(default_factory=lambda: config.detection)

    def __post_init__(self) -> None:
        if self.rule_engine is None:
            self.rule_engine = RuleEngine()
            if config.rules.load_defaults:
                self.rule_engine.load_default_rules()
        if self.ensemble is None:
            self.ensemble = ScoringEnsemble()
        if self.processor is None:
            self.processor = FeatureProcessor(max_workers=self.settings.max_workers)

        self._running = False
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._batch_lock: Optional[asyncio.Lock] = None
        self._queue: List[Any] = []
        self._history: Dict[str, Anomaly] = {}
        self._last_run: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            logger.warning("Detection engine is already running")
            return
        self._running = True
        self._ticker = asyncio.create_task(self._run())
        logger.info(
            f"Detection engine started (interval {self.settings.processing_interval_seconds}s)"
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        if self._inflight is not None and not self._inflight.done():
            await self._inflight
        logger.info("Detection engine stopped")

    async def _run(self) -> None:
        while self._running:
            self._inflight = asyncio.ensure_future(self._tick())
            await asyncio.shield(self._inflight)
            await asyncio.sleep(self.settings.processing_interval_seconds)

    async def _tick(self) -> None:
        try:
            await self.process_batch()
        except Exception as e:
            logger.error(f"Detection cycle failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _lock(self) -> asyncio.Lock:
        if self._batch_lock is None:
            self._batch_lock = asyncio.Lock()
        return self._batch_lock

    async def submit(self, record: Any) -> bool:
        """
        Queue a data point for the next batch.

        Returns:
            False when the record is invalid, True when queued

        Raises:
            EngineNotRunningError: If the engine is stopped
        """
        if not self._running:
            raise EngineNotRunningError("Detection engine is not running")

        if not isinstance(record, DataPoint):
            result = self.processor.validate(record)
            if not result.is_valid:
                logger.warning(f"Rejected data point: {'; '.join(result.errors)}")
                return False
            for warning in result.warnings:
                logger.debug(warning)

        self._queue.append(record)
        if len(self._queue) >= self.settings.batch_size:
            await self.process_batch()
        return True

    async def process_batch(self) -> List[Anomaly]:
        """
        Run one detection cycle.

        Returns:
            Anomalies detected in this cycle (empty when nothing was pending)
        """
        async with self._lock():
            records: List[Any] = []
            if self.data_source is not None:
                records.extend(await self.data_source.list_pending())
            records.extend(self._queue)
            self._queue = []

            if not records:
                return []

            anomalies = await asyncio.to_thread(self._detect, records)
            for anomaly in anomalies:
                await self._record(anomaly)

            self._last_run = datetime.now(timezone.utc)
            logger.info(f"Processed {len(records)} data points, {len(anomalies)} anomalies")
            return anomalies

    def _detect(self, records: List[Any]) -> List[Anomaly]:
        points = self.processor.preprocess(records)
        workers = self.settings.max_workers
        if workers > 1 and len(points) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                per_point = list(pool.map(self._detect_point, points))
        else:
            per_point = [self._detect_point(p) for p in points]
        return [a for group in per_point for a in group]

    def _detect_point(self, point: EnrichedDataPoint) -> List[Anomaly]:
        anomalies: List[Anomaly] = []
        if self.settings.enable_rule_engine:
            for finding in self.rule_engine.evaluate(point):
                anomalies.append(self._from_finding(point, finding))
        if self.settings.enable_ml_models:
            prediction = self.ensemble.predict_one(point)
            if prediction.is_anomaly:
                anomalies.append(self._from_prediction(point, prediction))
        return anomalies

    def _from_finding(self, point: EnrichedDataPoint, finding: RuleFinding) -> Anomaly:
        confidence = config.rules.finding_confidence.get(
            finding.severity, config.rules.default_finding_confidence
        )
        return Anomaly(
            detection_method=DetectionMethod.RULE_BASED,
            rule_id=finding.rule_id,
            rule_name=finding.rule_name,
            anomaly_type=finding.type,
            severity=finding.severity,
            confidence=confidence,
            message=finding.message,
            description=finding.description,
            details=finding.details,
            causes=finding.causes,
            **self._source(point),
        )

    def _from_prediction(self, point: EnrichedDataPoint, prediction: Prediction) -> Anomaly:
        return Anomaly(
            detection_method=DetectionMethod.ML_BASED,
            model_ids=prediction.contributors,
            anomaly_type=prediction.anomaly_type or "ml",
            severity=prediction.severity,
            confidence=prediction.confidence,
            message=prediction.message or "ML ensemble anomaly",
            description=prediction.description,
            details=prediction.details,
            causes=prediction.causes,
            **self._source(point),
        )

    def _source(self, point: EnrichedDataPoint) -> Dict[str, Any]:
        data = point.data
        return {
            "data_point_id": data.id,
            "medicine_name": data.medicine_name,
            "location": data.location,
            "data_point": data.model_dump(mode="json"),
            "detected_at": datetime.now(timezone.utc),
        }

    async def _record(self, anomaly: Anomaly) -> None:
        self._history[anomaly.id] = anomaly
        logger.info(
            f"Anomaly detected: {anomaly.anomaly_type} ({anomaly.severity.value}, "
            f"confidence {anomaly.confidence:.2f}) for {anomaly.medicine_name} at {anomaly.location}"
        )

        if self.store is not None:
            try:
                await self.store.save(anomaly)
            except Exception as e:
                logger.error(f"Failed to save anomaly {anomaly.id}: {e}")

        if self.alert_handler is not None and anomaly.confidence >= self.settings.alert_threshold:
            try:
                await self.alert_handler(anomaly)
            except Exception as e:
                logger.error(f"Alert handler failed for anomaly {anomaly.id}: {e}")

    # ------------------------------------------------------------------
    # Review and reporting
    # ------------------------------------------------------------------

    async def update_anomaly_status(
        self, anomaly_id: str, status: Any, reviewed_by: Optional[str] = None
    ) -> Anomaly:
        """
        Move an anomaly through its review lifecycle.

        Raises:
            NotFoundError: If the anomaly id is unknown
            ValueError: If status is not a valid AnomalyStatus
        """
        anomaly = self._history.get(anomaly_id)
        if anomaly is None:
            raise NotFoundError(f"Anomaly not found: {anomaly_id}")

        anomaly.status = AnomalyStatus(status)
        anomaly.reviewed_by = reviewed_by
        anomaly.reviewed_at = datetime.now(timezone.utc)

        if self.store is not None:
            await self.store.update_status(
                anomaly_id,
                {
                    "status": anomaly.status,
                    "reviewed_by": anomaly.reviewed_by,
                    "reviewed_at": anomaly.reviewed_at,
                },
            )
        logger.info(f"Anomaly {anomaly_id} marked {anomaly.status.value} by {reviewed_by}")
        return anomaly

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        return self._history.get(anomaly_id)

    def get_recent_anomalies(self, limit: int = 50) -> List[Anomaly]:
        """Most recent anomalies, newest first."""
        ordered = sorted(self._history.values(), key=lambda a: a.detected_at, reverse=True)
        return ordered[:limit]

    def get_statistics(self) -> Dict[str, Any]:
        anomalies = list(self._history.values())
        cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
        total = len(anomalies)
        return {
            "is_running": self._running,
            "last_run": self._last_run,
            "total_anomalies": total,
            "last_24h": sum(1 for a in anomalies if a.detected_at >= cutoff),
            "by_type": dict(Counter(a.anomaly_type for a in anomalies)),
            "by_method": dict(Counter(a.detection_method.value for a in anomalies)),
            "by_severity": dict(Counter(a.severity.value for a in anomalies)),
            "by_status": dict(Counter(a.status.value for a in anomalies)),
            "average_confidence": (
                sum(a.confidence for a in anomalies) / total if total else 0.0
            ),
            "queue_size": len(self._queue),
            "rules": len(self.rule_engine),
            "models": self.ensemble.model_ids,
        }
