"""
Integration test for the full detection pipeline.

Tests end-to-end flow from a raw supply record to a routed alert.
"""

import pytest

from backend.alerts import AlertManager, AlertStatus
from backend.storage import InMemoryStore
from src.anomaly import DetectionEngine, DetectionMethod
from src.anomaly.schema import AnomalySeverity
from src.core.config import DetectionConfig


pytestmark = pytest.mark.integration


@pytest.fixture
def pipeline():
    store = InMemoryStore()
    alerts = AlertManager()
    engine = DetectionEngine(
        data_source=store,
        store=store,
        alert_handler=alerts.send_alert,
        settings=DetectionConfig(processing_interval_seconds=3600),
    )
    return store, alerts, engine


class TestFullPipeline:
    """Test end-to-end pipeline from raw records to alerts."""

    @pytest.mark.asyncio
    async def test_stockout_to_critical_alert(self, pipeline, insulin_record):
        store, alerts, engine = pipeline
        try:
            await store.add_pending(insulin_record)

            anomalies = await engine.process_batch()

            assert len(anomalies) == 1
            anomaly = anomalies[0]
            assert anomaly.severity == AnomalySeverity.CRITICAL
            assert anomaly.confidence >= 0.9
            assert anomaly.detection_method == DetectionMethod.RULE_BASED
            assert anomaly.data_point["medicine_name"] == "Insulin"

            recent = alerts.get_recent_alerts()
            assert len(recent) == 1
            alert = recent[0]
            assert alert.anomaly.id == anomaly.id
            assert alert.rule.channels == ["email", "sms", "slack"]
            assert alert.rule.immediate is True
            assert alert.status == AlertStatus.SENT
            assert alert.rule.escalation.timeout_minutes == 15
            assert alerts.get_alert_stats()["pending_escalations"] == 1
        finally:
            await alerts.shutdown()

    @pytest.mark.asyncio
    async def test_mixed_batch(self, pipeline, insulin_record, healthy_record):
        store, alerts, engine = pipeline
        try:
            await store.add_pending(healthy_record)
            await store.add_pending(insulin_record)
            await store.add_pending({"medicineName": "Insulin"})

            anomalies = await engine.process_batch()

            assert [a.data_point_id for a in anomalies] == ["dp-insulin-1"]
            assert await store.list() == anomalies
            assert store.pending_count == 0

            await engine.update_anomaly_status(anomalies[0].id, "investigating", reviewed_by="pharmacist")
            alert = alerts.get_recent_alerts()[0]
            await alerts.acknowledge_alert(alert.id, "pharmacist")

            assert engine.get_statistics()["by_status"] == {"investigating": 1}
            assert alerts.get_alert_stats()["by_status"] == {"acknowledged": 1}
        finally:
            await alerts.shutdown()

    @pytest.mark.asyncio
    async def test_engine_lifecycle_with_submissions(self, pipeline, insulin_record):
        store, alerts, engine = pipeline
        await engine.start()
        try:
            assert await engine.submit(insulin_record)
            anomalies = await engine.process_batch()
        finally:
            await engine.stop()
            await alerts.shutdown()

        assert len(anomalies) == 1
        assert alerts.get_alert_stats()["total_alerts"] == 1
