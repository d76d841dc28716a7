"""
Alert manager.

Turns anomalies into alerts, routes them through notification channels
according to the severity's AlertRule, and drives retries, escalation,
batching and acknowledgement.

Scheduling:
- Retry and escalation timers are asyncio tasks keyed by alert id, so an
  acknowledgement can cancel a pending escalation outright.
- Each alert has its own asyncio.Lock; processing, escalation and
  acknowledgement of one alert never interleave.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from src.anomaly.schema import Anomaly, AnomalySeverity
from src.anomaly.scoring import severity_from_confidence
from src.core.exceptions import ConfigurationError, NotFoundError

from .channels import NotificationChannel, default_channels
from .config import AlertConfig, AlertRule
from .schema import Alert, AlertStatus, NotificationPayload, NotificationResult

logger = logging.getLogger(__name__)


def determine_severity(anomaly: Anomaly) -> AnomalySeverity:
    """
    Severity used for routing.

    An explicit anomaly severity wins; otherwise the confidence band
    (>= 0.9 critical, >= 0.7 high, >= 0.5 medium, else low) is used.
    """
    explicit = getattr(anomaly, "severity", None)
    if explicit:
        return AnomalySeverity(explicit)
    return severity_from_confidence(anomaly.confidence)


class AlertManager:
    """
    Owns alert history and delivery.

    Notes:
    - A severity without an AlertRule is logged and no alert is stored.
    - Immediate rules are processed inside send_alert; others are queued and
      processed after a short debounce, grouped by (severity, interval).
    - A failed alert is retried after retry_base_delay x attempts until
      max_attempts is reached.
    """

    def __init__(
        self,
        settings: Optional[AlertConfig] = None,
        channels: Optional[Mapping[str, NotificationChannel]] = None,
    ) -> None:
        self.settings = settings or AlertConfig()
        self.channels: Dict[str, NotificationChannel] = dict(
            channels if channels is not None else default_channels()
        )
        self._history: Dict[str, Alert] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._batch_members: Dict[str, List[str]] = {}
        self._queue: List[Alert] = []
        self._queue_task: Optional[asyncio.Task] = None
        self._retry_tasks: Dict[str, asyncio.Task] = {}
        self._escalation_tasks: Dict[str, asyncio.Task] = {}

    def _lock_for(self, alert_id: str) -> asyncio.Lock:
        lock = self._locks.get(alert_id)
        if lock is None:
            lock = self._locks[alert_id] = asyncio.Lock()
        return lock

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Creating and processing alerts
    # ------------------------------------------------------------------

    def rule_for(self, severity: AnomalySeverity) -> AlertRule:
        rule = self.settings.rules.get(severity.value)
        if rule is None:
            raise ConfigurationError(f"No alert rule for severity {severity.value}")
        return rule

    async def send_alert(self, anomaly: Anomaly) -> Optional[str]:
        """
        Create an alert for an anomaly.

        Returns:
            The alert id, or None when no rule covers the severity
        """
        severity = determine_severity(anomaly)
        try:
            rule = self.rule_for(severity)
        except ConfigurationError as e:
            logger.warning(f"{e}; anomaly {anomaly.id} not alerted")
            return None

        alert = Alert(
            anomaly=anomaly,
            severity=severity,
            rule=rule,
            max_attempts=self.settings.max_attempts,
            timestamp=self._now(),
        )
        self._history[alert.id] = alert
        logger.info(f"Alert {alert.id} created ({severity.value}) for anomaly {anomaly.id}")

        if rule.immediate:
            await self.process_alert(alert)
        else:
            self._queue.append(alert)
            self._schedule_queue_processing()
        return alert.id

    async def process_alert(self, alert: Alert) -> Alert:
        """
        Deliver an alert through every channel of its rule.

        The alert is sent when at least one channel succeeds, failed otherwise.
        """
        async with self._lock_for(alert.id):
            if alert.status == AlertStatus.ACKNOWLEDGED:
                return alert

            alert.status = AlertStatus.PROCESSING
            alert.attempts += 1

            results = await self._fan_out(
                alert.rule.channels, alert.build_payload(), alert.rule
            )
            alert.notifications = results
            success = any(r.success for r in results)
            alert.status = AlertStatus.SENT if success else AlertStatus.FAILED
            alert.error = None if success else "; ".join(
                f"{r.channel}: {r.error}" for r in results if r.error
            ) or "no channel available"
            alert.processed_at = self._now()

        self._mirror_to_members(alert)

        if alert.status == AlertStatus.FAILED:
            logger.warning(
                f"Alert {alert.id} failed (attempt {alert.attempts}/{alert.max_attempts}): {alert.error}"
            )
            if alert.attempts < alert.max_attempts:
                self._schedule_retry(alert)
        else:
            logger.info(f"Alert {alert.id} sent via {', '.join(r.channel for r in results if r.success)}")
            escalation = alert.rule.escalation
            if escalation is not None and escalation.enabled:
                self._schedule_escalation(alert)

        return alert

    async def _fan_out(
        self,
        channel_names: Sequence[str],
        payload: NotificationPayload,
        rule: AlertRule,
    ) -> List[NotificationResult]:
        sends = []
        for name in channel_names:
            channel = self.channels.get(name)
            if channel is None or not channel.enabled:
                logger.warning(f"Notification channel not available: {name}")
                continue
            sends.append(self._send(channel, payload, rule.recipients.get(name, [])))

        if not sends:
            return []
        return list(await asyncio.gather(*sends))

    async def _send(
        self,
        channel: NotificationChannel,
        payload: NotificationPayload,
        recipients: Sequence[str],
    ) -> NotificationResult:
        try:
            send = channel.send(payload, recipients)
            if self.settings.send_timeout_seconds is not None:
                return await asyncio.wait_for(send, self.settings.send_timeout_seconds)
            return await send
        except asyncio.TimeoutError:
            error = f"timed out after {self.settings.send_timeout_seconds}s"
        except Exception as e:
            error = str(e)

        logger.error(f"Failed to send notification via {channel.name}: {error}")
        return NotificationResult(
            channel=channel.name,
            success=False,
            recipients=list(recipients),
            error=error,
        )

    # ------------------------------------------------------------------
    # Retries and escalation
    # ------------------------------------------------------------------

    def _schedule_retry(self, alert: Alert) -> None:
        delay = self.settings.retry_base_delay_seconds * alert.attempts
        self._replace_task(
            self._retry_tasks, alert.id, self._retry_later(alert, delay)
        )

    async def _retry_later(self, alert: Alert, delay: float) -> None:
        await asyncio.sleep(delay)
        self._retry_tasks.pop(alert.id, None)
        logger.info(f"Retrying alert {alert.id} (attempt {alert.attempts + 1})")
        await self.process_alert(alert)

    def _schedule_escalation(self, alert: Alert) -> None:
        delay = alert.rule.escalation.timeout_minutes * 60
        self._replace_task(
            self._escalation_tasks, alert.id, self._escalate_later(alert, delay)
        )

    async def _escalate_later(self, alert: Alert, delay: float) -> None:
        await asyncio.sleep(delay)
        self._escalation_tasks.pop(alert.id, None)
        await self.escalate(alert)

    def _replace_task(self, tasks: Dict[str, asyncio.Task], alert_id: str, coro) -> None:
        previous = tasks.pop(alert_id, None)
        if previous is not None and not previous.done():
            previous.cancel()
        tasks[alert_id] = asyncio.create_task(coro)

    async def escalate(self, alert: Alert) -> Alert:
        """
        Notify the escalation channels of an unacknowledged alert.

        Channel failures are logged; the alert is marked escalated regardless.
        """
        escalation = alert.rule.escalation
        async with self._lock_for(alert.id):
            if alert.status == AlertStatus.ACKNOWLEDGED or escalation is None:
                return alert

            logger.warning(f"Escalating alert {alert.id} to {', '.join(escalation.escalate_to_channels)}")
            results = await self._fan_out(
                escalation.escalate_to_channels,
                alert.build_payload(escalation=True),
                alert.rule,
            )
            for result in results:
                if not result.success:
                    logger.error(f"Escalation via {result.channel} failed for alert {alert.id}: {result.error}")

            alert.escalation_notifications = results
            alert.status = AlertStatus.ESCALATED
            alert.escalated_at = self._now()

        self._mirror_to_members(alert)
        return alert

    async def acknowledge_alert(self, alert_id: str, acknowledged_by: str) -> Alert:
        """
        Mark an alert acknowledged and cancel its pending escalation.

        Raises:
            NotFoundError: If the alert id is unknown
        """
        alert = self._history.get(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert not found: {alert_id}")

        async with self._lock_for(alert_id):
            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_by = acknowledged_by
            alert.acknowledged_at = self._now()

        for tasks in (self._escalation_tasks, self._retry_tasks):
            task = tasks.pop(alert_id, None)
            if task is not None and not task.done():
                task.cancel()

        self._mirror_to_members(alert)
        logger.info(f"Alert {alert_id} acknowledged by {acknowledged_by}")
        return alert

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    def _schedule_queue_processing(self) -> None:
        if self._queue_task is None or self._queue_task.done():
            self._queue_task = asyncio.create_task(self._process_queue_later())

    async def _process_queue_later(self) -> None:
        # Alerts queued while a cycle is delivering are picked up by the next one
        while True:
            await asyncio.sleep(self.settings.queue_debounce_seconds)
            await self.process_queue()
            if not self._queue:
                break

    async def process_queue(self) -> None:
        """
        Process every queued alert.

        Batchable alerts are grouped by (severity, batching interval); a
        group of one is processed on its own, larger groups become one
        batch alert whose outcome is mirrored onto its members.
        """
        alerts, self._queue = self._queue, []
        if not alerts:
            return

        groups: Dict[Tuple[str, Optional[float]], List[Alert]] = {}
        for alert in alerts:
            if alert.rule.batching_enabled:
                key = (alert.severity.value, alert.rule.batching_interval_minutes)
                groups.setdefault(key, []).append(alert)
            else:
                await self.process_alert(alert)

        for (severity, _), members in groups.items():
            if len(members) == 1:
                await self.process_alert(members[0])
                continue

            batch = Alert(
                anomalies=[m.anomaly for m in members],
                severity=members[0].severity,
                rule=members[0].rule,
                max_attempts=self.settings.max_attempts,
                timestamp=self._now(),
                is_batch=True,
            )
            self._history[batch.id] = batch
            self._batch_members[batch.id] = [m.id for m in members]
            for member in members:
                member.batch_id = batch.id

            logger.info(f"Batch alert {batch.id}: {len(members)} {severity} alerts")
            await self.process_alert(batch)

    def _mirror_to_members(self, batch: Alert) -> None:
        for member_id in self._batch_members.get(batch.id, []):
            member = self._history.get(member_id)
            if member is None or member.status == AlertStatus.ACKNOWLEDGED:
                continue
            member.status = batch.status
            member.attempts = batch.attempts
            member.notifications = batch.notifications
            member.processed_at = batch.processed_at
            member.escalated_at = batch.escalated_at
            member.acknowledged_by = batch.acknowledged_by
            member.acknowledged_at = batch.acknowledged_at
            member.error = batch.error

    # ------------------------------------------------------------------
    # Reporting and shutdown
    # ------------------------------------------------------------------

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self._history.get(alert_id)

    def get_recent_alerts(self, limit: int = 50) -> List[Alert]:
        ordered = sorted(self._history.values(), key=lambda a: a.timestamp, reverse=True)
        return ordered[:limit]

    def get_alert_stats(self) -> Dict[str, Any]:
        """
        Alert totals and response times.

        average_response_time_seconds is the mean of processed_at - timestamp
        over processed alerts; 0 when none has been processed yet.
        """
        alerts = list(self._history.values())
        cutoff = self._now() - timedelta(hours=24)
        response_times = [
            (a.processed_at - a.timestamp).total_seconds()
            for a in alerts
            if a.processed_at is not None
        ]
        return {
            "total_alerts": len(alerts),
            "last_24h": sum(1 for a in alerts if a.timestamp >= cutoff),
            "by_severity": dict(Counter(a.severity.value for a in alerts)),
            "by_status": dict(Counter(a.status.value for a in alerts)),
            "average_response_time_seconds": (
                sum(response_times) / len(response_times) if response_times else 0.0
            ),
            "queue_size": len(self._queue),
            "pending_escalations": len(self._escalation_tasks),
            "pending_retries": len(self._retry_tasks),
        }

    async def shutdown(self) -> None:
        """Cancel pending retry, escalation and queue timers."""
        tasks = list(self._retry_tasks.values()) + list(self._escalation_tasks.values())
        if self._queue_task is not None:
            tasks.append(self._queue_task)
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._retry_tasks.clear()
        self._escalation_tasks.clear()
        self._queue_task = None
        logger.info("Alert manager shut down")
