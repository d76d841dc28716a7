"""
Notification channels and message formatters.

Channels follow an observer-style interface: each one receives a
channel-independent NotificationPayload plus its recipients and returns a
NotificationResult. The built-in channels are simulated: they format the
message, validate recipients and log the delivery.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from src.core.exceptions import DeliveryError

from .schema import NotificationPayload, NotificationResult

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
SMS_MAX_LENGTH = 1600

SEVERITY_COLORS = {
    "critical": "danger",
    "high": "warning",
    "medium": "good",
    "low": "#439FE0",
}


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

def format_email_subject(payload: NotificationPayload) -> str:
    prefix = "[ESCALATED] " if payload.escalation else ""
    return f"{prefix}[{payload.severity.value.upper()}] Medicine Shortage Alert"


def format_email_body(payload: NotificationPayload) -> str:
    lines = [
        f"Alert ID: {payload.alert_id}",
        f"Severity: {payload.severity.value.upper()}",
        f"Time: {payload.timestamp.isoformat()}",
        "",
        "Anomaly Details:",
        f"- Type: {payload.anomaly_type}",
        f"- Medicine: {payload.medicine}",
        f"- Location: {payload.location}",
        f"- Confidence: {payload.confidence * 100:.1f}%",
        f"- Message: {payload.message}",
    ]
    if payload.anomaly_count > 1:
        lines.append(f"- Anomalies in batch: {payload.anomaly_count}")
    lines += [
        "",
        "Additional Details:",
        json.dumps(payload.details, indent=2, default=str),
    ]
    return "\n".join(lines)


def format_sms_message(payload: NotificationPayload) -> str:
    return (
        f"[{payload.severity.value.upper()}] {payload.medicine} {payload.anomaly_type} "
        f"in {payload.location}. Confidence: {payload.confidence * 100:.0f}%. "
        f"Alert ID: {payload.alert_id}"
    )


def severity_color(severity: str) -> str:
    return SEVERITY_COLORS.get(severity, "good")


def format_slack_message(payload: NotificationPayload) -> Dict[str, Any]:
    title = "Medicine Shortage Alert"
    if payload.escalation:
        title = f"ESCALATED: {title}"
    return {
        "text": f"[{payload.severity.value.upper()}] {title}",
        "attachments": [
            {
                "color": severity_color(payload.severity.value),
                "fields": [
                    {"title": "Medicine", "value": payload.medicine, "short": True},
                    {"title": "Location", "value": payload.location, "short": True},
                    {
                        "title": "Confidence",
                        "value": f"{payload.confidence * 100:.1f}%",
                        "short": True,
                    },
                    {"title": "Alert ID", "value": payload.alert_id, "short": True},
                ],
                "footer": "MedWatch Anomaly Detection",
                "ts": int(payload.timestamp.timestamp()),
            }
        ],
    }


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

class NotificationChannel(ABC):
    """Abstract notification channel."""

    name: str = "channel"

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    @abstractmethod
    async def send(
        self, payload: NotificationPayload, recipients: Sequence[str]
    ) -> NotificationResult:
        """Deliver a notification to recipients."""
        pass


class EmailChannel(NotificationChannel):
    """Email notification channel (simulated SMTP)."""

    name = "email"

    def __init__(self, smtp_server: str = "localhost", smtp_port: int = 587, enabled: bool = True):
        super().__init__(enabled)
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port

    async def send(
        self, payload: NotificationPayload, recipients: Sequence[str]
    ) -> NotificationResult:
        if not recipients:
            raise DeliveryError(self.name, "no recipients configured")

        subject = format_email_subject(payload)
        body = format_email_body(payload)
        logger.info(f"EMAIL ALERT to {', '.join(recipients)}: {subject}")
        return NotificationResult(
            channel=self.name,
            success=True,
            recipients=list(recipients),
            sent_at=datetime.now(timezone.utc),
            details={"subject": subject, "body": body},
        )


class SmsChannel(NotificationChannel):
    """
    SMS notification channel (simulated gateway).

    Each recipient must be an E.164-style number; the message may not exceed
    1600 characters. Succeeds when at least one recipient is reached.
    """

    name = "sms"

    def __init__(self, from_number: Optional[str] = None, enabled: bool = True):
        super().__init__(enabled)
        self.from_number = from_number

    async def send(
        self, payload: NotificationPayload, recipients: Sequence[str]
    ) -> NotificationResult:
        message = format_sms_message(payload)
        results: List[Dict[str, Any]] = []

        for number in recipients:
            cleaned = re.sub(r"\s", "", number)
            if not PHONE_PATTERN.match(cleaned):
                error = f"Invalid phone number format: {number}. Please include country code"
            elif len(message) > SMS_MAX_LENGTH:
                error = f"Message too long. Maximum {SMS_MAX_LENGTH} characters allowed."
            else:
                error = None

            if error:
                logger.error(f"Failed to send SMS to {number}: {error}")
                results.append({"phone_number": number, "success": False, "error": error})
            else:
                logger.info(f"SMS ALERT to {cleaned}: {message[:50]}...")
                results.append({"phone_number": number, "success": True})

        success = any(r["success"] for r in results)
        return NotificationResult(
            channel=self.name,
            success=success,
            recipients=list(recipients),
            error=None if success else "No SMS recipient reached",
            sent_at=datetime.now(timezone.utc) if success else None,
            details={"message": message, "results": results},
        )


class SlackChannel(NotificationChannel):
    """Slack notification channel (simulated webhook post)."""

    name = "slack"

    def __init__(self, webhook_url: Optional[str] = None, default_channel: str = "#alerts", enabled: bool = True):
        super().__init__(enabled)
        self.webhook_url = webhook_url
        self.default_channel = default_channel

    async def send(
        self, payload: NotificationPayload, recipients: Sequence[str]
    ) -> NotificationResult:
        targets = list(recipients) or [self.default_channel]
        message = format_slack_message(payload)
        logger.info(f"SLACK ALERT to {', '.join(targets)}: {message['text']}")
        return NotificationResult(
            channel=self.name,
            success=True,
            recipients=targets,
            sent_at=datetime.now(timezone.utc),
            details={"message": message},
        )


class WebhookChannel(NotificationChannel):
    """Webhook notification channel (simulated HTTP POST of the payload)."""

    name = "webhook"

    def __init__(self, endpoints: Optional[Sequence[str]] = None, enabled: bool = True):
        super().__init__(enabled)
        self.endpoints = list(endpoints or [])

    async def send(
        self, payload: NotificationPayload, recipients: Sequence[str]
    ) -> NotificationResult:
        targets = list(recipients) or self.endpoints
        if not targets:
            raise DeliveryError(self.name, "no endpoints configured")

        logger.info(f"WEBHOOK ALERT to {', '.join(targets)}: {payload.alert_id}")
        return NotificationResult(
            channel=self.name,
            success=True,
            recipients=targets,
            sent_at=datetime.now(timezone.utc),
            details={"payload": payload.model_dump(mode="json")},
        )


def default_channels(webhook_endpoints: Optional[Sequence[str]] = None) -> Dict[str, NotificationChannel]:
    """
    The four built-in channels keyed by name.

    The webhook channel is disabled unless endpoints are given (the backend
    reads them from WEBHOOK_ENDPOINTS); escalations routed to it are then
    skipped with a warning.
    """
    channels: List[NotificationChannel] = [
        EmailChannel(),
        SmsChannel(),
        SlackChannel(),
        WebhookChannel(endpoints=webhook_endpoints, enabled=bool(webhook_endpoints)),
    ]
    return {c.name: c for c in channels}
