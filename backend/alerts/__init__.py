"""
Alert routing and notification exports.
"""

from .channels import (
    EmailChannel,
    NotificationChannel,
    SlackChannel,
    SmsChannel,
    WebhookChannel,
    default_channels,
)
from .config import AlertConfig, AlertRule, EscalationPolicy, default_alert_rules
from .manager import AlertManager, determine_severity
from .schema import Alert, AlertStatus, NotificationPayload, NotificationResult

__all__ = [
    "AlertManager",
    "determine_severity",
    "AlertConfig",
    "AlertRule",
    "EscalationPolicy",
    "default_alert_rules",
    "Alert",
    "AlertStatus",
    "NotificationPayload",
    "NotificationResult",
    "NotificationChannel",
    "EmailChannel",
    "SmsChannel",
    "SlackChannel",
    "WebhookChannel",
    "default_channels",
]
