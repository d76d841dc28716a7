"""
Configuration for alert routing.

Alert rules map a severity to the channels that are notified, whether the
alert is sent immediately or batched, and the escalation policy. Rules are
loaded once and treated as read-only.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

CHANNEL_NAMES = ("email", "sms", "slack", "webhook")


class EscalationPolicy(BaseModel):
    """
    Escalation settings for a severity.

    Notes:
    - timeout_minutes: time after a successful send before escalating
      unless the alert has been acknowledged.
    - escalate_to_channels: channels notified on escalation.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    timeout_minutes: float = Field(..., gt=0)
    escalate_to_channels: List[str] = Field(default_factory=list)


class AlertRule(BaseModel):
    """
    Routing policy for one severity.

    Fields:
    - channels: notified in order on every send
    - immediate: process as soon as the alert is created
    - batching_enabled / batching_interval_minutes: group queued alerts
    - escalation: optional escalation policy
    - recipients: per-channel recipient lists
    """

    model_config = ConfigDict(frozen=True)

    severity: str
    channels: List[str] = Field(..., min_length=1)
    immediate: bool = False
    batching_enabled: bool = False
    batching_interval_minutes: Optional[float] = Field(default=None, gt=0)
    escalation: Optional[EscalationPolicy] = None
    recipients: Dict[str, List[str]] = Field(default_factory=dict)


class AlertConfig(BaseModel):
    """
    Alert manager configuration.

    Notes:
    - max_attempts: total delivery attempts for a failed alert.
    - retry_base_delay_seconds: retry n waits base x n seconds.
    - queue_debounce_seconds: delay before a queued batch is processed.
    - send_timeout_seconds: per-channel send timeout (None disables).
    """

    max_attempts: int = Field(3, ge=1)
    retry_base_delay_seconds: float = Field(5.0, ge=0.0)
    queue_debounce_seconds: float = Field(1.0, ge=0.0)
    send_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    rules: Dict[str, AlertRule] = Field(default_factory=lambda: default_alert_rules())


def default_alert_rules() -> Dict[str, AlertRule]:
    """Built-in routing: critical and high immediate, medium and low batched."""
    return {
        "critical": AlertRule(
            severity="critical",
            channels=["email", "sms", "slack"],
            immediate=True,
            escalation=EscalationPolicy(
                timeout_minutes=15, escalate_to_channels=["sms", "webhook"]
            ),
            recipients={
                "email": ["admin@medwatch.com", "alerts@medwatch.com"],
                "sms": ["+1234567890"],
                "slack": ["@channel"],
            },
        ),
        "high": AlertRule(
            severity="high",
            channels=["email", "slack"],
            immediate=True,
            escalation=EscalationPolicy(timeout_minutes=30, escalate_to_channels=["sms"]),
            recipients={
                "email": ["alerts@medwatch.com"],
                "slack": ["@here"],
            },
        ),
        "medium": AlertRule(
            severity="medium",
            channels=["email"],
            batching_enabled=True,
            batching_interval_minutes=15,
            recipients={"email": ["alerts@medwatch.com"]},
        ),
        "low": AlertRule(
            severity="low",
            channels=["email"],
            batching_enabled=True,
            batching_interval_minutes=60,
            recipients={"email": ["alerts@medwatch.com"]},
        ),
    }
