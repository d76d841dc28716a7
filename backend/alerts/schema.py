"""
Schema for alerts and notification results.

An Alert wraps one anomaly (or, for batch alerts, several) together with
its routing rule, delivery attempts and per-channel results.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.anomaly.schema import Anomaly, AnomalySeverity

from .config import AlertRule


class AlertStatus(str, Enum):
    """pending -> processing -> sent | failed -> escalated -> acknowledged"""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    ESCALATED = "escalated"
    ACKNOWLEDGED = "acknowledged"


class NotificationResult(BaseModel):
    """
    Outcome of one channel send.

    Fields:
    - channel: channel name
    - success: True when at least one recipient was reached
    - recipients: recipients attempted
    - error: failure description
    - details: channel-specific results (message, per-recipient outcomes)
    """

    channel: str
    success: bool
    recipients: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class NotificationPayload(BaseModel):
    """Channel-independent content of a notification."""

    alert_id: str
    severity: AnomalySeverity
    timestamp: datetime
    anomaly_type: str
    message: str
    confidence: float
    medicine: Optional[str] = None
    location: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    anomaly_count: int = 1
    escalation: bool = False


class Alert(BaseModel):
    """
    Alert record for one anomaly, or a batch of anomalies.

    Fields:
    - anomalies: members of a batch alert (empty for single alerts)
    - batch_id: set on members of a batch to the batch alert's id
    - notifications: results of the latest delivery attempt
    """

    id: str = Field(default_factory=lambda: f"alert_{uuid4().hex[:12]}")
    anomaly: Optional[Anomaly] = None
    anomalies: List[Anomaly] = Field(default_factory=list)
    severity: AnomalySeverity
    rule: AlertRule
    status: AlertStatus = AlertStatus.PENDING
    attempts: int = 0
    max_attempts: int = 3
    notifications: List[NotificationResult] = Field(default_factory=list)
    escalation_notifications: List[NotificationResult] = Field(default_factory=list)
    timestamp: datetime
    processed_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    batch_id: Optional[str] = None
    is_batch: bool = False
    error: Optional[str] = None

    def build_payload(self, escalation: bool = False) -> NotificationPayload:
        if self.is_batch:
            types = sorted({a.anomaly_type for a in self.anomalies})
            top = max(self.anomalies, key=lambda a: a.confidence)
            return NotificationPayload(
                alert_id=self.id,
                severity=self.severity,
                timestamp=self.timestamp,
                anomaly_type=", ".join(types),
                message=f"{len(self.anomalies)} {self.severity.value} anomalies detected",
                confidence=top.confidence,
                medicine=", ".join(sorted({a.medicine_name or "unknown" for a in self.anomalies})),
                location=", ".join(sorted({a.location or "unknown" for a in self.anomalies})),
                details={"anomaly_ids": [a.id for a in self.anomalies]},
                anomaly_count=len(self.anomalies),
                escalation=escalation,
            )

        anomaly = self.anomaly
        return NotificationPayload(
            alert_id=self.id,
            severity=self.severity,
            timestamp=self.timestamp,
            anomaly_type=anomaly.anomaly_type,
            message=anomaly.message or f"{anomaly.anomaly_type} anomaly detected",
            confidence=anomaly.confidence,
            medicine=anomaly.medicine_name,
            location=anomaly.location,
            details=anomaly.details,
            escalation=escalation,
        )
