"""
Schema definitions for anomaly scoring and detection.

All anomaly outputs are explainable: each one carries the rule or models that
produced it, the values that triggered it and its likely causes.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class AnomalySeverity(str, Enum):
    """Severity levels for anomalies."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AnomalyStatus(str, Enum):
    """Review lifecycle: detected -> investigating -> resolved | false-positive."""

    DETECTED = "detected"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false-positive"


class DetectionMethod(str, Enum):
    RULE_BASED = "rule-based"
    ML_BASED = "ml-based"


class BaselineStats(BaseModel):
    """
    Baseline statistics for a trailing window of a series.

    Fields:
    - mean: central tendency
    - std: population standard deviation
    - count: number of points used
    """

    mean: float
    std: float
    count: int


class ScorerResult(BaseModel):
    """
    Output of one scoring model for one data point.

    confidence is reported even when is_anomaly is False; the ensemble uses
    it for model statistics but only anomalous results vote.
    """

    is_anomaly: bool
    confidence: float = Field(ge=0.0, le=1.0)
    severity: Optional[AnomalySeverity] = None
    message: Optional[str] = None
    description: Optional[str] = None
    anomaly_type: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    causes: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


class Prediction(BaseModel):
    """
    Combined ensemble output for one data point.

    Fields:
    - contributors: model ids whose anomalous results were combined
    - details: per-model details keyed by model id
    """

    data_point_id: str
    is_anomaly: bool
    confidence: float = Field(ge=0.0, le=1.0)
    severity: AnomalySeverity = AnomalySeverity.LOW
    message: Optional[str] = None
    description: Optional[str] = None
    anomaly_type: Optional[str] = None
    causes: List[str] = Field(default_factory=list)
    details: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    contributors: List[str] = Field(default_factory=list)


class Anomaly(BaseModel):
    """
    A detected anomaly, as stored and forwarded for alerting.

    Fields:
    - detection_method: rule-based or ml-based
    - rule_id / model_ids: what produced it
    - data_point_id / medicine_name / location: source reference
    - data_point: snapshot of the source record
    - status, reviewed_by, reviewed_at: review lifecycle
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    detection_method: DetectionMethod
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    model_ids: List[str] = Field(default_factory=list)
    anomaly_type: str
    severity: AnomalySeverity
    confidence: float = Field(ge=0.0, le=1.0)
    message: str
    description: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    causes: List[str] = Field(default_factory=list)
    data_point_id: str
    medicine_name: Optional[str] = None
    location: Optional[str] = None
    data_point: Dict[str, Any] = Field(default_factory=dict)
    status: AnomalyStatus = AnomalyStatus.DETECTED
    detected_at: datetime
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
