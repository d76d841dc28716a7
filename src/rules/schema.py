"""
Schema definitions for the rule engine.

A Rule pairs a condition with an action. Conditions may be Python callables,
expression strings, or structured condition trees; the engine compiles the
latter two into condition nodes at registration time. Actions produce the
details of a RuleFinding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from src.data.schema import DataPoint, EnrichedDataPoint

from .helpers import RuleHelpers, helpers

Severity = Literal["low", "medium", "high", "critical"]


@dataclass(frozen=True)
class EvaluationContext:
    """
    Everything a rule may look at while evaluating one data point.

    Fields:
    - point: enriched data point (feature groups available)
    - data: shortcut to point.data
    - helpers: range, percentage, date and moving-average helpers
    - now: reference time (the observation timestamp)
    """

    point: EnrichedDataPoint
    helpers: RuleHelpers = helpers

    @property
    def data(self) -> DataPoint:
        return self.point.data

    @property
    def now(self) -> datetime:
        return self.point.data.timestamp


ConditionFn = Callable[[EvaluationContext], Any]
ActionFn = Callable[[DataPoint, EvaluationContext], Mapping[str, Any]]


@dataclass
class Rule:
    """
    A detection rule.

    condition: callable(context) -> bool, expression string such as
        "current_stock <= critical_threshold and current_stock > 0",
        or a structured tree {"type": "comparison" | "logical" | "not", ...}
    action: callable(data_point, context) -> finding fields, or a static
        mapping of finding fields used as a template
    """

    id: str
    name: str
    category: str
    severity: Severity
    condition: Union[ConditionFn, str, Mapping[str, Any]]
    action: Union[ActionFn, Mapping[str, Any]]
    description: str = ""
    enabled: bool = True


@dataclass
class RuleStats:
    """Run-time statistics for one rule."""

    executions: int = 0
    matches: int = 0
    last_executed: Optional[datetime] = None
    average_execution_time_ms: float = 0.0
    timed_executions: int = 0

    def record_execution(self, executed_at: datetime) -> None:
        self.executions += 1
        self.last_executed = executed_at

    def record_time(self, elapsed_ms: float) -> None:
        self.timed_executions += 1
        n = self.timed_executions
        self.average_execution_time_ms = (
            self.average_execution_time_ms * (n - 1) + elapsed_ms
        ) / n

    @property
    def success_rate(self) -> float:
        if self.executions == 0:
            return 0.0
        return self.matches / self.executions * 100


class RuleFinding(BaseModel):
    """
    Anomaly details produced by a matching rule.

    Fields:
    - type: anomaly type (shortage, price, supply-chain, ...)
    - severity: categorical severity
    - message: one-line summary
    - details: rule-specific values
    - causes: likely causes
    - description: long-form explanation
    - rule_id / rule_name / rule_category: the rule that produced it
    """

    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    causes: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    rule_id: str
    rule_name: str
    rule_category: str
