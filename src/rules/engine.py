"""
Rule engine: evaluates registered rules against enriched data points.

Every enabled rule is evaluated for every data point (no short-circuit).
A failing rule is logged and skipped; the remaining rules still run.
Statistics updates are serialized so evaluation may run on worker threads.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from src.core.exceptions import InvalidRuleError, RuleEvaluationError
from src.data.normalizers import normalize_key
from src.data.schema import EnrichedDataPoint

from .conditions import compile_condition
from .price import price_rules
from .schema import EvaluationContext, Rule, RuleFinding, RuleStats
from .shortage import shortage_rules

logger = logging.getLogger(__name__)

SEVERITIES = ("low", "medium", "high", "critical")

_RULE_FIELDS = {f.name for f in fields(Rule)}


class _TemplateValues(dict):
    def __missing__(self, key: str) -> str:
        return "N/A"


def _render(template: Any, values: Mapping[str, Any]) -> Any:
    if isinstance(template, str):
        return template.format_map(_TemplateValues(values))
    return template


@dataclass
class RuleEngine:
    """
    Registry and evaluator of detection rules.

    Notes:
    - Rule ids are unique; re-registering an id is rejected.
    - Expression and structured conditions are compiled once, at registration.
    - Disabled rules are skipped entirely, their statistics stay unchanged.
    """

    def __post_init__(self) -> None:
        self._rules: Dict[str, Rule] = {}
        self._conditions: Dict[str, Callable[[EvaluationContext], Any]] = {}
        self._stats: Dict[str, RuleStats] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._rules)

    def add_rule(self, rule: Union[Rule, Mapping[str, Any]]) -> Rule:
        """
        Register a rule.

        Args:
            rule: Rule instance or mapping of Rule fields (camelCase accepted)

        Raises:
            InvalidRuleError: If required parts are missing, the id is taken,
                or the condition cannot be compiled
        """
        if isinstance(rule, Mapping):
            rule = self._rule_from_mapping(rule)

        for attr in ("id", "name", "condition", "action"):
            if not getattr(rule, attr, None):
                raise InvalidRuleError(f"Rule is missing required field: {attr}")
        if rule.severity not in SEVERITIES:
            raise InvalidRuleError(f"Rule {rule.id} has invalid severity: {rule.severity}")
        if not callable(rule.action) and not isinstance(rule.action, Mapping):
            raise InvalidRuleError(f"Rule {rule.id} action must be callable or a mapping")

        condition = compile_condition(rule.condition)

        with self._lock:
            if rule.id in self._rules:
                raise InvalidRuleError(f"Rule already registered: {rule.id}")
            self._rules[rule.id] = rule
            self._conditions[rule.id] = condition
            self._stats[rule.id] = RuleStats()

        logger.debug(f"Registered rule {rule.id} ({rule.category}/{rule.severity})")
        return rule

    def _rule_from_mapping(self, data: Mapping[str, Any]) -> Rule:
        kwargs = {normalize_key(k): v for k, v in data.items()}
        unknown = set(kwargs) - _RULE_FIELDS
        if unknown:
            raise InvalidRuleError(f"Unknown rule fields: {sorted(unknown)}")
        try:
            return Rule(**kwargs)
        except TypeError as e:
            raise InvalidRuleError(f"Invalid rule definition: {e}") from e

    def load_default_rules(self) -> int:
        """
        Register the built-in shortage and price rule packs.

        Returns:
            Number of rules registered
        """
        count = 0
        for rule in shortage_rules() + price_rules():
            self.add_rule(rule)
            count += 1

        logger.info(f"Loaded {count} default rules")
        return count

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def list_rules(self) -> List[Rule]:
        return list(self._rules.values())

    def evaluate(self, point: EnrichedDataPoint) -> List[RuleFinding]:
        """
        Evaluate every enabled rule against a data point.

        Returns:
            Findings of all matching rules, in registration order
        """
        findings: List[RuleFinding] = []
        context = EvaluationContext(point=point)

        for rule_id, rule in list(self._rules.items()):
            if not rule.enabled:
                continue
            stats = self._stats.get(rule_id)
            condition = self._conditions.get(rule_id)
            if stats is None or condition is None:
                # Removed concurrently
                continue

            with self._lock:
                stats.record_execution(datetime.now(timezone.utc))

            start = time.perf_counter()
            try:
                finding = self._evaluate_rule(rule, condition, context)
            except Exception as e:
                err = RuleEvaluationError(rule_id, e)
                logger.error(f"{err} (data point {point.id})")
                with self._lock:
                    stats.record_time((time.perf_counter() - start) * 1000)
                continue

            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                if finding is not None:
                    stats.matches += 1
                stats.record_time(elapsed_ms)

            if finding is not None:
                findings.append(finding)

        return findings

    def _evaluate_rule(
        self,
        rule: Rule,
        condition: Callable[[EvaluationContext], Any],
        context: EvaluationContext,
    ) -> Optional[RuleFinding]:
        if not condition(context):
            return None

        if callable(rule.action):
            result = rule.action(context.data, context)
        else:
            values = context.data.model_dump()
            result = {k: _render(v, values) for k, v in rule.action.items()}

        if not result:
            return None
        return self._build_finding(rule, result)

    def _build_finding(self, rule: Rule, result: Mapping[str, Any]) -> RuleFinding:
        causes = result.get("causes") or []
        return RuleFinding(
            type=result.get("type") or rule.category,
            severity=result.get("severity") or rule.severity,
            message=result.get("message") or f"Rule {rule.name} triggered",
            details=dict(result.get("details") or {}),
            causes=list(causes),
            description=result.get("description") or rule.description or None,
            rule_id=rule.id,
            rule_name=rule.name,
            rule_category=rule.category,
        )

    def enable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, True)

    def disable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, False)

    def _set_enabled(self, rule_id: str, enabled: bool) -> bool:
        rule = self._rules.get(rule_id)
        if rule is None:
            return False
        rule.enabled = enabled
        logger.info(f"Rule {rule_id} {'enabled' if enabled else 'disabled'}")
        return True

    def remove_rule(self, rule_id: str) -> bool:
        with self._lock:
            if rule_id not in self._rules:
                return False
            del self._rules[rule_id]
            self._conditions.pop(rule_id, None)
            self._stats.pop(rule_id, None)
        logger.info(f"Rule {rule_id} removed")
        return True

    def get_rule_stats(self) -> Dict[str, Dict[str, Any]]:
        """
        Per-rule statistics keyed by rule id.

        success_rate is matches / executions x 100 (0 before the first run).
        """
        stats: Dict[str, Dict[str, Any]] = {}
        with self._lock:
            for rule_id, rule in self._rules.items():
                s = self._stats[rule_id]
                stats[rule_id] = {
                    "name": rule.name,
                    "category": rule.category,
                    "severity": rule.severity,
                    "enabled": rule.enabled,
                    "executions": s.executions,
                    "matches": s.matches,
                    "last_executed": s.last_executed,
                    "average_execution_time_ms": s.average_execution_time_ms,
                    "success_rate": s.success_rate,
                }
        return stats
