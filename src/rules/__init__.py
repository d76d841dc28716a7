"""
Rules module: rule-based anomaly detection.

Rules are registered with the RuleEngine and evaluated against enriched data
points. Conditions are callables, expression strings or structured trees;
built-in shortage and price rule packs can be loaded on startup.
"""

from .conditions import (
    Comparison,
    Logical,
    Not,
    compile_condition,
    parse_condition_tree,
    parse_expression,
    resolve_field,
)
from .engine import RuleEngine
from .helpers import RuleHelpers, helpers
from .price import price_rules
from .schema import EvaluationContext, Rule, RuleFinding, RuleStats
from .shortage import shortage_rules

__all__ = [
    "RuleEngine",
    "Rule",
    "RuleFinding",
    "RuleStats",
    "EvaluationContext",
    "RuleHelpers",
    "helpers",
    "Comparison",
    "Logical",
    "Not",
    "compile_condition",
    "parse_condition_tree",
    "parse_expression",
    "resolve_field",
    "shortage_rules",
    "price_rules",
]
