"""
Unit tests for the rule engine registry, evaluation and statistics.
"""

import time

import pytest

from src.core.exceptions import InvalidRuleError
from src.rules import Rule, RuleEngine, RuleStats


def _low_stock_rule(**overrides) -> dict:
    rule = {
        "id": "low-stock",
        "name": "Low Stock",
        "category": "shortage",
        "severity": "high",
        "condition": "current_stock <= critical_threshold",
        "action": {
            "message": "{medicine_name} low at {location}",
            "details": {"source": "test"},
        },
    }
    rule.update(overrides)
    return rule


class TestRegistration:
    """Test adding, removing and toggling rules."""

    def test_new_rule_has_empty_stats(self):
        engine = RuleEngine()
        engine.add_rule(_low_stock_rule())

        stats = engine.get_rule_stats()["low-stock"]

        assert stats["executions"] == 0
        assert stats["matches"] == 0
        assert stats["success_rate"] == 0.0
        assert stats["last_executed"] is None

    def test_mapping_with_optional_fields(self):
        engine = RuleEngine()

        rule = engine.add_rule(_low_stock_rule(enabled=False, description="d"))

        assert isinstance(rule, Rule)
        assert rule.enabled is False

    @pytest.mark.parametrize("missing", ["id", "name", "condition", "action"])
    def test_missing_required_field(self, missing):
        engine = RuleEngine()
        rule = _low_stock_rule()
        rule[missing] = None

        with pytest.raises(InvalidRuleError):
            engine.add_rule(rule)

    def test_invalid_definitions_rejected(self):
        engine = RuleEngine()

        with pytest.raises(InvalidRuleError):
            engine.add_rule(_low_stock_rule(severity="urgent"))
        with pytest.raises(InvalidRuleError):
            engine.add_rule(_low_stock_rule(action="not-an-action"))
        with pytest.raises(InvalidRuleError):
            engine.add_rule(_low_stock_rule(condition="current_stock <="))
        with pytest.raises(InvalidRuleError):
            engine.add_rule(_low_stock_rule(priority=1))

        assert len(engine) == 0

    def test_duplicate_id_rejected(self):
        engine = RuleEngine()
        engine.add_rule(_low_stock_rule())

        with pytest.raises(InvalidRuleError):
            engine.add_rule(_low_stock_rule(name="Other"))

    def test_unknown_ids_return_false(self):
        engine = RuleEngine()

        assert engine.enable_rule("nope") is False
        assert engine.disable_rule("nope") is False
        assert engine.remove_rule("nope") is False

    def test_remove_rule(self):
        engine = RuleEngine()
        engine.add_rule(_low_stock_rule())

        assert engine.remove_rule("low-stock") is True
        assert engine.get_rule("low-stock") is None
        assert "low-stock" not in engine.get_rule_stats()


class TestEvaluation:
    """Test rule evaluation and finding construction."""

    def test_template_action_rendered(self, make_point):
        engine = RuleEngine()
        engine.add_rule(_low_stock_rule())

        findings = engine.evaluate(make_point(current_stock=20, location="Delhi"))

        assert len(findings) == 1
        finding = findings[0]
        assert finding.message == "Paracetamol 500mg low at Delhi"
        assert finding.type == "shortage"
        assert finding.severity == "high"
        assert finding.rule_id == "low-stock"
        assert finding.details == {"source": "test"}

    def test_missing_template_value_rendered_as_na(self, make_point):
        engine = RuleEngine()
        engine.add_rule(_low_stock_rule(action={"message": "warehouse {warehouse}"}))

        findings = engine.evaluate(make_point(current_stock=20))

        assert findings[0].message == "warehouse N/A"

    def test_callable_action_and_defaults(self, make_point):
        engine = RuleEngine()
        engine.add_rule(
            Rule(
                id="any",
                name="Any Point",
                category="audit",
                severity="low",
                condition=lambda ctx: True,
                action=lambda point, ctx: {"details": {"id": point.id}},
            )
        )

        finding = engine.evaluate(make_point())[0]

        assert finding.type == "audit"
        assert finding.severity == "low"
        assert finding.message == "Rule Any Point triggered"
        assert finding.details == {"id": "dp-healthy-1"}

    def test_failing_rule_skipped_others_run(self, make_point):
        engine = RuleEngine()

        def boom(ctx):
            raise RuntimeError("boom")

        engine.add_rule(_low_stock_rule(id="broken", condition=boom))
        engine.add_rule(_low_stock_rule())

        findings = engine.evaluate(make_point(current_stock=20))

        assert [f.rule_id for f in findings] == ["low-stock"]
        stats = engine.get_rule_stats()
        assert stats["broken"]["executions"] == 1
        assert stats["broken"]["matches"] == 0

    def test_failing_rule_execution_time_recorded(self, make_point):
        engine = RuleEngine()

        def slow_failure(ctx):
            time.sleep(0.01)
            raise RuntimeError("boom")

        engine.add_rule(_low_stock_rule(id="broken", condition=slow_failure))
        engine.evaluate(make_point())

        assert engine.get_rule_stats()["broken"]["average_execution_time_ms"] >= 5.0

    def test_disabled_rule_skipped_and_stats_unchanged(self, make_point):
        engine = RuleEngine()
        engine.add_rule(_low_stock_rule())
        engine.disable_rule("low-stock")

        assert engine.evaluate(make_point(current_stock=20)) == []
        assert engine.get_rule_stats()["low-stock"]["executions"] == 0

        engine.enable_rule("low-stock")
        assert len(engine.evaluate(make_point(current_stock=20))) == 1

    def test_repeated_evaluation_statistics(self, make_point):
        engine = RuleEngine()
        engine.add_rule(_low_stock_rule())
        engine.add_rule(_low_stock_rule(id="never", condition="current_stock < 0"))
        point = make_point(current_stock=20)

        for _ in range(5):
            engine.evaluate(point)

        stats = engine.get_rule_stats()
        assert stats["low-stock"]["executions"] == 5
        assert stats["low-stock"]["matches"] == 5
        assert stats["low-stock"]["success_rate"] == 100.0
        assert stats["never"]["executions"] == 5
        assert stats["never"]["matches"] == 0
        assert stats["never"]["success_rate"] == 0.0
        assert stats["low-stock"]["last_executed"] is not None
        assert stats["low-stock"]["average_execution_time_ms"] >= 0.0

    def test_load_default_rules(self):
        engine = RuleEngine()

        assert engine.load_default_rules() == 14
        assert len(engine) == 14
        assert engine.get_rule("complete-stockout").severity == "critical"


class TestRuleStats:
    """Execution time averaging."""

    def test_average_uses_timed_samples_only(self):
        stats = RuleStats()
        stats.record_execution(None)
        stats.record_execution(None)

        stats.record_time(10.0)

        assert stats.executions == 2
        assert stats.average_execution_time_ms == pytest.approx(10.0)

    def test_running_average(self):
        stats = RuleStats()
        for elapsed in (2.0, 4.0, 9.0):
            stats.record_execution(None)
            stats.record_time(elapsed)

        assert stats.average_execution_time_ms == pytest.approx(5.0)
        assert stats.timed_executions == 3
