"""
Unit tests for the built-in shortage and pricing rules.

Each test builds a healthy observation, changes only what one rule looks at,
and checks that exactly the expected rules fire.
"""

import pytest
from datetime import datetime, timedelta, timezone

from src.rules import RuleEngine

OBSERVED_AT = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine() -> RuleEngine:
    engine = RuleEngine()
    engine.load_default_rules()
    return engine


def _findings(engine, point):
    return {f.rule_id: f for f in engine.evaluate(point)}


def test_healthy_point_triggers_nothing(engine, make_point):
    assert engine.evaluate(make_point()) == []


class TestShortageRules:
    """Stock, supply, demand, expiry and consumption rules."""

    def test_critical_stock_depletion(self, engine, make_point):
        findings = _findings(engine, make_point(current_stock=30, daily_consumption=7))

        assert set(findings) == {"critical-stock-depletion"}
        finding = findings["critical-stock-depletion"]
        assert finding.severity == "critical"
        assert finding.type == "shortage"
        assert finding.details["estimated_days_remaining"] == 4
        assert finding.details["critical_threshold"] == 100

    @pytest.mark.parametrize("stock,consumption,expected", [(1, 1, 1), (99, 10, 9), (100, 33, 3)])
    def test_days_remaining_is_floor(self, engine, make_point, stock, consumption, expected):
        findings = _findings(engine, make_point(current_stock=stock, daily_consumption=consumption))

        assert findings["critical-stock-depletion"].details["estimated_days_remaining"] == expected

    def test_days_remaining_without_consumption_uses_one_per_day(self, engine, make_point):
        findings = _findings(engine, make_point(current_stock=30))

        assert findings["critical-stock-depletion"].details["estimated_days_remaining"] == 30

    @pytest.mark.parametrize(
        "overrides",
        [
            {},
            {"critical_threshold": None},
            {"medicine_name": "Insulin", "location": "Delhi", "stock_history": None},
        ],
    )
    def test_zero_stock_is_critical_stockout(self, engine, make_point, overrides):
        findings = _findings(engine, make_point(current_stock=0, **overrides))

        assert "critical-stock-depletion" not in findings
        stockout = findings["complete-stockout"]
        assert stockout.severity == "critical"
        assert stockout.type == "shortage"
        assert stockout.details["expected_restock_date"] == "N/A"

    def test_rapid_stock_decline(self, engine, make_point):
        point = make_point(stock_history=[500, 480, 440, 400], current_stock=400, average_daily_consumption=10)

        findings = _findings(engine, point)

        assert set(findings) == {"rapid-stock-decline"}
        assert findings["rapid-stock-decline"].details["current_decline_rate"] == 40
        assert findings["rapid-stock-decline"].details["normal_consumption_rate"] == 10

    def test_regional_shortage_pattern(self, engine, make_point):
        regional = [
            {"location": "Pune", "current_stock": 5, "critical_threshold": 10},
            {"location": "Nashik", "current_stock": 10, "critical_threshold": 10},
            {"location": "Nagpur", "current_stock": 0, "critical_threshold": 20},
            {"location": "Thane", "current_stock": 80, "critical_threshold": 20},
        ]

        findings = _findings(engine, make_point(region="West", regional_data=regional))

        assert set(findings) == {"regional-shortage-pattern"}
        details = findings["regional-shortage-pattern"].details
        assert details["affected_locations_count"] == 3
        assert details["total_locations"] == 4
        assert details["shortage_percentage"] == 75

    def test_two_short_locations_not_a_pattern(self, engine, make_point):
        regional = [
            {"location": "Pune", "current_stock": 5, "critical_threshold": 10},
            {"location": "Nashik", "current_stock": 5, "critical_threshold": 10},
            {"location": "Thane", "current_stock": 80, "critical_threshold": 20},
        ]

        assert engine.evaluate(make_point(region="West", regional_data=regional)) == []

    def test_supply_chain_disruption(self, engine, make_point):
        point = make_point(
            current_stock=150,
            supplier="MedSupply",
            last_delivery_date=OBSERVED_AT - timedelta(days=12),
            average_delivery_interval=7,
        )

        findings = _findings(engine, point)

        assert set(findings) == {"supply-chain-disruption"}
        finding = findings["supply-chain-disruption"]
        assert finding.type == "supply-chain"
        assert finding.details["days_since_last_delivery"] == pytest.approx(12.0)

    def test_overdue_delivery_with_healthy_stock_ignored(self, engine, make_point):
        point = make_point(last_delivery_date=OBSERVED_AT - timedelta(days=30))

        assert engine.evaluate(point) == []

    def test_seasonal_demand_spike(self, engine, make_point):
        point = make_point(seasonal_data={3: {"average_demand": 40}}, current_demand=70)

        findings = _findings(engine, point)

        assert set(findings) == {"seasonal-demand-spike"}
        details = findings["seasonal-demand-spike"].details
        assert details["increase_percentage"] == 75
        assert details["current_month"] == "March"

    def test_seasonal_data_for_other_month_ignored(self, engine, make_point):
        point = make_point(seasonal_data={7: {"average_demand": 10}}, current_demand=70)

        assert engine.evaluate(point) == []

    def test_expiry_date_approaching(self, engine, make_point):
        findings = _findings(engine, make_point(expiry_date=OBSERVED_AT + timedelta(days=10)))

        assert set(findings) == {"expiry-date-approaching"}
        assert findings["expiry-date-approaching"].type == "quality"
        assert findings["expiry-date-approaching"].details["days_to_expiry"] == pytest.approx(10.0)

    def test_expired_stock_not_reported_as_approaching(self, engine, make_point):
        point = make_point(expiry_date=OBSERVED_AT - timedelta(days=10))

        assert engine.evaluate(point) == []

    def test_unusual_consumption_pattern(self, engine, make_point):
        point = make_point(daily_consumption_history=[2, 2, 2, 2, 50, 50, 50])

        findings = _findings(engine, point)

        assert set(findings) == {"unusual-consumption-pattern"}
        assert findings["unusual-consumption-pattern"].causes == ["hoarding", "bulk buying"]


class TestPriceRules:
    """Pricing rules."""

    def test_sudden_price_spike(self, engine, make_point):
        findings = _findings(engine, make_point(current_price=16.0, average_market_price=16.0))

        assert set(findings) == {"sudden-price-spike"}
        assert findings["sudden-price-spike"].details["price_increase"] == pytest.approx(60.0)

    def test_price_manipulation_pattern(self, engine, make_point):
        prices = [
            {"name": "A", "price": 15},
            {"name": "B", "price": 15},
            {"name": "C", "price": 15},
            {"name": "D", "price": 11},
        ]

        findings = _findings(engine, make_point(region="North", regional_prices=prices))

        assert set(findings) == {"price-manipulation-pattern"}
        finding = findings["price-manipulation-pattern"]
        assert finding.severity == "critical"
        assert finding.details["affected_pharmacies"] == ["A", "B", "C"]

    def test_identical_market_prices_not_manipulation(self, engine, make_point):
        prices = [{"name": n, "price": 10} for n in "ABCD"]

        assert engine.evaluate(make_point(region="North", regional_prices=prices)) == []

    def test_cross_regional_price_disparity(self, engine, make_point):
        findings = _findings(engine, make_point(cross_regional_prices={"north": 10.0, "south": 15.0}))

        assert set(findings) == {"cross-regional-price-disparity"}
        assert findings["cross-regional-price-disparity"].details["disparity_percentage"] == 50

    def test_black_market_pricing(self, engine, make_point):
        point = make_point(current_stock=0, current_price=25.0, maximum_retail_price=10.0, price_history=None)

        findings = _findings(engine, point)

        assert set(findings) == {"complete-stockout", "black-market-pricing"}
        assert findings["black-market-pricing"].details["price_multiple"] == 2.5

    def test_black_market_requires_mrp(self, engine, make_point):
        point = make_point(current_stock=0, current_price=25.0, price_history=None)

        assert set(_findings(engine, point)) == {"complete-stockout"}

    def test_price_volatility_alert(self, engine, make_point):
        point = make_point(price_history=[10, 14, 8, 15, 9, 14, 10])

        findings = _findings(engine, point)

        assert set(findings) == {"price-volatility-alert"}
        assert findings["price-volatility-alert"].details["price_range"] == {"min": 8, "max": 15}

    def test_below_cost_pricing(self, engine, make_point):
        point = make_point(manufacturing_cost=20.0, current_price=10.0)

        findings = _findings(engine, point)

        assert set(findings) == {"below-cost-pricing"}
        assert findings["below-cost-pricing"].details["loss_per_unit"] == 10.0

    def test_below_cost_requires_price(self, engine, make_point):
        point = make_point(manufacturing_cost=20.0, current_price=None)

        assert engine.evaluate(point) == []
