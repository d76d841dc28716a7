"""
Built-in pricing rules: spikes, coordinated pricing, regional disparity,
black-market pricing, volatility and below-cost pricing.
"""

from __future__ import annotations

from collections import Counter
from math import sqrt
from typing import Any, Dict, List, Optional, Tuple

from src.data.schema import DataPoint

from .schema import EvaluationContext, Rule


def _identity(point: DataPoint) -> Dict[str, Any]:
    return {"medicine_name": point.medicine_name, "medicine_id": point.medicine_id}


# -- sudden-price-spike ------------------------------------------------------

def _price_increase(ctx: EvaluationContext) -> Optional[float]:
    data = ctx.data
    if data.current_price is None or not data.price_history or len(data.price_history) < 2:
        return None
    return ctx.helpers.percentage_change(data.current_price, data.price_history[-2])


def _spike_condition(ctx: EvaluationContext) -> bool:
    increase = _price_increase(ctx)
    return increase is not None and increase > 50


def _spike_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    increase = _price_increase(ctx)
    return {
        "type": "price",
        "severity": "high",
        "message": f"PRICE SPIKE: {point.medicine_name} price increased by {increase:.1f}%",
        "details": {
            "current_price": point.current_price,
            "previous_price": point.price_history[-2],
            "price_increase": increase,
            "location": point.location,
            **_identity(point),
        },
        "causes": ["sudden price increase", "market speculation"],
        "description": (
            f"The price of {point.medicine_name} at {point.location} spiked by "
            f"{increase:.1f}%, which may indicate market instability or speculation."
        ),
    }


# -- price-manipulation-pattern ----------------------------------------------

def _suspicious_price(point: DataPoint) -> Tuple[Optional[float], int]:
    """Most common regional price when it is well above market average."""
    counts = Counter(p.price for p in point.regional_prices or [])
    if not counts:
        return None, 0
    max_count = max(counts.values())
    market = point.average_market_price or 0.0
    for price, count in counts.items():
        if count == max_count and price > market * 1.3:
            return price, count
    return None, max_count


def _manipulation_condition(ctx: EvaluationContext) -> bool:
    if not ctx.data.regional_prices or len(ctx.data.regional_prices) < 3:
        return False
    price, count = _suspicious_price(ctx.data)
    return price is not None and count >= 3


def _manipulation_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    price, _ = _suspicious_price(point)
    affected = [p for p in point.regional_prices if p.price == price]
    return {
        "type": "price",
        "severity": "critical",
        "message": f"CRITICAL: Price manipulation suspected for {point.medicine_name} in {point.region}",
        "details": {
            "suspicious_price": price,
            "pharmacies_with_same_price": len(affected),
            "affected_pharmacies": [p.name for p in affected],
            "average_market_price": point.average_market_price,
            "region": point.region,
            **_identity(point),
        },
        "causes": ["price collusion", "market manipulation"],
        "description": (
            f"{len(affected)} pharmacies in the {point.region} region charge an identical, "
            f"unusually high price ({price:g}) for {point.medicine_name}, suggesting "
            f"coordinated pricing."
        ),
    }


# -- cross-regional-price-disparity ------------------------------------------

def _price_range(point: DataPoint) -> Tuple[float, float]:
    prices = list(point.cross_regional_prices.values())
    return min(prices), max(prices)


def _disparity_condition(ctx: EvaluationContext) -> bool:
    prices = ctx.data.cross_regional_prices
    if not prices or len(prices) < 2:
        return False
    low, high = _price_range(ctx.data)
    return low > 0 and (high - low) / low > 0.4


def _disparity_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    low, high = _price_range(point)
    disparity = round((high - low) / low * 100)
    return {
        "type": "price",
        "severity": "medium",
        "message": (
            f"PRICE DISPARITY: {point.medicine_name} shows {disparity}% price "
            f"difference across regions"
        ),
        "details": {
            "price_range": {"min": low, "max": high},
            "regional_prices": dict(point.cross_regional_prices),
            "disparity_percentage": disparity,
            **_identity(point),
        },
        "causes": ["regional supply imbalance", "transportation costs"],
        "description": (
            f"Prices of {point.medicine_name} vary by {disparity}% across regions "
            f"({low:g} to {high:g})."
        ),
    }


# -- black-market-pricing ----------------------------------------------------

def _black_market_condition(ctx: EvaluationContext) -> bool:
    data = ctx.data
    if not data.maximum_retail_price or data.current_price is None:
        return False
    return data.current_price > data.maximum_retail_price * 2 and data.current_stock == 0


def _black_market_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    multiple = round(point.current_price / point.maximum_retail_price, 2)
    return {
        "type": "price",
        "severity": "critical",
        "message": f"CRITICAL: Black market pricing suspected for {point.medicine_name}",
        "details": {
            "current_price": point.current_price,
            "maximum_retail_price": point.maximum_retail_price,
            "price_multiple": multiple,
            "stock_status": point.current_stock,
            "location": point.location,
            **_identity(point),
        },
        "causes": ["illegal trade", "extreme scarcity"],
        "description": (
            f"{point.medicine_name} at {point.location} is out of stock while priced at "
            f"{point.current_price:g}, {multiple:g}x the MRP of {point.maximum_retail_price:g}."
        ),
    }


# -- price-volatility-alert --------------------------------------------------

def _volatility(point: DataPoint) -> Tuple[float, float, float]:
    prices = point.price_history[-7:]
    mean = sum(prices) / len(prices)
    std = sqrt(sum((p - mean) ** 2 for p in prices) / len(prices))
    cv = std / mean if mean > 0 else 0.0
    return mean, std, cv


def _volatility_condition(ctx: EvaluationContext) -> bool:
    history = ctx.data.price_history
    if not history or len(history) < 7:
        return False
    return _volatility(ctx.data)[2] > 0.2


def _volatility_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    mean, std, cv = _volatility(point)
    prices = point.price_history[-7:]
    return {
        "type": "price",
        "severity": "medium",
        "message": f"VOLATILITY ALERT: High price volatility for {point.medicine_name}",
        "details": {
            "average_price": round(mean, 2),
            "standard_deviation": round(std, 2),
            "coefficient_of_variation": round(cv * 100, 2),
            "price_range": {"min": min(prices), "max": max(prices)},
            **_identity(point),
        },
        "causes": ["market instability", "supply-demand fluctuations"],
        "description": (
            f"The price of {point.medicine_name} has a coefficient of variation of "
            f"{cv * 100:.2f}% over the last {len(prices)} observations."
        ),
    }


# -- below-cost-pricing ------------------------------------------------------

def _below_cost_condition(ctx: EvaluationContext) -> bool:
    data = ctx.data
    if not data.manufacturing_cost or data.current_price is None:
        return False
    return data.current_price < data.manufacturing_cost * 0.8


def _below_cost_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    return {
        "type": "price",
        "severity": "medium",
        "message": f"BELOW COST: {point.medicine_name} priced below manufacturing cost",
        "details": {
            "current_price": point.current_price,
            "manufacturing_cost": point.manufacturing_cost,
            "loss_per_unit": point.manufacturing_cost - point.current_price,
            "possible_cause": "Dumping or clearance sale",
            "location": point.location,
            **_identity(point),
        },
        "causes": ["overstock", "clearance sale"],
        "description": (
            f"{point.medicine_name} at {point.location} sells at {point.current_price:g}, "
            f"well below its manufacturing cost of {point.manufacturing_cost:g}."
        ),
    }


def price_rules() -> List[Rule]:
    """Fresh instances of the pricing rule pack."""
    return [
        Rule(
            id="sudden-price-spike",
            name="Sudden Price Spike",
            category="price",
            severity="high",
            description="Detects sudden significant price increases",
            condition=_spike_condition,
            action=_spike_action,
        ),
        Rule(
            id="price-manipulation-pattern",
            name="Price Manipulation Pattern",
            category="price",
            severity="critical",
            description="Detects potential price manipulation through coordinated pricing",
            condition=_manipulation_condition,
            action=_manipulation_action,
        ),
        Rule(
            id="cross-regional-price-disparity",
            name="Cross-Regional Price Disparity",
            category="price",
            severity="medium",
            description="Detects significant price differences across regions",
            condition=_disparity_condition,
            action=_disparity_action,
        ),
        Rule(
            id="black-market-pricing",
            name="Black Market Pricing",
            category="price",
            severity="critical",
            description="Detects pricing that suggests black market activity",
            condition=_black_market_condition,
            action=_black_market_action,
        ),
        Rule(
            id="price-volatility-alert",
            name="Price Volatility Alert",
            category="price",
            severity="medium",
            description="Detects high price volatility over time",
            condition=_volatility_condition,
            action=_volatility_action,
        ),
        Rule(
            id="below-cost-pricing",
            name="Below Cost Pricing",
            category="price",
            severity="medium",
            description="Detects pricing below manufacturing cost (potential dumping)",
            condition=_below_cost_condition,
            action=_below_cost_action,
        ),
    ]
