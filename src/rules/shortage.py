"""
Built-in shortage, supply-chain, demand, quality and consumption rules.

Conditions look only at the data point and its derived features, so a rule
fires identically whenever the same observation is replayed.
"""

from __future__ import annotations

import calendar
from typing import Any, Dict, List

from src.data.schema import DataPoint

from .schema import EvaluationContext, Rule


def _identity(point: DataPoint) -> Dict[str, Any]:
    return {"medicine_name": point.medicine_name, "medicine_id": point.medicine_id}


# -- critical-stock-depletion ------------------------------------------------

def _critical_stock_condition(ctx: EvaluationContext) -> bool:
    data = ctx.data
    return (
        data.critical_threshold is not None
        and 0 < data.current_stock <= data.critical_threshold
    )


def _critical_stock_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    days_remaining = int(point.current_stock // (point.daily_consumption or 1))
    return {
        "type": "shortage",
        "severity": "critical",
        "message": (
            f"CRITICAL: {point.medicine_name} stock at {point.location} is "
            f"{point.current_stock:g} (Threshold: {point.critical_threshold:g})"
        ),
        "details": {
            "current_stock": point.current_stock,
            "critical_threshold": point.critical_threshold,
            "location": point.location,
            "estimated_days_remaining": days_remaining,
            **_identity(point),
        },
        "causes": ["critically low stock"],
        "description": (
            f"Stock for {point.medicine_name} at {point.location} has dropped to "
            f"{point.current_stock:g} units, below the threshold of "
            f"{point.critical_threshold:g}. Estimated days remaining: {days_remaining}."
        ),
    }


# -- complete-stockout -------------------------------------------------------

def _stockout_condition(ctx: EvaluationContext) -> bool:
    return ctx.data.current_stock == 0


def _stockout_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    last_stock = point.last_stock_date or "N/A"
    restock = point.expected_restock_date or "N/A"
    return {
        "type": "shortage",
        "severity": "critical",
        "message": f"STOCKOUT: {point.medicine_name} is completely out of stock at {point.location}",
        "details": {
            "location": point.location,
            "last_stock_date": last_stock,
            "expected_restock_date": restock,
            **_identity(point),
        },
        "causes": ["zero stock"],
        "description": (
            f"{point.medicine_name} at {point.location} has reached zero stock. "
            f"Last known stock date: {last_stock}. Expected restock: {restock}."
        ),
    }


# -- rapid-stock-decline -----------------------------------------------------

DEFAULT_DAILY_CONSUMPTION = 10.0


def _decline_rate(point: DataPoint) -> float:
    recent = point.stock_history[-3:]
    return (recent[0] - recent[2]) / 2


def _rapid_decline_condition(ctx: EvaluationContext) -> bool:
    history = ctx.data.stock_history
    if not history or len(history) < 3:
        return False
    normal_rate = ctx.data.average_daily_consumption or DEFAULT_DAILY_CONSUMPTION
    return _decline_rate(ctx.data) > normal_rate * 2


def _rapid_decline_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    rate = _decline_rate(point)
    normal_rate = point.average_daily_consumption or DEFAULT_DAILY_CONSUMPTION
    projected = point.projected_stockout_date or "N/A"
    return {
        "type": "shortage",
        "severity": "high",
        "message": f"RAPID DECLINE: {point.medicine_name} stock is depleting quickly at {point.location}",
        "details": {
            "current_decline_rate": rate,
            "normal_consumption_rate": normal_rate,
            "projected_stockout_date": projected,
            **_identity(point),
        },
        "causes": ["rapid consumption increase"],
        "description": (
            f"Stock for {point.medicine_name} at {point.location} is declining at "
            f"{rate:g} units/day against a normal rate of {normal_rate:g} units/day. "
            f"Projected stockout by: {projected}."
        ),
    }


# -- regional-shortage-pattern -----------------------------------------------

def _short_locations(point: DataPoint) -> List[Any]:
    return [r for r in point.regional_data or [] if r.current_stock <= r.critical_threshold]


def _regional_condition(ctx: EvaluationContext) -> bool:
    regional = ctx.data.regional_data
    if not regional:
        return False
    short = len(_short_locations(ctx.data))
    return short >= 3 and short / len(regional) > 0.3


def _regional_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    affected = _short_locations(point)
    percentage = round(len(affected) / len(point.regional_data) * 100)
    listing = ", ".join(f"{r.location} (Stock: {r.current_stock:g})" for r in affected)
    return {
        "type": "shortage",
        "severity": "high",
        "message": f"REGIONAL SHORTAGE: {point.medicine_name} showing shortages in {point.region} region",
        "details": {
            "region": point.region,
            "affected_locations_count": len(affected),
            "total_locations": len(point.regional_data),
            "shortage_percentage": percentage,
            "affected_locations": [
                {"name": r.location, "stock": r.current_stock, "threshold": r.critical_threshold}
                for r in affected
            ],
            **_identity(point),
        },
        "causes": ["widespread regional shortage"],
        "description": (
            f"{point.medicine_name} is short in {percentage}% of locations in the "
            f"{point.region} region, including: {listing}."
        ),
    }


# -- supply-chain-disruption -------------------------------------------------

def _disruption_condition(ctx: EvaluationContext) -> bool:
    data = ctx.data
    return (
        bool(ctx.point.derived.is_delivery_overdue)
        and data.reorder_point is not None
        and data.current_stock <= data.reorder_point
    )


def _disruption_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    days_since = ctx.point.derived.days_since_last_delivery
    expected = point.expected_delivery_date or "N/A"
    return {
        "type": "supply-chain",
        "severity": "high",
        "message": f"SUPPLY DISRUPTION: Delivery of {point.medicine_name} from {point.supplier} is delayed",
        "details": {
            "days_since_last_delivery": days_since,
            "average_delivery_interval": point.average_delivery_interval,
            "supplier": point.supplier,
            "expected_delivery_date": expected,
            "current_stock": point.current_stock,
            "reorder_point": point.reorder_point,
            **_identity(point),
        },
        "causes": ["supplier delivery delay"],
        "description": (
            f"It has been {days_since:.1f} days since the last delivery of "
            f"{point.medicine_name} from {point.supplier}, and stock "
            f"({point.current_stock:g}) is at or below the reorder point "
            f"({point.reorder_point:g}). Expected delivery: {expected}."
        ),
    }


# -- seasonal-demand-spike ---------------------------------------------------

def _seasonal_average(ctx: EvaluationContext) -> float:
    return ctx.data.seasonal_average_demand(ctx.now.month) or 0.0


def _seasonal_condition(ctx: EvaluationContext) -> bool:
    historical = _seasonal_average(ctx)
    current = ctx.data.current_demand or 0.0
    return historical > 0 and current > historical * 1.5


def _seasonal_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    historical = _seasonal_average(ctx)
    current = point.current_demand or 0.0
    increase = round((current - historical) / (historical or 1) * 100)
    month = calendar.month_name[ctx.now.month]
    return {
        "type": "demand",
        "severity": "medium",
        "message": f"DEMAND SPIKE: Unusual seasonal demand for {point.medicine_name}",
        "details": {
            "current_demand": current,
            "historical_average": historical,
            "increase_percentage": increase,
            "current_month": month,
            **_identity(point),
        },
        "causes": ["seasonal demand increase"],
        "description": (
            f"Demand for {point.medicine_name} is {current:g} units, {increase}% above "
            f"the historical average for {month}."
        ),
    }


# -- expiry-date-approaching -------------------------------------------------

def _expiry_condition(ctx: EvaluationContext) -> bool:
    return bool(ctx.point.derived.is_near_expiry) and ctx.data.current_stock > 0


def _expiry_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    days = ctx.point.derived.days_to_expiry
    return {
        "type": "quality",
        "severity": "medium",
        "message": f"EXPIRY ALERT: {point.medicine_name} approaching expiry in {days:.0f} days",
        "details": {
            "expiry_date": point.expiry_date.isoformat(),
            "days_to_expiry": days,
            "current_stock": point.current_stock,
            "batch_number": point.batch_number or "N/A",
            "location": point.location,
            **_identity(point),
        },
        "causes": ["approaching expiry date"],
        "description": (
            f"{point.current_stock:g} units of {point.medicine_name} at {point.location} "
            f"expire on {point.expiry_date.date().isoformat()}, {days:.0f} days from now."
        ),
    }


# -- unusual-consumption-pattern ---------------------------------------------

def _consumption_averages(ctx: EvaluationContext):
    history = ctx.data.daily_consumption_history or []
    return (
        ctx.helpers.moving_average(history, 3),
        ctx.helpers.moving_average(history, 7),
    )


def _consumption_condition(ctx: EvaluationContext) -> bool:
    recent, historical = _consumption_averages(ctx)
    return bool(recent and historical and recent > historical * 2)


def _consumption_action(point: DataPoint, ctx: EvaluationContext) -> Dict[str, Any]:
    recent, historical = _consumption_averages(ctx)
    return {
        "type": "consumption",
        "severity": "medium",
        "message": f"UNUSUAL CONSUMPTION: {point.medicine_name} shows abnormal buying pattern",
        "details": {
            "recent_consumption": recent,
            "historical_average": historical,
            "possible_cause": "Bulk buying or hoarding suspected",
            **_identity(point),
        },
        "causes": ["hoarding", "bulk buying"],
        "description": (
            f"Recent 3-day average consumption of {point.medicine_name} ({recent:g}) "
            f"is more than double the 7-day average ({historical:g})."
        ),
    }


def shortage_rules() -> List[Rule]:
    """Fresh instances of the shortage rule pack."""
    return [
        Rule(
            id="critical-stock-depletion",
            name="Critical Stock Depletion",
            category="shortage",
            severity="critical",
            description="Detects when medicine stock falls below critical threshold",
            condition=_critical_stock_condition,
            action=_critical_stock_action,
        ),
        Rule(
            id="complete-stockout",
            name="Complete Stock Out",
            category="shortage",
            severity="critical",
            description="Detects when medicine is completely out of stock",
            condition=_stockout_condition,
            action=_stockout_action,
        ),
        Rule(
            id="rapid-stock-decline",
            name="Rapid Stock Decline",
            category="shortage",
            severity="high",
            description="Detects unusually fast stock depletion rates",
            condition=_rapid_decline_condition,
            action=_rapid_decline_action,
        ),
        Rule(
            id="regional-shortage-pattern",
            name="Regional Shortage Pattern",
            category="shortage",
            severity="high",
            description="Detects shortage patterns across multiple locations in a region",
            condition=_regional_condition,
            action=_regional_action,
        ),
        Rule(
            id="supply-chain-disruption",
            name="Supply Chain Disruption",
            category="supply-chain",
            severity="high",
            description="Detects potential supply chain disruptions",
            condition=_disruption_condition,
            action=_disruption_action,
        ),
        Rule(
            id="seasonal-demand-spike",
            name="Seasonal Demand Spike",
            category="demand",
            severity="medium",
            description="Detects unusual seasonal demand increases",
            condition=_seasonal_condition,
            action=_seasonal_action,
        ),
        Rule(
            id="expiry-date-approaching",
            name="Expiry Date Approaching",
            category="quality",
            severity="medium",
            description="Detects medicines approaching expiry date",
            condition=_expiry_condition,
            action=_expiry_action,
        ),
        Rule(
            id="unusual-consumption-pattern",
            name="Unusual Consumption Pattern",
            category="consumption",
            severity="medium",
            description="Detects consumption spikes that may indicate hoarding or bulk buying",
            condition=_consumption_condition,
            action=_consumption_action,
        ),
    ]
