"""
Pytest configuration and shared fixtures.

Provides sample store records and enriched data points for unit and
integration tests.
"""

import pytest
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from src.data.features import enrich
from src.data.schema import DataPoint, EnrichedDataPoint

# Wednesday, mid-morning
OBSERVED_AT = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def insulin_record() -> Dict[str, Any]:
    """
    Store record for a stocked-out insulin observation in Delhi.

    Uses the store's camelCase keys, as records arrive from the data source.
    """
    return {
        "$id": "dp-insulin-1",
        "medicineName": "Insulin",
        "location": "Delhi",
        "currentStock": 0,
        "criticalThreshold": 50,
        "timestamp": "2025-03-12T10:00:00Z",
    }


@pytest.fixture
def healthy_record() -> Dict[str, Any]:
    """
    A well-stocked, stable observation that triggers no rule and no model.

    Returns:
        Dict with snake_case keys covering stock, price and demand series
    """
    return {
        "id": "dp-healthy-1",
        "medicine_id": "med-para",
        "medicine_name": "Paracetamol 500mg",
        "location": "Pune",
        "current_stock": 500,
        "current_price": 10.0,
        "timestamp": OBSERVED_AT,
        "critical_threshold": 100,
        "reorder_point": 200,
        "average_market_price": 10.0,
        "max_capacity": 1000,
        "max_stock": 1000,
        "stock_history": [500, 505, 495, 500, 505, 495, 500],
        "price_history": [10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 10.0],
        "demand_history": [50, 50, 50, 50, 50, 50, 50],
        "current_demand": 50,
        "average_demand": 50,
        "daily_consumption_history": [50, 50, 50, 50, 50, 50, 50],
    }


@pytest.fixture
def make_point(healthy_record) -> Callable[..., EnrichedDataPoint]:
    """
    Factory for enriched data points.

    Keyword overrides replace fields of the healthy record; pass a field
    with value None to drop it.
    """

    def _make(**overrides: Any) -> EnrichedDataPoint:
        record = dict(healthy_record)
        record.update(overrides)
        record = {k: v for k, v in record.items() if v is not None}
        return enrich(DataPoint.model_validate(record))

    return _make


def pytest_configure(config):
    """
    Pytest hook to configure test session.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )
