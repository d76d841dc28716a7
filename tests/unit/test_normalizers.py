"""
Unit tests for record normalization.

Tests key and timestamp normalization of raw store records.
"""

import pytest
from datetime import datetime, timedelta, timezone

from src.data.normalizers import (
    NormalizationError,
    normalize_key,
    normalize_keys,
    normalize_timestamp,
)


class TestNormalizeTimestamp:
    """Test timestamp normalization."""

    def test_normalize_iso8601_with_z(self):
        """Test ISO 8601 format with Z."""
        result = normalize_timestamp("2025-02-07T10:30:45Z")

        assert isinstance(result, datetime)
        assert result.year == 2025
        assert result.month == 2
        assert result.day == 7
        assert result.hour == 10
        assert result.minute == 30

    def test_normalize_iso8601_without_z(self):
        """Test ISO 8601 format without Z."""
        result = normalize_timestamp("2025-02-07T10:30:45")

        assert result.year == 2025
        assert result.tzinfo == timezone.utc

    def test_normalize_offset_converted_to_utc(self):
        """Test that offsets are converted to UTC."""
        result = normalize_timestamp("2025-02-07T10:30:45+05:30")

        assert result.hour == 5
        assert result.minute == 0
        assert result.utcoffset() == timedelta(0)

    def test_normalize_date_only(self):
        result = normalize_timestamp("2025-02-07")

        assert result == datetime(2025, 2, 7, tzinfo=timezone.utc)

    def test_normalize_epoch_seconds(self):
        """Test epoch seconds."""
        # 1707315045 = 2024-02-07T14:10:45Z
        result = normalize_timestamp(1707315045)

        assert result.year == 2024
        assert result.tzinfo == timezone.utc

    def test_normalize_epoch_milliseconds(self):
        """Test epoch milliseconds."""
        result = normalize_timestamp("1707315045000")

        assert result == datetime(2024, 2, 7, 14, 10, 45, tzinfo=timezone.utc)

    def test_naive_datetime_assumed_utc(self):
        result = normalize_timestamp(datetime(2025, 1, 1, 12, 0))

        assert result.tzinfo == timezone.utc
        assert result.hour == 12

    @pytest.mark.parametrize("value", ["not-a-date", "", None, True])
    def test_invalid_timestamp_raises(self, value):
        with pytest.raises(NormalizationError):
            normalize_timestamp(value)


class TestNormalizeKeys:
    """Test store key normalization."""

    def test_camel_case_key(self):
        assert normalize_key("currentStock") == "current_stock"
        assert normalize_key("averageMarketPrice") == "average_market_price"

    def test_snake_case_key_unchanged(self):
        assert normalize_key("current_stock") == "current_stock"

    def test_store_metadata_dropped(self):
        record = {"$id": "abc", "$createdAt": "2025-01-01", "medicineName": "Insulin"}

        result = normalize_keys(record)

        assert result == {"id": "abc", "medicine_name": "Insulin"}

    def test_explicit_id_wins_over_store_id(self):
        result = normalize_keys({"$id": "store", "id": "explicit"})

        assert result["id"] == "explicit"

    def test_nested_regional_records_normalized(self):
        record = {
            "regionalData": [{"location": "Pune", "currentStock": 5, "criticalThreshold": 10}],
            "seasonalData": {"3": {"averageDemand": 40}},
            "crossRegionalPrices": {"northZone": 10.0},
        }

        result = normalize_keys(record)

        assert result["regional_data"][0]["current_stock"] == 5
        assert result["seasonal_data"]["3"] == {"average_demand": 40}
        # Free-form mapping keys are region names, not field names
        assert result["cross_regional_prices"] == {"northZone": 10.0}

    def test_input_not_mutated(self):
        record = {"currentStock": 5, "regionalData": [{"currentStock": 1}]}

        normalize_keys(record)

        assert record == {"currentStock": 5, "regionalData": [{"currentStock": 1}]}

    def test_non_mapping_rejected(self):
        with pytest.raises(NormalizationError):
            normalize_keys(["not", "a", "record"])
