"""
Data module: record normalization, validation, and feature derivation.

Responsible for converting raw store records into validated, feature-bearing
data points suitable for rule evaluation and scoring. Pipeline:

    Raw store records (camelCase or snake_case dicts)
        ↓
    Normalization (src/data/normalizers.py) → snake_case keys, UTC timestamps
        ↓
    Validation (src/data/validation.py) → ValidationResult
        ↓
    Feature derivation (src/data/features.py) → EnrichedDataPoint
        ↓
    Ready for rules and scoring
"""

from src.data.features import (
    FeatureProcessor,
    calculate_trend,
    calculate_volatility,
    enrich,
    extract_contextual_features,
    extract_derived_features,
    extract_normalized_features,
    extract_temporal_features,
    to_data_point,
)
from src.data.normalizers import (
    NormalizationError,
    normalize_key,
    normalize_keys,
    normalize_timestamp,
)
from src.data.schema import (
    ContextualFeatures,
    DataPoint,
    DerivedFeatures,
    EnrichedDataPoint,
    NormalizedFeatures,
    TemporalFeatures,
    ValidationResult,
)
from src.data.validation import validate

__all__ = [
    # Schema
    "DataPoint",
    "EnrichedDataPoint",
    "DerivedFeatures",
    "TemporalFeatures",
    "NormalizedFeatures",
    "ContextualFeatures",
    "ValidationResult",

    # Normalization
    "normalize_key",
    "normalize_keys",
    "normalize_timestamp",
    "NormalizationError",

    # Validation
    "validate",

    # Features
    "FeatureProcessor",
    "calculate_trend",
    "calculate_volatility",
    "enrich",
    "extract_contextual_features",
    "extract_derived_features",
    "extract_normalized_features",
    "extract_temporal_features",
    "to_data_point",
]
