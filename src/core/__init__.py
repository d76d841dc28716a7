"""
Core module: Configuration, logging, and exception handling.
"""

from .config import Config, config
from .exceptions import (
    AnomalyDetectionError,
    ConfigurationError,
    DataValidationError,
    DeliveryError,
    EngineNotRunningError,
    FeatureExtractionError,
    InvalidRuleError,
    NotFoundError,
    RuleEvaluationError,
    ScorerError,
)

__all__ = [
    "Config",
    "config",
    "AnomalyDetectionError",
    "ConfigurationError",
    "DataValidationError",
    "DeliveryError",
    "EngineNotRunningError",
    "FeatureExtractionError",
    "InvalidRuleError",
    "NotFoundError",
    "RuleEvaluationError",
    "ScorerError",
]
