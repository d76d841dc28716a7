"""
Custom exceptions for the MedWatch anomaly engine.

These exceptions provide clear error semantics across the system.
Use them to distinguish between bad input data, faulty rules or scorers,
unknown identifiers, delivery failures and configuration problems.
"""

from typing import List, Optional


class AnomalyDetectionError(Exception):
    """Base exception for anomaly detection failures."""
    pass


class DataValidationError(AnomalyDetectionError):
    """Raised when a data point fails validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class FeatureExtractionError(AnomalyDetectionError):
    """Raised when feature derivation for a data point fails."""
    pass


class InvalidRuleError(AnomalyDetectionError):
    """Raised when a rule definition is incomplete or cannot be compiled."""
    pass


class RuleEvaluationError(AnomalyDetectionError):
    """Raised when a single rule fails during evaluation."""

    def __init__(self, rule_id: str, cause: Exception):
        super().__init__(f"Rule {rule_id} failed: {cause}")
        self.rule_id = rule_id
        self.cause = cause


class ScorerError(AnomalyDetectionError):
    """Raised when a scoring model fails on a data point."""

    def __init__(self, model_id: str, cause: Exception):
        super().__init__(f"Model {model_id} failed: {cause}")
        self.model_id = model_id
        self.cause = cause


class NotFoundError(AnomalyDetectionError):
    """Raised when an anomaly, alert or rule id is unknown."""
    pass


class EngineNotRunningError(AnomalyDetectionError):
    """Raised when data is submitted while the detection engine is stopped."""
    pass


class DeliveryError(Exception):
    """Raised when a notification channel fails to deliver."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass
