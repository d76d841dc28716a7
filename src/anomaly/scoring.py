"""
Severity banding and confidence combination.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Tuple

from .schema import AnomalySeverity

SEVERITY_ORDER = [
    AnomalySeverity.LOW,
    AnomalySeverity.MEDIUM,
    AnomalySeverity.HIGH,
    AnomalySeverity.CRITICAL,
]


def severity_from_confidence(confidence: float) -> AnomalySeverity:
    """
    Map a confidence in [0, 1] to a severity band.

    >= 0.9 critical, >= 0.7 high, >= 0.5 medium, otherwise low.
    """
    if confidence >= 0.9:
        return AnomalySeverity.CRITICAL
    if confidence >= 0.7:
        return AnomalySeverity.HIGH
    if confidence >= 0.5:
        return AnomalySeverity.MEDIUM
    return AnomalySeverity.LOW


def overall_severity(*severities: AnomalySeverity) -> AnomalySeverity:
    """
    Return the highest severity among inputs.
    """

    highest_index = max(SEVERITY_ORDER.index(AnomalySeverity(s)) for s in severities)
    return SEVERITY_ORDER[highest_index]


def combine_confidences(
    confidences: Iterable[Tuple[str, float]],
    weights: Mapping[str, float],
    default_weight: float,
) -> float:
    """
    Weighted average of per-model confidences.

    Contributions are summed in model-id order so the result does not depend
    on the order in which models ran. Returns 0.0 with no contributors.
    """

    weighted = 0.0
    total_weight = 0.0
    for model_id, confidence in sorted(confidences):
        weight = weights.get(model_id, default_weight)
        weighted += confidence * weight
        total_weight += weight

    if total_weight <= 0:
        return 0.0
    return min(max(weighted / total_weight, 0.0), 1.0)
