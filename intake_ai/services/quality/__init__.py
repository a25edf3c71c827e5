"""QAPI quality metric validation."""

from intake_ai.services.quality.metric_validator import (
    MetricValidator,
    default_analysis,
    default_compliance,
    default_projects,
    validate_metrics,
)

__all__ = [
    "MetricValidator",
    "default_analysis",
    "default_compliance",
    "default_projects",
    "validate_metrics",
]
