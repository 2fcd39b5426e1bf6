"""Optional observability integrations (Prometheus Pushgateway, Sentry)."""

from .metrics import METRICS_AVAILABLE, push_calibration_metrics, push_comparison_metrics
from .sentry_context import (
    SENTRY_AVAILABLE,
    capture_calibration_failure,
    inject_calibration_context,
    inject_comparison_context,
)

__all__ = [
    "METRICS_AVAILABLE",
    "SENTRY_AVAILABLE",
    "push_comparison_metrics",
    "push_calibration_metrics",
    "inject_comparison_context",
    "inject_calibration_context",
    "capture_calibration_failure",
]
