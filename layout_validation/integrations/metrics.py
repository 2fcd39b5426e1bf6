"""
Prometheus metrics integration for layout comparison and calibration.

Pushes comparison and calibration metrics to Prometheus Pushgateway for
Grafana visualization. Gracefully degrades if prometheus_client is not
installed.

Environment variables:
- PUSHGATEWAY_URL: Pushgateway URL (default: localhost:9091)
"""

import logging
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from layout_validation.validators.layout.comparison import ComparisonResult
    from layout_validation.validators.stability.calibrator import CalibrationResult

logger = logging.getLogger(__name__)

# Check if prometheus_client is available
try:
    from prometheus_client import (
        CollectorRegistry,
        Counter,
        Gauge,
        Histogram,
        push_to_gateway,
    )

    METRICS_AVAILABLE = True
except ImportError:
    METRICS_AVAILABLE = False
    CollectorRegistry = None
    Counter = None
    Gauge = None
    Histogram = None
    push_to_gateway = None

# Configuration
PUSHGATEWAY_URL = os.environ.get("PUSHGATEWAY_URL", "localhost:9091")
PUSH_JOB = "layout_validation"

# Isolated registry for layout metrics (don't pollute global)
_registry = None
_comparisons = None
_similarity = None
_changes = None
_calibration_runs = None
_calibration_confidence = None
_calibration_stability = None
_calibration_iterations = None
_capture_failures = None
_warned_once = False


def _initialize_metrics():
    """Initialize metrics on first use (lazy initialization)."""
    global \
        _registry, \
        _comparisons, \
        _similarity, \
        _changes, \
        _calibration_runs, \
        _calibration_confidence, \
        _calibration_stability, \
        _calibration_iterations, \
        _capture_failures

    if not METRICS_AVAILABLE:
        return False

    if _registry is not None:
        return True

    _registry = CollectorRegistry()

    _comparisons = Counter(
        "layout_comparisons_total",
        "Total layout comparisons",
        ["mode", "verdict", "project"],
        registry=_registry,
    )

    _similarity = Histogram(
        "layout_similarity",
        "Layout similarity per comparison (0-100)",
        ["project"],
        buckets=[50.0, 70.0, 80.0, 85.0, 90.0, 95.0, 98.0, 99.0, 100.0],
        registry=_registry,
    )

    _changes = Gauge(
        "layout_changes_count",
        "Elements per change kind in the last comparison",
        ["project", "kind"],
        registry=_registry,
    )

    _calibration_runs = Counter(
        "layout_calibration_runs_total",
        "Total calibration runs by terminal phase",
        ["phase", "project"],
        registry=_registry,
    )

    _calibration_confidence = Gauge(
        "layout_calibration_confidence",
        "Confidence of the last calibration (0-1)",
        ["project"],
        registry=_registry,
    )

    _calibration_stability = Gauge(
        "layout_calibration_stability",
        "Overall stability score of the last calibration (0-100)",
        ["project"],
        registry=_registry,
    )

    _calibration_iterations = Gauge(
        "layout_calibration_iterations",
        "Samples used by the last calibration",
        ["project"],
        registry=_registry,
    )

    _capture_failures = Counter(
        "layout_capture_failures_total",
        "Failed capture attempts during calibration",
        ["project"],
        registry=_registry,
    )

    return True


def _push(project: str) -> bool:
    try:
        push_to_gateway(
            gateway=PUSHGATEWAY_URL,
            job=PUSH_JOB,
            grouping_key={"project": project},
            registry=_registry,
        )
        logger.debug(f"Metrics pushed to {PUSHGATEWAY_URL} for project {project}")
        return True
    except Exception as e:
        # Log warning but don't crash - metrics are optional
        logger.warning(f"Failed to push metrics to Pushgateway: {e}")
        return False


def _available() -> bool:
    global _warned_once

    if not METRICS_AVAILABLE:
        if not _warned_once:
            logger.warning(
                "prometheus_client not installed - metrics will not be pushed. "
                "Install with: pip install prometheus_client"
            )
            _warned_once = True
        return False
    return _initialize_metrics()


def push_comparison_metrics(
    result: "ComparisonResult",
    project: str,
    verdict: str | None = None,
) -> bool:
    """
    Push comparison metrics to Prometheus Pushgateway.

    Args:
        result: ComparisonResult from a comparator
        project: Project name for metric labels
        verdict: Threshold verdict ("pass", "warning", "failure"); derived
            from result.has_issues when omitted

    Returns:
        True if metrics were pushed successfully, False otherwise
    """
    if not _available():
        return False

    if verdict is None:
        verdict = "failure" if result.has_issues else "pass"

    stats = result.statistics
    _comparisons.labels(mode=result.mode, verdict=verdict, project=project).inc()
    _similarity.labels(project=project).observe(result.similarity)
    for kind, count in (
        ("added", stats.added),
        ("removed", stats.removed),
        ("moved", stats.moved),
        ("resized", stats.resized),
        ("modified", stats.modified),
    ):
        _changes.labels(project=project, kind=kind).set(count)

    return _push(project)


def push_calibration_metrics(result: "CalibrationResult", project: str) -> bool:
    """
    Push calibration metrics to Prometheus Pushgateway.

    Args:
        result: CalibrationResult from AdaptiveCalibrator
        project: Project name for metric labels

    Returns:
        True if metrics were pushed successfully, False otherwise
    """
    if not _available():
        return False

    _calibration_runs.labels(phase=result.phase.value, project=project).inc()
    _calibration_confidence.labels(project=project).set(result.confidence)
    _calibration_stability.labels(project=project).set(result.overall_stability_score)
    _calibration_iterations.labels(project=project).set(result.iterations_used)
    if result.failed_captures:
        _capture_failures.labels(project=project).inc(result.failed_captures)

    return _push(project)


def get_registry():
    """Registry holding layout metrics (None before first use)."""
    return _registry


def clear_metrics() -> None:
    """Clear all metrics (useful for testing)."""
    global \
        _registry, \
        _comparisons, \
        _similarity, \
        _changes, \
        _calibration_runs, \
        _calibration_confidence, \
        _calibration_stability, \
        _calibration_iterations, \
        _capture_failures
    _registry = None
    _comparisons = None
    _similarity = None
    _changes = None
    _calibration_runs = None
    _calibration_confidence = None
    _calibration_stability = None
    _calibration_iterations = None
    _capture_failures = None


__all__ = [
    "METRICS_AVAILABLE",
    "PUSHGATEWAY_URL",
    "push_comparison_metrics",
    "push_calibration_metrics",
    "get_registry",
    "clear_metrics",
]
