"""
Sentry context injection for layout comparison and calibration.

Injects comparison/calibration context into Sentry for debugging and error
tracking. Gracefully degrades if sentry_sdk is not installed or not
initialized.

All functions are no-ops if Sentry is unavailable - no warnings, no crashes.
"""

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from layout_validation.validators.layout.comparison import ComparisonResult
    from layout_validation.validators.stability.calibrator import CalibrationResult
    from layout_validation.validators.thresholds.evaluator import ThresholdEvaluation

logger = logging.getLogger(__name__)

# Check if sentry_sdk is available
try:
    import sentry_sdk
    from sentry_sdk import add_breadcrumb, new_scope, set_context, set_tag

    SENTRY_AVAILABLE = True
except ImportError:
    SENTRY_AVAILABLE = False
    sentry_sdk = None
    set_context = None
    set_tag = None
    add_breadcrumb = None
    new_scope = None


def _is_sentry_initialized() -> bool:
    """Check if Sentry SDK is initialized (has an active client)."""
    if not SENTRY_AVAILABLE:
        return False
    try:
        return sentry_sdk.is_initialized()
    except Exception:
        return False


def inject_comparison_context(
    result: "ComparisonResult",
    evaluation: "ThresholdEvaluation | None" = None,
) -> bool:
    """
    Inject comparison context into Sentry for debugging.

    Adds:
    - Structured context (appears in "Additional Data" section)
    - Searchable tags (mode, similarity, verdict)
    - Breadcrumb for timeline

    Args:
        result: ComparisonResult from a comparator
        evaluation: Optional ThresholdEvaluation for the same result

    Returns:
        True if context was injected, False otherwise (Sentry unavailable)
    """
    if not _is_sentry_initialized():
        return False

    try:
        stats = result.statistics
        verdict = evaluation.verdict.value if evaluation else None
        set_context(
            "layout_comparison",
            {
                "mode": result.mode,
                "similarity": result.similarity,
                "has_issues": result.has_issues,
                "matched": stats.matched,
                "added": stats.added,
                "removed": stats.removed,
                "moved": stats.moved,
                "modified": stats.modified,
                "verdict": verdict,
                "rules": [v.rule for v in evaluation.violations] if evaluation else [],
                "warnings": list(result.warnings),
            },
        )

        set_tag("layout.mode", result.mode)
        set_tag("layout.similarity", f"{result.similarity:.1f}")
        if verdict:
            set_tag("layout.verdict", verdict)

        add_breadcrumb(
            category="layout",
            message=f"Layout comparison ({result.mode}): {result.similarity:.1f}%",
            level="warning" if result.has_issues else "info",
            data={"added": stats.added, "removed": stats.removed},
        )
        return True

    except Exception as e:
        # Silently fail - Sentry context is optional
        logger.debug(f"Failed to inject Sentry context: {e}")
        return False


def inject_calibration_context(result: "CalibrationResult") -> bool:
    """
    Inject calibration outcome into Sentry.

    Args:
        result: CalibrationResult from AdaptiveCalibrator

    Returns:
        True if context was injected, False otherwise (Sentry unavailable)
    """
    if not _is_sentry_initialized():
        return False

    try:
        set_context(
            "layout_calibration",
            {
                "phase": result.phase.value,
                "reason": result.reason,
                "iterations": result.iterations_used,
                "confidence": result.confidence,
                "stability": result.overall_stability_score,
                "unstable_nodes": len(result.unstable_nodes),
                "ignore_selectors": list(result.settings.ignore_selectors),
                "failed_captures": result.failed_captures,
            },
        )
        set_tag("layout.calibration.phase", result.phase.value)
        set_tag("layout.calibration.low_confidence", str(result.low_confidence).lower())

        add_breadcrumb(
            category="layout",
            message=(
                f"Calibration {result.phase.value} after "
                f"{result.iterations_used} iterations"
            ),
            level="warning" if result.low_confidence else "info",
            data={"confidence": result.confidence, "reason": result.reason},
        )
        return True

    except Exception as e:
        logger.debug(f"Failed to inject Sentry context: {e}")
        return False


def capture_calibration_failure(
    error: Exception,
    successful_samples: int,
    failed_captures: int,
    context: dict[str, Any] | None = None,
) -> bool:
    """
    Capture a calibration failure with its sampling context.

    Uses an isolated scope to avoid polluting global context.

    Args:
        error: The exception to capture (usually CalibrationIncomplete)
        successful_samples: Samples collected before the failure
        failed_captures: Failed capture attempts so far
        context: Optional extra context (url, viewport, config)

    Returns:
        True if error was captured, False otherwise (Sentry unavailable)
    """
    if not _is_sentry_initialized():
        return False

    try:
        with new_scope() as scope:
            scope.set_context(
                "layout_calibration",
                {
                    "successful_samples": successful_samples,
                    "failed_captures": failed_captures,
                    **(context or {}),
                },
            )
            scope.fingerprint = ["layout-calibration-error", type(error).__name__]
            scope.set_tag("layout.calibration.error", "true")
            sentry_sdk.capture_exception(error)
        return True

    except Exception as e:
        logger.debug(f"Failed to capture calibration error: {e}")
        return False


__all__ = [
    "SENTRY_AVAILABLE",
    "inject_comparison_context",
    "inject_calibration_context",
    "capture_calibration_failure",
]
