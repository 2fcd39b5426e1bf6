"""Threshold Evaluator - pass / warning / failure policy over comparison results."""

from .evaluator import (
    THRESHOLD_PRESETS,
    RuleViolation,
    Severity,
    SettingsViolation,
    ThresholdConfig,
    ThresholdEvaluation,
    ThresholdEvaluator,
    get_preset,
    merge_thresholds,
    validate_with_settings,
)

__all__ = [
    "ThresholdEvaluator",
    "ThresholdConfig",
    "ThresholdEvaluation",
    "RuleViolation",
    "Severity",
    "THRESHOLD_PRESETS",
    "get_preset",
    "merge_thresholds",
    "SettingsViolation",
    "validate_with_settings",
]
