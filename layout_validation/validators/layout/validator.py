#!/usr/bin/env python3
"""
LayoutValidator - Layout Similarity Validator

Compares a baseline layout snapshot with a current one (tree-aware or
flat), classifies the result against threshold bands and returns a
confidence score equal to similarity / 100. Runs in the MONITOR tier
unless configured otherwise.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from layout_validation.integrations.metrics import push_comparison_metrics
from layout_validation.integrations.sentry_context import inject_comparison_context
from layout_validation.models import ComparisonSettings, LayoutSnapshot
from layout_validation.validators.thresholds.evaluator import (
    ThresholdConfig,
    ThresholdEvaluator,
)

from .comparison import DEFAULT_SIMILARITY_THRESHOLD, ComparisonResult, summarize_changes
from .flat_comparator import FlatComparator
from .matcher import LayoutMatcher
from .tree_comparator import TreeComparator

logger = logging.getLogger(__name__)

COMPARATORS = {
    "tree": TreeComparator,
    "flat": FlatComparator,
}


class ValidationTier(Enum):
    """Validation tiers with different behaviors."""

    BLOCKER = 1  # Must pass - blocks merge/deploy
    WARNING = 2  # Warn + suggest fix - doesn't block
    MONITOR = 3  # Metrics only - emit to dashboards


@dataclass
class ValidationResult:
    """Result from the layout validator."""

    dimension: str
    tier: ValidationTier
    passed: bool
    message: str
    details: dict = field(default_factory=dict)
    fix_suggestion: str | None = None
    duration_ms: int = 0
    confidence: float = 1.0


def compare_layouts(
    baseline: LayoutSnapshot,
    current: LayoutSnapshot,
    settings: ComparisonSettings | None = None,
    mode: str = "tree",
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    matcher: LayoutMatcher | None = None,
    allow_viewport_mismatch: bool = False,
) -> ComparisonResult:
    """
    Compare two snapshots with the comparator for ``mode`` ("tree" or "flat").

    Returns:
        ComparisonResult
    """
    if mode not in COMPARATORS:
        raise ValueError(f"mode must be one of {sorted(COMPARATORS)}, got {mode!r}")
    comparator = COMPARATORS[mode](
        settings=settings,
        matcher=matcher,
        similarity_threshold=similarity_threshold,
        allow_viewport_mismatch=allow_viewport_mismatch,
    )
    return comparator.compare(baseline, current)


@dataclass
class LayoutConfig:
    """Configuration for LayoutValidator."""

    mode: str = "tree"  # "tree" or "flat"
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    thresholds: ThresholdConfig | str | dict = "default"
    settings: ComparisonSettings | None = None
    allow_viewport_mismatch: bool = False
    project: str | None = None  # push metrics when set
    tier: ValidationTier = ValidationTier.MONITOR


class LayoutValidator:
    """
    Layout Similarity Validator (tier 3 unless configured otherwise).

    Usage:
        validator = LayoutValidator({"mode": "flat", "thresholds": "strict", "tier": 1})
        result = await validator.validate(baseline_snapshot, current_snapshot)
        print(f"Confidence: {result.confidence}")
        print(f"Passed: {result.passed}")
    """

    dimension = "layout"

    def __init__(
        self,
        config: LayoutConfig | dict | None = None,
        matcher: LayoutMatcher | None = None,
    ):
        """
        Initialize validator with optional config.

        Args:
            config: LayoutConfig or dict with config options
            matcher: Matcher with custom weights
        """
        if config is None:
            self.config = LayoutConfig()
        elif isinstance(config, dict):
            settings = config.get("settings")
            if isinstance(settings, dict):
                settings = ComparisonSettings.from_dict(settings)
            self.config = LayoutConfig(
                mode=config.get("mode", "tree"),
                similarity_threshold=config.get(
                    "similarity_threshold", DEFAULT_SIMILARITY_THRESHOLD
                ),
                thresholds=config.get("thresholds", "default"),
                settings=settings,
                allow_viewport_mismatch=config.get("allow_viewport_mismatch", False),
                project=config.get("project"),
                tier=ValidationTier(config.get("tier", ValidationTier.MONITOR)),
            )
        else:
            self.config = config

        if self.config.mode not in COMPARATORS:
            raise ValueError(
                f"mode must be one of {sorted(COMPARATORS)}, got {self.config.mode!r}"
            )
        self.comparator = COMPARATORS[self.config.mode](
            settings=self.config.settings,
            matcher=matcher,
            similarity_threshold=self.config.similarity_threshold,
            allow_viewport_mismatch=self.config.allow_viewport_mismatch,
        )
        self.evaluator = ThresholdEvaluator(self.config.thresholds)

    @property
    def tier(self) -> ValidationTier:
        return self.config.tier

    async def validate(
        self,
        baseline: LayoutSnapshot | dict | None = None,
        current: LayoutSnapshot | dict | None = None,
    ) -> ValidationResult:
        """
        Compare baseline and current layout snapshots.

        Args:
            baseline: Reference snapshot (or its JSON dict)
            current: Snapshot under test (or its JSON dict)

        Returns:
            ValidationResult with confidence score and comparison details
        """
        start = datetime.now()

        if baseline is None or current is None:
            return ValidationResult(
                dimension=self.dimension,
                tier=self.tier,
                passed=True,
                message="Skipped: baseline and current snapshots are required",
                confidence=0.0,
            )
        if isinstance(baseline, dict):
            baseline = LayoutSnapshot.from_dict(baseline)
        if isinstance(current, dict):
            current = LayoutSnapshot.from_dict(current)

        comparison = self.comparator.compare(baseline, current)
        evaluation = self.evaluator.evaluate(comparison)

        passed = evaluation.passed and not comparison.has_issues
        confidence = comparison.similarity / 100.0

        if passed:
            message = f"Layout match: {confidence:.1%} similarity"
        else:
            message = (
                f"Layout mismatch: {confidence:.1%} similarity "
                f"(threshold: {self.config.similarity_threshold / 100.0:.1%}, "
                f"verdict: {evaluation.verdict.value})"
            )

        fix_suggestion = None
        if not passed:
            fix_suggestion = "; ".join(summarize_changes(comparison))

        inject_comparison_context(comparison, evaluation)
        if self.config.project:
            push_comparison_metrics(
                comparison, self.config.project, verdict=evaluation.verdict.value
            )

        duration_ms = int((datetime.now() - start).total_seconds() * 1000)

        return ValidationResult(
            dimension=self.dimension,
            tier=self.tier,
            passed=passed,
            message=message,
            confidence=confidence,
            fix_suggestion=fix_suggestion,
            details={
                "similarity": comparison.similarity,
                "mode": comparison.mode,
                "verdict": evaluation.verdict.value,
                "violations": [v.to_dict() for v in evaluation.violations],
                "summary": summarize_changes(comparison),
                "statistics": comparison.statistics.to_dict(),
                "warnings": list(comparison.warnings),
                "comparison": comparison.to_dict(),
            },
            duration_ms=duration_ms,
        )


__all__ = [
    "LayoutValidator",
    "LayoutConfig",
    "ValidationResult",
    "ValidationTier",
    "compare_layouts",
]
