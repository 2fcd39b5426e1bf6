#!/usr/bin/env python3
"""
Threshold Evaluator - pass/warning/failure policy over comparison results.

Reads only a ComparisonResult's similarity and statistics, never the
snapshots or the match tree. Three presets are provided, ordered from
strict to relaxed on every band:

    preset   similarity pass/fail  position  size        added/removed/modified
    strict   99 / 95               1px (F)   2px / 1%    0 / 0 / 5
    default  95 / 85               5px (W)   10px / 5%   10 / 10 / 20
    relaxed  85 / 70               20px (W)  50px / 10%  50 / 50 / 100

(F) = position violations are failures, (W) = warnings.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from layout_validation.models import ComparisonSettings
from layout_validation.validators.layout.comparison import ComparisonResult

logger = logging.getLogger(__name__)


class Severity(Enum):
    """Outcome severities, ordered by rank."""

    PASS = "pass"
    WARNING = "warning"
    FAILURE = "failure"

    @property
    def rank(self) -> int:
        return {"pass": 0, "warning": 1, "failure": 2}[self.value]


@dataclass
class ThresholdConfig:
    """Named threshold bands."""

    name: str = "default"
    similarity_pass: float = 95.0  # at or above: no similarity rule fires
    similarity_fail: float = 85.0  # below: failure; in between: warning
    position_threshold_px: float | None = 5.0
    position_strict: bool = False
    size_threshold_px: float | None = 10.0
    size_threshold_percent: float | None = 5.0
    max_added: int | None = 10
    max_removed: int | None = 10
    max_modified: int | None = 20

    def __post_init__(self):
        if self.similarity_fail > self.similarity_pass:
            raise ValueError("similarity_fail must not exceed similarity_pass")
        for name in ("similarity_pass", "similarity_fail"):
            value = getattr(self, name)
            if value < 0.0 or value > 100.0:
                raise ValueError(f"{name} must be between 0 and 100")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


THRESHOLD_PRESETS: dict[str, ThresholdConfig] = {
    "strict": ThresholdConfig(
        name="strict",
        similarity_pass=99.0,
        similarity_fail=95.0,
        position_threshold_px=1.0,
        position_strict=True,
        size_threshold_px=2.0,
        size_threshold_percent=1.0,
        max_added=0,
        max_removed=0,
        max_modified=5,
    ),
    "default": ThresholdConfig(),
    "relaxed": ThresholdConfig(
        name="relaxed",
        similarity_pass=85.0,
        similarity_fail=70.0,
        position_threshold_px=20.0,
        position_strict=False,
        size_threshold_px=50.0,
        size_threshold_percent=10.0,
        max_added=50,
        max_removed=50,
        max_modified=100,
    ),
}


def get_preset(name: str) -> ThresholdConfig:
    """Copy of a named preset."""
    if name not in THRESHOLD_PRESETS:
        raise ValueError(
            f"Unknown threshold preset: {name} (available: {sorted(THRESHOLD_PRESETS)})"
        )
    return replace(THRESHOLD_PRESETS[name])


def merge_thresholds(base: ThresholdConfig, overrides: dict[str, Any]) -> ThresholdConfig:
    """Return ``base`` with the given fields replaced (unknown keys rejected)."""
    unknown = set(overrides) - set(base.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown threshold fields: {sorted(unknown)}")
    return replace(base, **overrides)


@dataclass
class RuleViolation:
    """One rule that fired."""

    rule: str
    severity: Severity
    message: str
    measured: float
    threshold: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "severity": self.severity.value,
            "message": self.message,
            "measured": self.measured,
            "threshold": self.threshold,
        }


@dataclass
class ThresholdEvaluation:
    """Verdict plus every rule that fired."""

    verdict: Severity
    violations: list[RuleViolation] = field(default_factory=list)
    preset: str = "default"

    @property
    def passed(self) -> bool:
        """True unless a failure rule fired (warnings still pass)."""
        return self.verdict != Severity.FAILURE

    @property
    def failures(self) -> list[RuleViolation]:
        return [v for v in self.violations if v.severity == Severity.FAILURE]

    @property
    def warnings(self) -> list[RuleViolation]:
        return [v for v in self.violations if v.severity == Severity.WARNING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "passed": self.passed,
            "preset": self.preset,
            "violations": [v.to_dict() for v in self.violations],
        }


class ThresholdEvaluator:
    """
    Classifies ComparisonResults against a ThresholdConfig.

    Usage:
        evaluator = ThresholdEvaluator("strict")
        evaluation = evaluator.evaluate(result)
        if not evaluation.passed:
            for violation in evaluation.failures:
                print(violation.message)
    """

    def __init__(self, config: ThresholdConfig | str | dict | None = None):
        if config is None:
            self.config = get_preset("default")
        elif isinstance(config, str):
            self.config = get_preset(config)
        elif isinstance(config, dict):
            preset = config.get("preset", "default")
            overrides = {k: v for k, v in config.items() if k != "preset"}
            self.config = merge_thresholds(get_preset(preset), overrides)
        else:
            self.config = config

    def evaluate(self, result: ComparisonResult) -> ThresholdEvaluation:
        """
        Classify a comparison result.

        Args:
            result: ComparisonResult from either comparator

        Returns:
            ThresholdEvaluation with verdict and fired rules
        """
        config = self.config
        stats = result.statistics
        violations: list[RuleViolation] = []

        if result.similarity < config.similarity_fail:
            violations.append(
                RuleViolation(
                    rule="similarity",
                    severity=Severity.FAILURE,
                    message=(
                        f"Similarity {result.similarity:.1f}% is below "
                        f"{config.similarity_fail:.1f}%"
                    ),
                    measured=result.similarity,
                    threshold=config.similarity_fail,
                )
            )
        elif result.similarity < config.similarity_pass:
            violations.append(
                RuleViolation(
                    rule="similarity",
                    severity=Severity.WARNING,
                    message=(
                        f"Similarity {result.similarity:.1f}% is below "
                        f"{config.similarity_pass:.1f}%"
                    ),
                    measured=result.similarity,
                    threshold=config.similarity_pass,
                )
            )

        if (
            config.position_threshold_px is not None
            and stats.max_position_shift_px > config.position_threshold_px
        ):
            violations.append(
                RuleViolation(
                    rule="position",
                    severity=Severity.FAILURE if config.position_strict else Severity.WARNING,
                    message=(
                        f"Element moved {stats.max_position_shift_px:.1f}px "
                        f"(limit {config.position_threshold_px:g}px)"
                    ),
                    measured=stats.max_position_shift_px,
                    threshold=config.position_threshold_px,
                )
            )

        if (
            config.size_threshold_px is not None
            and stats.max_size_change_px > config.size_threshold_px
        ):
            violations.append(
                RuleViolation(
                    rule="size",
                    severity=Severity.FAILURE,
                    message=(
                        f"Element resized by {stats.max_size_change_px:.1f}px "
                        f"(limit {config.size_threshold_px:g}px)"
                    ),
                    measured=stats.max_size_change_px,
                    threshold=config.size_threshold_px,
                )
            )
        elif (
            config.size_threshold_percent is not None
            and stats.max_size_change_percent > config.size_threshold_percent
        ):
            violations.append(
                RuleViolation(
                    rule="size_percent",
                    severity=Severity.WARNING,
                    message=(
                        f"Element resized by {stats.max_size_change_percent:.1f}% "
                        f"(limit {config.size_threshold_percent:g}%)"
                    ),
                    measured=stats.max_size_change_percent,
                    threshold=config.size_threshold_percent,
                )
            )

        for rule, measured, limit in (
            ("added", stats.added, config.max_added),
            ("removed", stats.removed, config.max_removed),
            ("modified", stats.modified, config.max_modified),
        ):
            if limit is not None and measured > limit:
                violations.append(
                    RuleViolation(
                        rule=rule,
                        severity=Severity.FAILURE,
                        message=f"{measured} elements {rule} (limit {limit})",
                        measured=float(measured),
                        threshold=float(limit),
                    )
                )

        verdict = max(
            (v.severity for v in violations),
            key=lambda severity: severity.rank,
            default=Severity.PASS,
        )
        if violations:
            logger.debug(
                f"Threshold '{config.name}': {verdict.value} "
                f"({', '.join(v.rule for v in violations)})"
            )
        return ThresholdEvaluation(
            verdict=verdict, violations=violations, preset=config.name
        )


@dataclass
class SettingsViolation:
    """A matched element whose change exceeds calibrated tolerances."""

    kind: str  # "position" or "size"
    severity: str  # "high" beyond 2x tolerance, else "low"
    value: float
    tolerance: float
    element: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def validate_with_settings(
    result: ComparisonResult, settings: ComparisonSettings
) -> list[SettingsViolation]:
    """
    Check every non-ignored match against calibrated tolerances.

    Args:
        result: ComparisonResult to check
        settings: Calibrated ComparisonSettings

    Returns:
        Violations, in match order
    """
    violations: list[SettingsViolation] = []

    def severity(value: float, tolerance: float) -> str:
        return "high" if value > 2 * tolerance else "low"

    for match in result.iter_matches():
        if match.ignored:
            continue
        element = getattr(match.a, "tag_name", None) or getattr(match.a, "type", "")
        shift = match.differences.position_shift
        if shift > settings.position_tolerance_px:
            violations.append(
                SettingsViolation(
                    kind="position",
                    severity=severity(shift, settings.position_tolerance_px),
                    value=shift,
                    tolerance=settings.position_tolerance_px,
                    element=element,
                )
            )
        size = match.differences.size_change_percent
        if size > settings.size_tolerance_percent:
            violations.append(
                SettingsViolation(
                    kind="size",
                    severity=severity(size, settings.size_tolerance_percent),
                    value=size,
                    tolerance=settings.size_tolerance_percent,
                    element=element,
                )
            )
    return violations


__all__ = [
    "Severity",
    "ThresholdConfig",
    "THRESHOLD_PRESETS",
    "get_preset",
    "merge_thresholds",
    "RuleViolation",
    "ThresholdEvaluation",
    "ThresholdEvaluator",
    "SettingsViolation",
    "validate_with_settings",
]
