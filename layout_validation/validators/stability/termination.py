#!/usr/bin/env python3
"""
Convergence Evaluator - stopping rule for adaptive calibration.

Evaluated after every sample once ``iteration >= min_iterations``:
1. stability >= early_stop_threshold and confidence >= 0.8 -> "early_stop"
2. stability >= target_stability, confidence >= 0.6 and
   iteration >= min_iterations + 2                          -> "target_reached"
3. stability < 50 and iteration >= min_iterations + 5       -> "too_dynamic"
4. iteration >= max_iterations - 1                          -> "max_iterations"
Otherwise "continue". Conditions 1-3 converge; 4 maxes out.

Confidence grows with the sample count and with agreement between the
last few stability readings; oscillating stability keeps it low however
many samples were taken.
"""

from dataclasses import dataclass, field
from enum import Enum


class CalibrationPhase(Enum):
    """Calibration state machine phases."""

    COLLECTING = "collecting"  # fewer than min_iterations samples
    EVALUATING = "evaluating"  # stopping rule applied after each sample
    CONVERGED = "converged"
    MAXED_OUT = "maxed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (CalibrationPhase.CONVERGED, CalibrationPhase.MAXED_OUT)


@dataclass
class ConvergenceDecision:
    """Result of evaluating the stopping rule."""

    should_stop: bool
    reason: str  # "collecting", "early_stop", "target_reached", "too_dynamic", "max_iterations", "continue"
    phase: CalibrationPhase
    stability: float
    confidence: float
    iteration: int
    history: list[float] = field(default_factory=list)


class ConvergenceEvaluator:
    """
    Decides when calibration has seen enough samples.

    Usage:
        evaluator = ConvergenceEvaluator(min_iterations=3, max_iterations=10)

        # After each sample
        confidence = evaluator.confidence(iteration, stability_history)
        decision = evaluator.evaluate(iteration, stability_history[-1], confidence)
        if decision.should_stop:
            print(f"Stopping: {decision.reason}")
    """

    def __init__(
        self,
        min_iterations: int = 3,
        max_iterations: int = 10,
        target_stability: float = 95.0,
        early_stop_threshold: float = 98.0,
        early_stop_confidence: float = 0.8,
        target_confidence: float = 0.6,
        target_extra_iterations: int = 2,
        dynamic_stability_floor: float = 50.0,
        dynamic_extra_iterations: int = 5,
        confidence_window: int = 3,
        consistency_scale: float = 10.0,
    ):
        """
        Initialize evaluator.

        Args:
            min_iterations: Samples required before the rule is applied
            max_iterations: Hard cap (stops at max_iterations - 1)
            target_stability: Stability (0-100) considered adequate
            early_stop_threshold: Stability (0-100) that allows an early stop
            early_stop_confidence: Confidence required for an early stop
            target_confidence: Confidence required at target stability
            target_extra_iterations: Extra samples required at target stability
            dynamic_stability_floor: Below this the page is considered too dynamic
            dynamic_extra_iterations: Extra samples before giving up on a dynamic page
            confidence_window: Stability readings used for the consistency factor
            consistency_scale: Stability spread (points) that zeroes consistency
        """
        if min_iterations < 2:
            raise ValueError("min_iterations must be at least 2")
        if max_iterations <= min_iterations:
            raise ValueError("max_iterations must be greater than min_iterations")
        for name, value in (
            ("target_stability", target_stability),
            ("early_stop_threshold", early_stop_threshold),
            ("dynamic_stability_floor", dynamic_stability_floor),
        ):
            if value < 0.0 or value > 100.0:
                raise ValueError(f"{name} must be between 0 and 100")
        for name, value in (
            ("early_stop_confidence", early_stop_confidence),
            ("target_confidence", target_confidence),
        ):
            if value < 0.0 or value > 1.0:
                raise ValueError(f"{name} must be between 0.0 and 1.0")
        if confidence_window < 1:
            raise ValueError("confidence_window must be at least 1")
        if consistency_scale <= 0.0:
            raise ValueError("consistency_scale must be positive")

        self.min_iterations = min_iterations
        self.max_iterations = max_iterations
        self.target_stability = target_stability
        self.early_stop_threshold = early_stop_threshold
        self.early_stop_confidence = early_stop_confidence
        self.target_confidence = target_confidence
        self.target_extra_iterations = target_extra_iterations
        self.dynamic_stability_floor = dynamic_stability_floor
        self.dynamic_extra_iterations = dynamic_extra_iterations
        self.confidence_window = confidence_window
        self.consistency_scale = consistency_scale

    def confidence(self, iteration: int, stability_history: list[float]) -> float:
        """
        Confidence in the current stability estimate (0.0 to 1.0).

        sample_factor = 1 - 0.5 ** (iteration - 1)
        consistency   = 1 - spread(last window readings) / consistency_scale

        Always 0.0 before min_iterations samples.
        """
        if iteration < self.min_iterations or not stability_history:
            return 0.0
        sample_factor = 1.0 - 0.5 ** (iteration - 1)
        window = stability_history[-self.confidence_window :]
        spread = max(window) - min(window)
        consistency = max(0.0, 1.0 - spread / self.consistency_scale)
        return max(0.0, min(1.0, sample_factor * consistency))

    def evaluate(
        self,
        iteration: int,
        stability: float,
        confidence: float,
        history: list[float] | None = None,
    ) -> ConvergenceDecision:
        """
        Apply the stopping rule after a sample.

        Args:
            iteration: Number of successful samples so far
            stability: Current overall stability score (0-100)
            confidence: Current confidence (0.0 to 1.0)
            history: Stability readings so far (copied into the decision)

        Returns:
            ConvergenceDecision with should_stop, reason and next phase
        """
        confidence = max(0.0, min(1.0, confidence))

        def decision(should_stop: bool, reason: str, phase: CalibrationPhase):
            return ConvergenceDecision(
                should_stop=should_stop,
                reason=reason,
                phase=phase,
                stability=stability,
                confidence=confidence,
                iteration=iteration,
                history=list(history or []),
            )

        if iteration < self.min_iterations:
            return decision(False, "collecting", CalibrationPhase.COLLECTING)

        # Check 1: Strong signal
        if (
            stability >= self.early_stop_threshold
            and confidence >= self.early_stop_confidence
        ):
            return decision(True, "early_stop", CalibrationPhase.CONVERGED)

        # Check 2: Adequate signal with extra margin
        if (
            stability >= self.target_stability
            and confidence >= self.target_confidence
            and iteration >= self.min_iterations + self.target_extra_iterations
        ):
            return decision(True, "target_reached", CalibrationPhase.CONVERGED)

        # Check 3: Page too dynamic for more samples to help
        if (
            stability < self.dynamic_stability_floor
            and iteration >= self.min_iterations + self.dynamic_extra_iterations
        ):
            return decision(True, "too_dynamic", CalibrationPhase.CONVERGED)

        # Check 4: Out of budget
        if iteration >= self.max_iterations - 1:
            return decision(True, "max_iterations", CalibrationPhase.MAXED_OUT)

        return decision(False, "continue", CalibrationPhase.EVALUATING)


__all__ = ["CalibrationPhase", "ConvergenceDecision", "ConvergenceEvaluator"]
