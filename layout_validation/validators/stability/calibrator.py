#!/usr/bin/env python3
"""
Adaptive Calibrator - learns comparison tolerances from repeated captures.

Sequential sampling with early stop:
1. COLLECTING - capture until min_iterations samples exist
2. EVALUATING - after every new sample, re-run the flakiness detector and
   apply the stopping rule (see termination.py)
3. CONVERGED / MAXED_OUT - derive ComparisonSettings from the observed
   variation and report a confidence estimate

The state is an immutable CalibratorState rebuilt on every step, so one
calibrator run never shares mutable data with another; independent runs
(one per URL/viewport) can be awaited concurrently.

Capture is the only fallible step. A failed or timed-out capture does not
advance the iteration count and is retried up to ``capture_retries`` times
in a row. Exhausting retries before min_iterations raises
CalibrationIncomplete; afterwards the run finishes with what it has.
Async captures are cancelled on timeout; sync captures are signalled and
awaited, so two captures never run at once.
"""

import asyncio
import inspect
import logging
import math
import threading
import warnings
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Union

from layout_validation.errors import (
    CalibrationIncomplete,
    InvalidGeometry,
    LowConfidenceCalibration,
)
from layout_validation.integrations.metrics import push_calibration_metrics
from layout_validation.integrations.sentry_context import (
    capture_calibration_failure,
    inject_calibration_context,
)
from layout_validation.models import ComparisonSettings, LayoutSnapshot

from .flakiness import FlakinessAnalysis, FlakinessDetector, NodeVariation
from .termination import CalibrationPhase, ConvergenceDecision, ConvergenceEvaluator

logger = logging.getLogger(__name__)

CaptureFunction = Callable[[], Union[LayoutSnapshot, dict, Awaitable[Any]]]

STRICTNESS_MULTIPLIERS = {
    "low": 1.5,
    "medium": 1.0,
    "high": 0.7,
}


@dataclass
class CalibrationConfig:
    """Configuration for AdaptiveCalibrator."""

    min_iterations: int = 3
    max_iterations: int = 10
    target_stability: float = 95.0
    early_stop_threshold: float = 98.0
    early_stop_confidence: float = 0.8
    target_confidence: float = 0.6
    dynamic_threshold: float = 0.5  # nodes scoring below are ignored
    confidence_floor: float = 0.6  # below: LowConfidenceCalibration
    capture_timeout: float | None = 30.0  # seconds, None disables
    capture_retries: int = 2
    tolerance_margin: float = 1.5
    strictness: str = "medium"  # "low", "medium", "high"
    stable_drift_px: float = 2.0
    position_scale_px: float = 50.0
    unstable_threshold: float = 0.95
    text_similarity_threshold: float = 0.8
    importance_threshold: float = 0.0

    def __post_init__(self):
        if self.strictness not in STRICTNESS_MULTIPLIERS:
            raise ValueError(
                f"strictness must be one of {sorted(STRICTNESS_MULTIPLIERS)}"
            )
        if self.dynamic_threshold < 0.0 or self.dynamic_threshold > 1.0:
            raise ValueError("dynamic_threshold must be between 0.0 and 1.0")
        if self.confidence_floor < 0.0 or self.confidence_floor > 1.0:
            raise ValueError("confidence_floor must be between 0.0 and 1.0")
        if self.capture_retries < 0:
            raise ValueError("capture_retries must be non-negative")
        if self.capture_timeout is not None and self.capture_timeout <= 0:
            raise ValueError("capture_timeout must be positive")
        if self.tolerance_margin < 1.0:
            raise ValueError("tolerance_margin must be at least 1.0")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CalibrationConfig":
        known = {name for name in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown calibration options: {sorted(unknown)}")
        return cls(**data)


@dataclass
class CalibrationProgress:
    """One evaluated iteration."""

    iteration: int
    stability: float
    unstable_count: int
    total_nodes: int
    confidence: float
    should_continue: bool
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "stability": self.stability,
            "unstableNodeCount": self.unstable_count,
            "totalNodeCount": self.total_nodes,
            "confidence": self.confidence,
            "shouldContinue": self.should_continue,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class CalibratorState:
    """Immutable calibration state; every step returns a new one."""

    iteration: int = 0
    phase: CalibrationPhase = CalibrationPhase.COLLECTING
    reason: str = "collecting"
    samples: tuple[LayoutSnapshot, ...] = ()
    stability_history: tuple[float, ...] = ()
    confidence: float = 0.0
    failures: tuple[BaseException, ...] = ()
    consecutive_failures: int = 0
    analysis: FlakinessAnalysis | None = None
    progress: tuple[CalibrationProgress, ...] = ()


@dataclass
class CalibrationResult:
    """Terminal artifact of a calibration run."""

    settings: ComparisonSettings
    confidence: float
    overall_stability_score: float
    unstable_nodes: list[NodeVariation] = field(default_factory=list)
    iterations_used: int = 0
    phase: CalibrationPhase = CalibrationPhase.CONVERGED
    reason: str = ""
    stability_history: list[float] = field(default_factory=list)
    failed_captures: int = 0
    low_confidence: bool = False
    progress: list[CalibrationProgress] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.phase == CalibrationPhase.CONVERGED

    def to_dict(self) -> dict[str, Any]:
        return {
            "settings": self.settings.to_dict(),
            "confidence": self.confidence,
            "overallStabilityScore": self.overall_stability_score,
            "unstableNodes": [node.to_dict() for node in self.unstable_nodes],
            "iterationsUsed": self.iterations_used,
            "phase": self.phase.value,
            "reason": self.reason,
            "stabilityHistory": list(self.stability_history),
            "failedCaptures": self.failed_captures,
            "lowConfidence": self.low_confidence,
            "progress": [entry.to_dict() for entry in self.progress],
        }


class AdaptiveCalibrator:
    """
    Captures snapshots until stability estimates converge.

    Usage:
        async def capture():
            return await extract_layout(page)  # -> LayoutSnapshot

        calibrator = AdaptiveCalibrator(capture, CalibrationConfig(max_iterations=8))
        result = await calibrator.run()
        print(f"Confidence: {result.confidence:.1%}")
        print(f"Ignore: {result.settings.ignore_selectors}")
    """

    def __init__(
        self,
        capture: CaptureFunction,
        config: CalibrationConfig | dict | None = None,
        project: str | None = None,
    ):
        """
        Initialize calibrator.

        Args:
            capture: Callable returning a LayoutSnapshot (or its JSON dict);
                may be async, or sync (run in an executor). A sync capture
                that takes a ``cancel_event`` keyword receives a
                threading.Event set when its attempt times out
            config: CalibrationConfig or dict of its fields
            project: Project label; when set, metrics are pushed after a run
        """
        if config is None:
            self.config = CalibrationConfig()
        elif isinstance(config, dict):
            self.config = CalibrationConfig.from_dict(config)
        else:
            self.config = config

        self.capture = capture
        self.project = project
        self.detector = FlakinessDetector(
            stable_drift_px=self.config.stable_drift_px,
            position_scale_px=self.config.position_scale_px,
            unstable_threshold=self.config.unstable_threshold,
        )
        self.evaluator = ConvergenceEvaluator(
            min_iterations=self.config.min_iterations,
            max_iterations=self.config.max_iterations,
            target_stability=self.config.target_stability,
            early_stop_threshold=self.config.early_stop_threshold,
            early_stop_confidence=self.config.early_stop_confidence,
            target_confidence=self.config.target_confidence,
        )

    def _accepts_cancel_event(self) -> bool:
        try:
            return "cancel_event" in inspect.signature(self.capture).parameters
        except (TypeError, ValueError):
            return False

    async def _capture_in_thread(self) -> Any:
        """
        Run a sync capture in the default executor.

        A thread cannot be interrupted, so on timeout the capture is asked to
        stop through ``cancel_event`` (passed when its signature accepts it)
        and the worker is awaited before the timeout propagates. Retries
        therefore never overlap a capture that is still running.
        """
        loop = asyncio.get_running_loop()
        cancel_event = threading.Event()
        if self._accepts_cancel_event():
            worker = loop.run_in_executor(
                None, lambda: self.capture(cancel_event=cancel_event)
            )
        else:
            worker = loop.run_in_executor(None, self.capture)

        try:
            return await asyncio.wait_for(
                asyncio.shield(worker), self.config.capture_timeout
            )
        except asyncio.TimeoutError:
            cancel_event.set()
            logger.warning(
                f"Capture timed out after {self.config.capture_timeout}s; "
                f"waiting for the capture thread to stop"
            )
            try:
                await worker
            except Exception as e:
                logger.debug(f"Timed-out capture ended with {e!r}")
            raise
        except asyncio.CancelledError:
            cancel_event.set()
            raise

    async def capture_sample(self) -> LayoutSnapshot:
        """Invoke the capture function once, honoring the timeout."""
        if inspect.iscoroutinefunction(self.capture) or inspect.iscoroutinefunction(
            getattr(self.capture, "__call__", None)
        ):
            snapshot = await asyncio.wait_for(self.capture(), self.config.capture_timeout)
        else:
            snapshot = await self._capture_in_thread()

        if inspect.isawaitable(snapshot):
            snapshot = await snapshot
        if isinstance(snapshot, dict):
            snapshot = LayoutSnapshot.from_dict(snapshot)
        if not isinstance(snapshot, LayoutSnapshot):
            raise TypeError(
                f"capture returned {type(snapshot).__name__}, expected LayoutSnapshot"
            )
        return snapshot

    async def run_iteration(
        self, state: CalibratorState
    ) -> tuple[CalibratorState, ConvergenceDecision]:
        """
        Take one sample and advance the state machine.

        Args:
            state: Current calibrator state

        Returns:
            Tuple of (new state, decision for this step)
        """
        try:
            snapshot = await self.capture_sample()
        except InvalidGeometry:
            raise
        except Exception as e:
            return self._on_capture_failure(state, e)

        iteration = state.iteration + 1
        samples = state.samples + (snapshot,)

        if iteration < self.config.min_iterations:
            decision = self.evaluator.evaluate(iteration, 0.0, 0.0)
            logger.debug(
                f"Calibration sample {iteration}/{self.config.min_iterations} collected"
            )
            return (
                replace(
                    state,
                    iteration=iteration,
                    samples=samples,
                    phase=decision.phase,
                    reason=decision.reason,
                    consecutive_failures=0,
                ),
                decision,
            )

        analysis = self.detector.analyze(samples)
        history = state.stability_history + (analysis.overall_stability_score,)
        confidence = self.evaluator.confidence(iteration, list(history))
        decision = self.evaluator.evaluate(
            iteration, analysis.overall_stability_score, confidence, list(history)
        )
        progress = CalibrationProgress(
            iteration=iteration,
            stability=analysis.overall_stability_score,
            unstable_count=len(analysis.unstable_nodes),
            total_nodes=len(analysis.nodes),
            confidence=confidence,
            should_continue=not decision.should_stop,
            reason=decision.reason,
        )
        logger.debug(
            f"Calibration iteration {iteration}: stability "
            f"{analysis.overall_stability_score:.1f}%, confidence {confidence:.2f}, "
            f"{decision.reason}"
        )

        new_state = replace(
            state,
            iteration=iteration,
            samples=samples,
            phase=decision.phase,
            reason=decision.reason,
            stability_history=history,
            confidence=confidence,
            consecutive_failures=0,
            analysis=analysis,
            progress=state.progress + (progress,),
        )
        return new_state, decision

    def _on_capture_failure(
        self, state: CalibratorState, error: Exception
    ) -> tuple[CalibratorState, ConvergenceDecision]:
        consecutive = state.consecutive_failures + 1
        failures = state.failures + (error,)
        logger.warning(
            f"Capture failed (attempt {consecutive} of "
            f"{self.config.capture_retries + 1}): {error!r}"
        )
        state = replace(state, failures=failures, consecutive_failures=consecutive)

        if consecutive <= self.config.capture_retries:
            return state, ConvergenceDecision(
                should_stop=False,
                reason="capture_retry",
                phase=state.phase,
                stability=state.stability_history[-1] if state.stability_history else 0.0,
                confidence=state.confidence,
                iteration=state.iteration,
                history=list(state.stability_history),
            )

        if state.iteration < self.config.min_iterations:
            exc = CalibrationIncomplete(
                f"Capture failed {consecutive} times in a row after "
                f"{state.iteration} of {self.config.min_iterations} required samples",
                successful_samples=state.iteration,
                required_samples=self.config.min_iterations,
                failures=list(failures),
            )
            capture_calibration_failure(exc, state.iteration, len(failures))
            raise exc from error

        decision = ConvergenceDecision(
            should_stop=True,
            reason="capture_failed",
            phase=CalibrationPhase.MAXED_OUT,
            stability=state.stability_history[-1] if state.stability_history else 0.0,
            confidence=state.confidence,
            iteration=state.iteration,
            history=list(state.stability_history),
        )
        return replace(state, phase=decision.phase, reason=decision.reason), decision

    async def run(self, initial_state: CalibratorState | None = None) -> CalibrationResult:
        """
        Run calibration until convergence or the iteration budget is spent.

        Args:
            initial_state: Optional state to resume from

        Returns:
            CalibrationResult with derived settings

        Raises:
            CalibrationIncomplete: capture kept failing before min_iterations
        """
        state = initial_state or CalibratorState()
        logger.info(
            f"Calibration started (min {self.config.min_iterations}, "
            f"max {self.config.max_iterations} iterations)"
        )

        while not state.phase.is_terminal:
            state, _ = await self.run_iteration(state)

        result = self.build_result(state)
        logger.info(
            f"Calibration {result.phase.value} after {result.iterations_used} "
            f"iterations ({result.reason}): stability "
            f"{result.overall_stability_score:.1f}%, confidence {result.confidence:.2f}"
        )

        inject_calibration_context(result)
        if self.project:
            push_calibration_metrics(result, self.project)
        return result

    def build_result(self, state: CalibratorState) -> CalibrationResult:
        """Derive ComparisonSettings from the final state."""
        if state.analysis is None or state.iteration < self.config.min_iterations:
            raise CalibrationIncomplete(
                f"Only {state.iteration} of {self.config.min_iterations} samples collected",
                successful_samples=state.iteration,
                required_samples=self.config.min_iterations,
                failures=list(state.failures),
            )

        analysis = state.analysis
        dynamic = [
            n for n in analysis.nodes if n.stability_score < self.config.dynamic_threshold
        ]
        ignore_selectors: list[str] = []
        for node in dynamic:
            if node.suggested_selector not in ignore_selectors:
                ignore_selectors.append(node.suggested_selector)

        retained = [
            n
            for n in analysis.nodes
            if n.stability_score >= self.config.dynamic_threshold and n.appearances >= 2
        ]
        max_drift = max((n.position_drift for n in retained), default=0.0)
        max_size_change = max((n.size_change_percent for n in retained), default=0.0)
        scale = self.config.tolerance_margin * STRICTNESS_MULTIPLIERS[self.config.strictness]

        settings = ComparisonSettings(
            position_tolerance_px=float(math.ceil(max_drift * scale)),
            size_tolerance_percent=round(max_size_change * scale, 2),
            text_similarity_threshold=self.config.text_similarity_threshold,
            importance_threshold=self.config.importance_threshold,
            ignore_selectors=tuple(ignore_selectors),
        )

        low_confidence = state.confidence < self.config.confidence_floor
        if low_confidence:
            message = (
                f"Calibration confidence {state.confidence:.2f} is below "
                f"{self.config.confidence_floor:.2f}; treat derived settings with caution"
            )
            logger.warning(message)
            warnings.warn(message, LowConfidenceCalibration, stacklevel=2)

        return CalibrationResult(
            settings=settings,
            confidence=state.confidence,
            overall_stability_score=analysis.overall_stability_score,
            unstable_nodes=list(analysis.unstable_nodes),
            iterations_used=state.iteration,
            phase=state.phase,
            reason=state.reason,
            stability_history=list(state.stability_history),
            failed_captures=len(state.failures),
            low_confidence=low_confidence,
            progress=list(state.progress),
        )


__all__ = [
    "STRICTNESS_MULTIPLIERS",
    "CaptureFunction",
    "CalibrationConfig",
    "CalibrationProgress",
    "CalibratorState",
    "CalibrationResult",
    "AdaptiveCalibrator",
]
