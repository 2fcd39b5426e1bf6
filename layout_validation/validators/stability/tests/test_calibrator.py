#!/usr/bin/env python3
"""Tests for calibrator.py - adaptive calibration with early stop."""

import asyncio
import itertools
import threading
import time
import warnings
from unittest.mock import patch

import pytest

from layout_validation.errors import (
    CalibrationIncomplete,
    InvalidGeometry,
    LowConfidenceCalibration,
)
from layout_validation.models import LayoutSnapshot, Rect, Viewport, VisualNode
from layout_validation.validators.stability.calibrator import (
    AdaptiveCalibrator,
    CalibrationConfig,
    CalibratorState,
)
from layout_validation.validators.stability.termination import CalibrationPhase

VIEWPORT = Viewport(1280, 720)


def page(jitter: float = 0.0, banner_text: str | None = None) -> LayoutSnapshot:
    nodes = [
        VisualNode("h1", Rect(0, 0, 300, 50), text="Products"),
        VisualNode("nav", Rect(0, 60, 1280, 60), class_names=("main-nav",)),
        VisualNode("button", Rect(500 + jitter, 300, 100, 40), text="Add to cart", element_id="add"),
    ]
    if banner_text is not None:
        nodes.append(
            VisualNode("div", Rect(0, 600, 728, 90), class_names=("ad-banner",), text=banner_text)
        )
    return LayoutSnapshot(viewport=VIEWPORT, elements=tuple(nodes))


def cycling(snapshots):
    """Sync capture function returning the given snapshots in a loop."""
    source = itertools.cycle(snapshots)
    return lambda: next(source)


class FlakyCapture:
    """Capture that fails on the given call numbers (1-based)."""

    def __init__(self, failing_calls, snapshot=None, fail_after: int | None = None):
        self.failing_calls = set(failing_calls)
        self.fail_after = fail_after
        self.snapshot = snapshot or page()
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls in self.failing_calls:
            raise RuntimeError(f"browser crashed on call {self.calls}")
        if self.fail_after is not None and self.calls > self.fail_after:
            raise RuntimeError("page unreachable")
        return self.snapshot


class BlockingCapture:
    """Sync capture that blocks and records how many calls overlap."""

    def __init__(self, duration: float):
        self.duration = duration
        self.lock = threading.Lock()
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.finished = 0

    def _enter(self):
        with self.lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def _exit(self):
        with self.lock:
            self.active -= 1
            self.finished += 1

    def __call__(self):
        self._enter()
        try:
            time.sleep(self.duration)
            return page()
        finally:
            self._exit()


class CooperativeCapture(BlockingCapture):
    """Sync capture that stops early when its cancel event is set."""

    def __init__(self, duration: float):
        super().__init__(duration)
        self.cancelled = 0

    def __call__(self, cancel_event):
        self._enter()
        try:
            if cancel_event.wait(self.duration):
                with self.lock:
                    self.cancelled += 1
                raise RuntimeError("capture cancelled")
            return page()
        finally:
            self._exit()


class TestCalibrationConfig:
    """Tests for CalibrationConfig."""

    def test_defaults(self):
        """Test default sampling budget."""
        config = CalibrationConfig()
        assert config.min_iterations == 3
        assert config.max_iterations == 10
        assert config.strictness == "medium"

    def test_from_dict_rejects_unknown(self):
        """Test unknown keys are rejected."""
        with pytest.raises(ValueError, match="Unknown calibration options"):
            CalibrationConfig.from_dict({"min_iterations": 3, "max_samples": 9})

    def test_invalid_strictness(self):
        """Test strictness must be a known level."""
        with pytest.raises(ValueError, match="strictness"):
            CalibrationConfig(strictness="extreme")

    def test_invalid_budget_rejected_by_calibrator(self):
        """Test max_iterations must exceed min_iterations."""
        with pytest.raises(ValueError, match="max_iterations"):
            AdaptiveCalibrator(cycling([page()]), {"min_iterations": 4, "max_iterations": 4})


class TestAdaptiveCalibrator:
    """Tests for AdaptiveCalibrator.run()."""

    @pytest.mark.asyncio
    async def test_stable_page_stops_early(self):
        """Test identical samples converge by early stop."""
        calibrator = AdaptiveCalibrator(cycling([page()]), {"min_iterations": 3})

        result = await calibrator.run()

        assert result.phase == CalibrationPhase.CONVERGED
        assert result.converged is True
        assert result.reason == "early_stop"
        assert result.iterations_used == 4
        assert result.confidence == pytest.approx(0.875)
        assert result.overall_stability_score == 100.0
        assert result.settings.ignore_selectors == ()
        assert result.settings.position_tolerance_px == 0.0
        assert result.low_confidence is False
        assert [p.iteration for p in result.progress] == [3, 4]

    @pytest.mark.asyncio
    async def test_async_capture(self):
        """Test coroutine capture functions are awaited."""

        async def capture():
            await asyncio.sleep(0)
            return page()

        result = await AdaptiveCalibrator(capture).run()
        assert result.converged

    @pytest.mark.asyncio
    async def test_dict_capture(self):
        """Test captures returning JSON dicts are decoded."""
        data = page().to_dict()
        result = await AdaptiveCalibrator(lambda: data).run()
        assert result.overall_stability_score == 100.0

    @pytest.mark.asyncio
    async def test_ad_banner_is_ignored(self):
        """Test a banner with changing text lands in the ignore list."""
        samples = [page(banner_text=f"Deal of the day #{i}") for i in range(5)]
        calibrator = AdaptiveCalibrator(
            cycling(samples), {"min_iterations": 3, "max_iterations": 6}
        )

        result = await calibrator.run()

        assert result.phase == CalibrationPhase.MAXED_OUT
        assert result.reason == "max_iterations"
        assert result.iterations_used == 5
        assert result.overall_stability_score == pytest.approx(75.0)
        assert result.settings.ignore_selectors == (".ad-banner",)
        banner = next(n for n in result.unstable_nodes if n.suggested_selector == ".ad-banner")
        assert banner.variation_type == "text"
        assert banner.stability_score == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_tolerances_from_observed_drift(self):
        """Test tolerances scale the observed drift by margin and strictness."""
        samples = [page(jitter=j) for j in (0, 4)]

        medium = await AdaptiveCalibrator(
            cycling(samples), {"min_iterations": 3, "max_iterations": 5}
        ).run()
        high = await AdaptiveCalibrator(
            cycling(samples), {"min_iterations": 3, "max_iterations": 5, "strictness": "high"}
        ).run()

        assert medium.settings.position_tolerance_px == 6.0  # ceil(4 * 1.5)
        assert high.settings.position_tolerance_px == 5.0  # ceil(4 * 1.5 * 0.7)
        assert medium.settings.size_tolerance_percent == 0.0
        assert medium.settings.ignore_selectors == ()

    @pytest.mark.asyncio
    async def test_capture_never_succeeds(self):
        """Test exhausting retries before min_iterations raises."""
        capture = FlakyCapture(failing_calls=range(1, 100))
        calibrator = AdaptiveCalibrator(capture, {"capture_retries": 2})

        with pytest.raises(CalibrationIncomplete) as exc_info:
            await calibrator.run()

        assert exc_info.value.successful_samples == 0
        assert exc_info.value.required_samples == 3
        assert len(exc_info.value.failures) == 3
        assert capture.calls == 3

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        """Test a failed capture does not advance the iteration count."""
        capture = FlakyCapture(failing_calls=[2])

        result = await AdaptiveCalibrator(capture, {"capture_retries": 1}).run()

        assert result.iterations_used == 4
        assert result.failed_captures == 1
        assert capture.calls == 5

    @pytest.mark.asyncio
    async def test_failures_after_min_iterations_finish_run(self):
        """Test capture exhaustion after min_iterations returns a result."""
        capture = FlakyCapture(failing_calls=[], fail_after=3)

        result = await AdaptiveCalibrator(capture, {"capture_retries": 1}).run()

        assert result.phase == CalibrationPhase.MAXED_OUT
        assert result.reason == "capture_failed"
        assert result.iterations_used == 3
        assert result.failed_captures == 2

    @pytest.mark.asyncio
    async def test_capture_timeout(self):
        """Test a hanging capture times out and counts as a failure."""

        async def hanging():
            await asyncio.sleep(5)
            return page()

        calibrator = AdaptiveCalibrator(
            hanging, {"capture_timeout": 0.01, "capture_retries": 0}
        )

        with pytest.raises(CalibrationIncomplete) as exc_info:
            await calibrator.run()

        assert isinstance(exc_info.value.failures[0], asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_sync_capture_timeout_signals_cancel_event(self):
        """Test a timed-out sync capture is told to stop before the retry."""
        capture = CooperativeCapture(duration=5.0)
        calibrator = AdaptiveCalibrator(
            capture, {"capture_timeout": 0.05, "capture_retries": 2}
        )

        with pytest.raises(CalibrationIncomplete) as exc_info:
            await calibrator.run()

        assert capture.calls == 3
        assert capture.cancelled == 3
        assert capture.finished == 3
        assert capture.max_active == 1
        assert all(isinstance(f, asyncio.TimeoutError) for f in exc_info.value.failures)

    @pytest.mark.asyncio
    async def test_sync_capture_timeout_never_overlaps(self):
        """Test retries wait for a blocking capture thread to return."""
        capture = BlockingCapture(duration=0.2)
        calibrator = AdaptiveCalibrator(
            capture, {"capture_timeout": 0.05, "capture_retries": 1}
        )

        with pytest.raises(CalibrationIncomplete):
            await calibrator.run()

        assert capture.calls == 2
        assert capture.finished == 2
        assert capture.max_active == 1

    @pytest.mark.asyncio
    async def test_invalid_geometry_propagates(self):
        """Test malformed snapshots are not retried."""
        bad = {
            "viewport": {"width": 1280, "height": 720},
            "elements": [{"tagName": "div", "rect": {"x": 0, "y": 0, "width": -5, "height": 10}}],
        }

        with pytest.raises(InvalidGeometry):
            await AdaptiveCalibrator(lambda: bad).run()

    @pytest.mark.asyncio
    async def test_low_confidence_warns(self):
        """Test results below the confidence floor carry a warning."""
        calibrator = AdaptiveCalibrator(cycling([page()]), {"confidence_floor": 0.9})

        with pytest.warns(LowConfidenceCalibration):
            result = await calibrator.run()

        assert result.low_confidence is True

    @pytest.mark.asyncio
    async def test_no_warning_above_floor(self):
        """Test confident results do not warn."""
        with warnings.catch_warnings():
            warnings.simplefilter("error", LowConfidenceCalibration)
            result = await AdaptiveCalibrator(cycling([page()])).run()
        assert result.low_confidence is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("min_iterations,max_iterations", [(2, 3), (3, 6), (4, 12)])
    async def test_convergence_floor(self, min_iterations, max_iterations):
        """Test iterations used never fall below min_iterations."""
        samples = [page(jitter=j, banner_text=str(j)) for j in (0, 3, 9)]
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", LowConfidenceCalibration)
            result = await AdaptiveCalibrator(
                cycling(samples),
                {"min_iterations": min_iterations, "max_iterations": max_iterations},
            ).run()

        assert min_iterations <= result.iterations_used <= max_iterations

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_independent(self):
        """Test two calibrations awaited together do not share samples."""
        stable = AdaptiveCalibrator(cycling([page()]))
        noisy = AdaptiveCalibrator(
            cycling([page(banner_text=str(i)) for i in range(5)]),
            {"min_iterations": 3, "max_iterations": 6},
        )

        stable_result, noisy_result = await asyncio.gather(stable.run(), noisy.run())

        assert stable_result.settings.ignore_selectors == ()
        assert noisy_result.settings.ignore_selectors == (".ad-banner",)

    @pytest.mark.asyncio
    async def test_resume_from_state(self):
        """Test run() continues from a given state."""
        calibrator = AdaptiveCalibrator(cycling([page()]))
        state = CalibratorState()
        state, decision = await calibrator.run_iteration(state)

        assert state.iteration == 1
        assert decision.reason == "collecting"

        result = await calibrator.run(state)
        assert result.iterations_used == 4

    @pytest.mark.asyncio
    async def test_pushes_metrics_when_project_set(self):
        """Test metrics are pushed for a named project."""
        with patch(
            "layout_validation.validators.stability.calibrator.push_calibration_metrics"
        ) as mock_push:
            result = await AdaptiveCalibrator(cycling([page()]), project="shop").run()

        mock_push.assert_called_once_with(result, "shop")

    @pytest.mark.asyncio
    async def test_result_serializes(self):
        """Test CalibrationResult.to_dict() field names."""
        result = await AdaptiveCalibrator(cycling([page()])).run()
        data = result.to_dict()
        assert data["phase"] == "converged"
        assert data["settings"]["ignoreSelectors"] == []
        assert data["progress"][-1]["shouldContinue"] is False
