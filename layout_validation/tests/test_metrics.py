#!/usr/bin/env python3
"""Unit tests for metrics.py - Prometheus Metrics Integration."""

from unittest.mock import MagicMock, patch

import pytest

from layout_validation.integrations import metrics
from layout_validation.integrations.metrics import (
    clear_metrics,
    get_registry,
    push_calibration_metrics,
    push_comparison_metrics,
)


def make_comparison(similarity=92.5, has_issues=False):
    result = MagicMock()
    result.mode = "tree"
    result.similarity = similarity
    result.has_issues = has_issues
    result.statistics = MagicMock(added=1, removed=2, moved=0, resized=0, modified=3)
    return result


def make_calibration(failed_captures=0):
    result = MagicMock()
    result.phase = MagicMock(value="converged")
    result.confidence = 0.875
    result.overall_stability_score = 99.0
    result.iterations_used = 4
    result.failed_captures = failed_captures
    return result


@pytest.fixture(autouse=True)
def fresh_registry():
    clear_metrics()
    yield
    clear_metrics()


class TestMetricsAvailability:
    """Tests for METRICS_AVAILABLE flag."""

    def test_metrics_available_with_prometheus(self):
        """Test METRICS_AVAILABLE is True when prometheus_client installed."""
        assert metrics.METRICS_AVAILABLE is True

    def test_returns_false_when_unavailable(self):
        """Test returns False when prometheus_client not available."""
        with patch("layout_validation.integrations.metrics.METRICS_AVAILABLE", False):
            assert push_comparison_metrics(make_comparison(), "shop") is False
            assert push_calibration_metrics(make_calibration(), "shop") is False
        assert get_registry() is None


class TestPushComparisonMetrics:
    """Tests for push_comparison_metrics() function."""

    def test_records_comparison(self):
        """Test counters, histogram and change gauges."""
        with patch("layout_validation.integrations.metrics.push_to_gateway") as mock_push:
            assert push_comparison_metrics(make_comparison(), "shop") is True

        mock_push.assert_called_once()
        assert mock_push.call_args.kwargs["grouping_key"] == {"project": "shop"}
        registry = get_registry()
        assert (
            registry.get_sample_value(
                "layout_comparisons_total",
                {"mode": "tree", "verdict": "pass", "project": "shop"},
            )
            == 1.0
        )
        assert registry.get_sample_value("layout_similarity_count", {"project": "shop"}) == 1.0
        assert (
            registry.get_sample_value("layout_changes_count", {"project": "shop", "kind": "modified"})
            == 3.0
        )

    def test_verdict_defaults_from_issues(self):
        """Test verdict label falls back to has_issues."""
        with patch("layout_validation.integrations.metrics.push_to_gateway"):
            push_comparison_metrics(make_comparison(has_issues=True), "shop")

        assert (
            get_registry().get_sample_value(
                "layout_comparisons_total",
                {"mode": "tree", "verdict": "failure", "project": "shop"},
            )
            == 1.0
        )

    def test_explicit_verdict(self):
        """Test explicit verdict label."""
        with patch("layout_validation.integrations.metrics.push_to_gateway"):
            push_comparison_metrics(make_comparison(), "shop", verdict="warning")

        assert (
            get_registry().get_sample_value(
                "layout_comparisons_total",
                {"mode": "tree", "verdict": "warning", "project": "shop"},
            )
            == 1.0
        )

    def test_push_failure_returns_false(self):
        """Test Pushgateway errors are logged, not raised."""
        with patch(
            "layout_validation.integrations.metrics.push_to_gateway",
            side_effect=OSError("connection refused"),
        ):
            assert push_comparison_metrics(make_comparison(), "shop") is False


class TestPushCalibrationMetrics:
    """Tests for push_calibration_metrics() function."""

    def test_records_calibration(self):
        """Test phase counter and last-run gauges."""
        with patch("layout_validation.integrations.metrics.push_to_gateway"):
            assert push_calibration_metrics(make_calibration(failed_captures=2), "shop") is True

        registry = get_registry()
        assert (
            registry.get_sample_value(
                "layout_calibration_runs_total", {"phase": "converged", "project": "shop"}
            )
            == 1.0
        )
        assert registry.get_sample_value("layout_calibration_confidence", {"project": "shop"}) == 0.875
        assert registry.get_sample_value("layout_calibration_iterations", {"project": "shop"}) == 4.0
        assert registry.get_sample_value("layout_capture_failures_total", {"project": "shop"}) == 2.0

    def test_no_failures_not_counted(self):
        """Test failure counter stays untouched for clean runs."""
        with patch("layout_validation.integrations.metrics.push_to_gateway"):
            push_calibration_metrics(make_calibration(), "shop")

        assert get_registry().get_sample_value("layout_capture_failures_total", {"project": "shop"}) is None


class TestClearMetrics:
    """Tests for clear_metrics() function."""

    def test_clear_resets_registry(self):
        """Test registry is dropped and recreated on next use."""
        with patch("layout_validation.integrations.metrics.push_to_gateway"):
            push_comparison_metrics(make_comparison(), "shop")
            first = get_registry()
            clear_metrics()
            assert get_registry() is None
            push_comparison_metrics(make_comparison(), "shop")

        assert get_registry() is not first
