#!/usr/bin/env python3
"""Tests for validator.py - LayoutValidator and compare_layouts()."""

from unittest.mock import patch

import pytest

from layout_validation.models import ComparisonSettings, LayoutSnapshot, Rect, Viewport, VisualNode
from layout_validation.validators.layout.validator import (
    LayoutConfig,
    LayoutValidator,
    ValidationTier,
    compare_layouts,
)


def snapshot_dict(button_x: float = 500, extra: int = 0) -> dict:
    elements = [
        {"tagName": "H1", "rect": {"x": 0, "y": 0, "width": 300, "height": 50}, "text": "Welcome"},
        {"tagName": "nav", "rect": {"x": 0, "y": 60, "width": 1280, "height": 60}},
        {
            "tagName": "button",
            "className": "btn primary",
            "rect": {"x": button_x, "y": 300, "width": 100, "height": 40},
            "text": "Sign up",
        },
    ]
    for i in range(extra):
        elements.append(
            {
                "tagName": "p",
                "rect": {"x": 0, "y": 400 + 30 * i, "width": 600, "height": 20},
                "text": f"Paragraph number {i}",
            }
        )
    return {"url": "https://example.test/", "viewport": {"width": 1280, "height": 720}, "elements": elements}


class TestCompareLayouts:
    """Tests for compare_layouts()."""

    def test_modes(self):
        """Test both comparators are reachable."""
        a = LayoutSnapshot.from_dict(snapshot_dict())
        assert compare_layouts(a, a, mode="tree").similarity == 100.0
        assert compare_layouts(a, a, mode="flat").similarity == 100.0

    def test_unknown_mode(self):
        """Test invalid mode is rejected."""
        a = LayoutSnapshot.from_dict(snapshot_dict())
        with pytest.raises(ValueError, match="mode"):
            compare_layouts(a, a, mode="pixel")


class TestLayoutValidator:
    """Tests for LayoutValidator.validate()."""

    def test_default_config(self):
        """Test defaults."""
        validator = LayoutValidator()
        assert validator.dimension == "layout"
        assert validator.tier == ValidationTier.MONITOR
        assert validator.config.mode == "tree"

    def test_config_from_dict(self):
        """Test dict config including nested settings."""
        validator = LayoutValidator(
            {"mode": "flat", "thresholds": "strict", "settings": {"positionTolerancePx": 2}}
        )
        assert validator.config.mode == "flat"
        assert validator.config.settings == ComparisonSettings(position_tolerance_px=2)
        assert validator.evaluator.config.name == "strict"

    def test_invalid_mode(self):
        """Test invalid mode fails at construction."""
        with pytest.raises(ValueError, match="mode"):
            LayoutValidator(LayoutConfig(mode="pixel"))

    @pytest.mark.asyncio
    async def test_configured_tier(self):
        """Test a configured tier is reported on results."""
        validator = LayoutValidator({"tier": 1})
        result = await validator.validate(snapshot_dict(), snapshot_dict())

        assert validator.tier == ValidationTier.BLOCKER
        assert result.tier == ValidationTier.BLOCKER

    def test_invalid_tier(self):
        """Test unknown tier numbers are rejected."""
        with pytest.raises(ValueError):
            LayoutValidator({"tier": 7})

    @pytest.mark.asyncio
    async def test_skips_without_snapshots(self):
        """Test missing input is a skipped pass with zero confidence."""
        result = await LayoutValidator().validate()
        assert result.passed is True
        assert result.confidence == 0.0
        assert "Skipped" in result.message

    @pytest.mark.asyncio
    async def test_identical_snapshots_pass(self):
        """Test identical dict snapshots pass with full confidence."""
        result = await LayoutValidator().validate(snapshot_dict(), snapshot_dict())

        assert result.passed is True
        assert result.confidence == 1.0
        assert result.message == "Layout match: 100.0% similarity"
        assert result.details["verdict"] == "pass"
        assert result.details["summary"][0] == "No layout changes"
        assert result.fix_suggestion is None

    @pytest.mark.asyncio
    async def test_added_elements_fail(self):
        """Test many added elements fail with a fix suggestion."""
        result = await LayoutValidator({"thresholds": "strict"}).validate(
            snapshot_dict(), snapshot_dict(extra=3)
        )

        assert result.passed is False
        assert "Layout mismatch" in result.message
        assert "verdict: failure" in result.message
        assert "3 elements added" in result.fix_suggestion
        assert any(v["rule"] == "added" for v in result.details["violations"])

    @pytest.mark.asyncio
    async def test_accepts_snapshot_objects(self):
        """Test LayoutSnapshot objects are accepted as-is."""
        node = VisualNode("div", Rect(0, 0, 10, 10))
        snapshot = LayoutSnapshot(viewport=Viewport(800, 600), elements=(node,))
        result = await LayoutValidator().validate(snapshot, snapshot)
        assert result.passed is True

    @pytest.mark.asyncio
    async def test_pushes_metrics_when_project_set(self):
        """Test metrics are pushed with the threshold verdict."""
        with patch(
            "layout_validation.validators.layout.validator.push_comparison_metrics"
        ) as mock_push:
            await LayoutValidator({"project": "shop"}).validate(snapshot_dict(), snapshot_dict())

        mock_push.assert_called_once()
        args, kwargs = mock_push.call_args
        assert args[1] == "shop"
        assert kwargs["verdict"] == "pass"

    @pytest.mark.asyncio
    async def test_no_metrics_without_project(self):
        """Test metrics are not pushed without a project."""
        with patch(
            "layout_validation.validators.layout.validator.push_comparison_metrics"
        ) as mock_push:
            await LayoutValidator().validate(snapshot_dict(), snapshot_dict())

        mock_push.assert_not_called()
