#!/usr/bin/env python3
"""Unit tests for distance.py - geometric distance primitives."""

import math

import pytest

from layout_validation.models import Point, Rect
from layout_validation.validators.layout.distance import (
    aspect_ratio_difference,
    bounding_box,
    chebyshev_distance,
    euclidean_distance,
    intersection_over_union,
    manhattan_distance,
    min_rect_distance,
    overlap_area,
    position_distance,
    rect_contains_point,
    rect_contains_rect,
    set_similarity,
    size_difference,
    weighted_layout_distance,
)


class TestPointDistances:
    """Tests for point-to-point metrics."""

    def test_euclidean(self):
        """Test 3-4-5 triangle."""
        assert euclidean_distance(Point(0, 0), Point(3, 4)) == 5.0

    def test_manhattan(self):
        """Test sum of axis deltas."""
        assert manhattan_distance(Point(0, 0), Point(3, -4)) == 7.0

    def test_chebyshev(self):
        """Test max of axis deltas."""
        assert chebyshev_distance(Point(1, 1), Point(4, 9)) == 8.0


class TestPositionDistance:
    """Tests for position_distance()."""

    def test_identical_points(self):
        """Test same point is distance 0."""
        frame = Rect(0, 0, 100, 100)
        assert position_distance(Point(10, 10), Point(10, 10), frame) == 0.0

    def test_opposite_corners(self):
        """Test opposite frame corners are distance 1."""
        frame = Rect(0, 0, 200, 100)
        assert position_distance(Point(0, 0), Point(200, 100), frame) == pytest.approx(1.0)

    def test_normalized_per_axis(self):
        """Test a full-width horizontal move scores 1/sqrt(2)."""
        frame = Rect(0, 0, 400, 100)
        distance = position_distance(Point(0, 50), Point(400, 50), frame)
        assert distance == pytest.approx(1 / math.sqrt(2))

    def test_clamped_to_one(self):
        """Test moves beyond the frame stay at 1."""
        frame = Rect(0, 0, 10, 10)
        assert position_distance(Point(0, 0), Point(1000, 1000), frame) == 1.0

    def test_zero_sized_frame(self):
        """Test a collapsed frame does not divide by zero."""
        frame = Rect(5, 5, 0, 0)
        assert position_distance(Point(5, 5), Point(5, 5), frame) == 0.0


class TestSizeMetrics:
    """Tests for size and aspect-ratio differences."""

    def test_same_size(self):
        """Test identical sizes differ by 0."""
        assert size_difference(Rect(0, 0, 10, 20), Rect(50, 50, 10, 20)) == 0.0

    def test_double_width(self):
        """Test doubling width is 0.5 on one axis, 0.25 averaged."""
        assert size_difference(Rect(0, 0, 10, 20), Rect(0, 0, 20, 20)) == pytest.approx(0.25)

    def test_both_collapsed(self):
        """Test two zero-sized rects are equal in size."""
        assert size_difference(Rect(0, 0, 0, 0), Rect(1, 1, 0, 0)) == 0.0

    def test_aspect_ratio_same_shape(self):
        """Test scaled rects keep the same aspect ratio."""
        assert aspect_ratio_difference(Rect(0, 0, 10, 5), Rect(0, 0, 40, 20)) == 0.0

    def test_aspect_ratio_rotated(self):
        """Test 2:1 against 1:2 differs by 0.75."""
        assert aspect_ratio_difference(
            Rect(0, 0, 20, 10), Rect(0, 0, 10, 20)
        ) == pytest.approx(0.75)


class TestOverlap:
    """Tests for overlap, IoU and gaps."""

    def test_overlap_area(self):
        """Test partially overlapping rects."""
        assert overlap_area(Rect(0, 0, 10, 10), Rect(5, 5, 10, 10)) == 25.0

    def test_disjoint_overlap_is_zero(self):
        """Test disjoint rects do not overlap."""
        assert overlap_area(Rect(0, 0, 10, 10), Rect(20, 20, 5, 5)) == 0.0

    def test_iou_identical(self):
        """Test IoU of a rect with itself."""
        rect = Rect(3, 4, 10, 10)
        assert intersection_over_union(rect, rect) == 1.0

    def test_iou_partial(self):
        """Test IoU of two half-overlapping squares."""
        iou = intersection_over_union(Rect(0, 0, 10, 10), Rect(5, 5, 10, 10))
        assert iou == pytest.approx(25 / 175)

    def test_iou_zero_area(self):
        """Test zero-area side yields 0."""
        assert intersection_over_union(Rect(0, 0, 0, 10), Rect(0, 0, 10, 10)) == 0.0

    def test_min_rect_distance_gap(self):
        """Test gap between horizontally separated rects."""
        assert min_rect_distance(Rect(0, 0, 10, 10), Rect(15, 0, 10, 10)) == 5.0

    def test_min_rect_distance_overlap(self):
        """Test overlapping rects have no gap."""
        assert min_rect_distance(Rect(0, 0, 10, 10), Rect(5, 5, 10, 10)) == 0.0


class TestContainment:
    """Tests for containment helpers and bounding_box()."""

    def test_contains_point_on_edge(self):
        """Test edges are inclusive."""
        assert rect_contains_point(Rect(0, 0, 10, 10), Point(10, 10))

    def test_contains_rect(self):
        """Test nested rect containment."""
        assert rect_contains_rect(Rect(0, 0, 100, 100), Rect(10, 10, 20, 20))
        assert not rect_contains_rect(Rect(10, 10, 20, 20), Rect(0, 0, 100, 100))

    def test_bounding_box(self):
        """Test enclosing rect of two rects."""
        box = bounding_box([Rect(0, 0, 10, 10), Rect(20, 30, 5, 5)])
        assert box == Rect(0, 0, 25, 35)

    def test_bounding_box_negative_origin(self):
        """Test rects above/left of the page origin."""
        box = bounding_box([Rect(-10, -5, 10, 10), Rect(0, 0, 10, 10)])
        assert box == Rect(-10, -5, 20, 15)

    def test_bounding_box_empty(self):
        """Test empty input yields None."""
        assert bounding_box([]) is None


class TestWeightedLayoutDistance:
    """Tests for weighted_layout_distance()."""

    def test_identical(self):
        """Test identical rects are distance 0."""
        rect = Rect(10, 10, 50, 20)
        assert weighted_layout_distance(rect, rect, Rect(0, 0, 100, 100)) == 0.0

    def test_in_unit_range(self):
        """Test distance stays within [0, 1]."""
        distance = weighted_layout_distance(
            Rect(0, 0, 10, 100), Rect(90, 90, 100, 10), Rect(0, 0, 100, 100)
        )
        assert 0.0 < distance <= 1.0


class TestSetSimilarity:
    """Tests for set_similarity()."""

    def test_both_empty(self):
        """Test two empty sets are fully similar."""
        assert set_similarity([], []) == 1.0

    def test_one_empty(self):
        """Test empty against non-empty is 0."""
        assert set_similarity(["a"], []) == 0.0

    def test_jaccard(self):
        """Test Jaccard of {a,b} and {b,c}."""
        assert set_similarity(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)

    def test_dice(self):
        """Test Dice of {a,b} and {b,c}."""
        assert set_similarity(["a", "b"], ["b", "c"], metric="dice") == pytest.approx(0.5)

    def test_unknown_metric(self):
        """Test unknown metric raises ValueError."""
        with pytest.raises(ValueError, match="Unknown set metric"):
            set_similarity(["a"], ["a", "b"], metric="cosine")
