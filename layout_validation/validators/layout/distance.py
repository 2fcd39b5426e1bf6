#!/usr/bin/env python3
"""
Geometric distance and similarity primitives.

All functions are pure. Normalized results are in [0, 1] where 0 means
identical placement (distances) or no overlap (similarities such as IoU).
Rects are validated on construction, so nothing here raises for a ``Rect``.
"""

import math
from collections.abc import Iterable
from typing import Literal

from layout_validation.models import Point, Rect

SetMetric = Literal["jaccard", "dice"]

# Weights for weighted_layout_distance()
LAYOUT_POSITION_WEIGHT = 0.5
LAYOUT_SIZE_WEIGHT = 0.3
LAYOUT_ASPECT_WEIGHT = 0.2


def euclidean_distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def manhattan_distance(a: Point, b: Point) -> float:
    return abs(a.x - b.x) + abs(a.y - b.y)


def chebyshev_distance(a: Point, b: Point) -> float:
    return max(abs(a.x - b.x), abs(a.y - b.y))


def position_distance(a: Point, b: Point, bounds: Rect) -> float:
    """
    Displacement between two points, normalized to [0, 1] by a frame.

    Each axis is divided by the frame's extent on that axis, so the result is
    comparable across viewport sizes; the Euclidean norm of the normalized
    displacement is then divided by sqrt(2) (the frame's normalized diagonal).

    Args:
        a: First point (usually a rect center)
        b: Second point
        bounds: Frame to normalize against (viewport, parent bounds, ...)

    Returns:
        0.0 for identical points, 1.0 for opposite corners of the frame
    """
    width = bounds.width or 1.0
    height = bounds.height or 1.0
    dx = (a.x - b.x) / width
    dy = (a.y - b.y) / height
    return min(1.0, math.hypot(dx, dy) / math.sqrt(2))


def size_difference(a: Rect, b: Rect) -> float:
    """Mean per-axis relative size change; 0 when both sides are collapsed."""

    def axis(first: float, second: float) -> float:
        largest = max(first, second)
        if largest == 0:
            return 0.0
        return abs(first - second) / largest

    return (axis(a.width, b.width) + axis(a.height, b.height)) / 2


def aspect_ratio_difference(a: Rect, b: Rect) -> float:
    """1 - min/max of the two aspect ratios (zero heights treated as 1)."""
    ratio_a = a.width / (a.height or 1.0)
    ratio_b = b.width / (b.height or 1.0)
    largest = max(ratio_a, ratio_b)
    if largest == 0:
        return 0.0
    return 1.0 - min(ratio_a, ratio_b) / largest


def overlap_area(a: Rect, b: Rect) -> float:
    width = min(a.right, b.right) - max(a.x, b.x)
    height = min(a.bottom, b.bottom) - max(a.y, b.y)
    if width <= 0 or height <= 0:
        return 0.0
    return width * height


def intersection_over_union(a: Rect, b: Rect) -> float:
    """Standard IoU; 0 for disjoint rectangles or a zero-area side."""
    if a.area == 0 or b.area == 0:
        return 0.0
    intersection = overlap_area(a, b)
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def min_rect_distance(a: Rect, b: Rect) -> float:
    """Shortest gap between two rectangles (0 when they touch or overlap)."""
    dx = max(0.0, max(a.x, b.x) - min(a.right, b.right))
    dy = max(0.0, max(a.y, b.y) - min(a.bottom, b.bottom))
    return math.hypot(dx, dy)


def rect_contains_point(rect: Rect, point: Point) -> bool:
    return rect.x <= point.x <= rect.right and rect.y <= point.y <= rect.bottom


def rect_contains_rect(outer: Rect, inner: Rect) -> bool:
    return (
        outer.x <= inner.x
        and outer.y <= inner.y
        and inner.right <= outer.right
        and inner.bottom <= outer.bottom
    )


def bounding_box(rects: Iterable[Rect]) -> Rect | None:
    """Smallest rectangle enclosing all ``rects``; None for an empty input."""
    rects = list(rects)
    if not rects:
        return None
    left = min(r.x for r in rects)
    top = min(r.y for r in rects)
    right = max(r.right for r in rects)
    bottom = max(r.bottom for r in rects)
    return Rect(left, top, right - left, bottom - top)


def weighted_layout_distance(a: Rect, b: Rect, bounds: Rect) -> float:
    """Blend of position, size and aspect-ratio differences in [0, 1]."""
    return (
        LAYOUT_POSITION_WEIGHT * position_distance(a.center, b.center, bounds)
        + LAYOUT_SIZE_WEIGHT * size_difference(a, b)
        + LAYOUT_ASPECT_WEIGHT * aspect_ratio_difference(a, b)
    )


def set_similarity(
    a: Iterable[str], b: Iterable[str], metric: SetMetric = "jaccard"
) -> float:
    """
    Jaccard or Dice similarity of two string sets.

    Two empty sets have nothing to disagree on and score 1.0; an empty set
    against a non-empty one scores 0.0.
    """
    set_a = set(a)
    set_b = set(b)
    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0
    intersection = len(set_a & set_b)
    if metric == "jaccard":
        return intersection / len(set_a | set_b)
    if metric == "dice":
        return 2 * intersection / (len(set_a) + len(set_b))
    raise ValueError(f"Unknown set metric: {metric}")


__all__ = [
    "SetMetric",
    "euclidean_distance",
    "manhattan_distance",
    "chebyshev_distance",
    "position_distance",
    "size_difference",
    "aspect_ratio_difference",
    "overlap_area",
    "intersection_over_union",
    "min_rect_distance",
    "rect_contains_point",
    "rect_contains_rect",
    "bounding_box",
    "weighted_layout_distance",
    "set_similarity",
]
