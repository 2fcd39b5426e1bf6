#!/usr/bin/env python3
"""
Comparison results and scoring shared by the tree and flat comparators.

Similarity of a comparison:

    similarity = mean(match score) - 50 * unmatched / total_items

where every match at every depth contributes its score, ``unmatched``
counts every item (whole subtrees for unmatched groups) that found no
partner and ``total_items`` counts items on both sides. The penalty is
capped at 50 points so one added element on an otherwise identical page
cannot zero the score. With no matches the mean term is 100.

Neutralized items (matching an ignore selector, or below the importance
threshold) score 100 when matched and are left out of both counts when
unmatched, so applying an ignore list never lowers similarity.
"""

import logging
import math
import warnings
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from layout_validation.errors import DimensionMismatch
from layout_validation.models import (
    ComparisonSettings,
    LayoutSnapshot,
    VisualNode,
    VisualNodeGroup,
)
from layout_validation.selectors import matches_any

from .matcher import LayoutMatcher
from .text_distance import text_similarity

logger = logging.getLogger(__name__)

UNMATCHED_PENALTY_SCALE = 50.0
DEFAULT_SIMILARITY_THRESHOLD = 90.0


class MatchType(Enum):
    """How a matched pair differs."""

    IDENTICAL = "identical"
    MOVED = "moved"
    RESIZED = "resized"
    MODIFIED = "modified"


@dataclass(frozen=True)
class MatchDifferences:
    """Per-pair change breakdown (current minus baseline)."""

    dx: float = 0.0
    dy: float = 0.0
    dwidth: float = 0.0
    dheight: float = 0.0
    size_change_percent: float = 0.0
    text_before: str | None = None
    text_after: str | None = None
    text_similarity: float = 1.0
    classes_added: tuple[str, ...] = ()
    classes_removed: tuple[str, ...] = ()
    type_before: str | None = None
    type_after: str | None = None
    label_before: str | None = None
    label_after: str | None = None

    @property
    def position_shift(self) -> float:
        return math.hypot(self.dx, self.dy)

    @property
    def size_change(self) -> float:
        return max(abs(self.dwidth), abs(self.dheight))

    @property
    def text_changed(self) -> bool:
        return self.text_before != self.text_after

    @property
    def type_changed(self) -> bool:
        return self.type_before != self.type_after

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "positionDelta": {"x": self.dx, "y": self.dy},
            "sizeDelta": {"width": self.dwidth, "height": self.dheight},
            "sizeChangePercent": self.size_change_percent,
        }
        if self.text_changed:
            data["text"] = {
                "before": self.text_before,
                "after": self.text_after,
                "similarity": self.text_similarity,
            }
        if self.classes_added or self.classes_removed:
            data["classes"] = {
                "added": list(self.classes_added),
                "removed": list(self.classes_removed),
            }
        if self.type_changed:
            data["type"] = {"before": self.type_before, "after": self.type_after}
        if self.label_before != self.label_after:
            data["label"] = {"before": self.label_before, "after": self.label_after}
        return data


def _size_change_percent(before_w, before_h, after_w, after_h) -> float:
    def axis(before: float, after: float) -> float:
        largest = max(before, after)
        if largest == 0:
            return 0.0
        return abs(after - before) / largest * 100.0

    return max(axis(before_w, after_w), axis(before_h, after_h))


def describe_node_differences(a: VisualNode, b: VisualNode) -> MatchDifferences:
    return MatchDifferences(
        dx=b.rect.x - a.rect.x,
        dy=b.rect.y - a.rect.y,
        dwidth=b.rect.width - a.rect.width,
        dheight=b.rect.height - a.rect.height,
        size_change_percent=_size_change_percent(
            a.rect.width, a.rect.height, b.rect.width, b.rect.height
        ),
        text_before=a.text,
        text_after=b.text,
        text_similarity=text_similarity(a.text, b.text),
        classes_added=tuple(c for c in b.class_names if c not in a.class_names),
        classes_removed=tuple(c for c in a.class_names if c not in b.class_names),
        type_before=a.tag_name,
        type_after=b.tag_name,
    )


def describe_group_differences(a: Any, b: Any) -> MatchDifferences:
    return MatchDifferences(
        dx=b.bounds.x - a.bounds.x,
        dy=b.bounds.y - a.bounds.y,
        dwidth=b.bounds.width - a.bounds.width,
        dheight=b.bounds.height - a.bounds.height,
        size_change_percent=_size_change_percent(
            a.bounds.width, a.bounds.height, b.bounds.width, b.bounds.height
        ),
        text_similarity=text_similarity(a.label, b.label),
        type_before=a.type,
        type_after=b.type,
        label_before=a.label,
        label_after=b.label,
    )


def classify_match(
    differences: MatchDifferences, settings: ComparisonSettings
) -> MatchType:
    """
    Classify a pair using the comparison tolerances.

    Only position beyond tolerance -> moved; only size -> resized; any
    content change (text below threshold, classes, type, label) or a
    combination -> modified.
    """
    moved = differences.position_shift > settings.position_tolerance_px
    resized = differences.size_change_percent > settings.size_tolerance_percent
    modified = (
        differences.text_similarity < settings.text_similarity_threshold
        or bool(differences.classes_added or differences.classes_removed)
        or differences.type_changed
    )
    if modified or (moved and resized):
        return MatchType.MODIFIED
    if moved:
        return MatchType.MOVED
    if resized:
        return MatchType.RESIZED
    return MatchType.IDENTICAL


class IgnoreFilter:
    """Decides which items are neutralized during scoring."""

    def __init__(self, settings: ComparisonSettings):
        self.selectors = settings.ignore_selectors
        self.importance_threshold = settings.importance_threshold

    def __call__(self, item: Any) -> bool:
        if item.importance < self.importance_threshold:
            return True
        if isinstance(item, VisualNode) and self.selectors:
            return matches_any(item, self.selectors)
        return False


def _summarize_group(group: Any) -> dict[str, Any]:
    if isinstance(group, VisualNodeGroup):
        return {
            "type": group.type,
            "label": group.label,
            "bounds": group.bounds.to_dict(),
            "importance": group.importance,
            "childCount": len(group.children),
        }
    return group.to_dict()


@dataclass(frozen=True)
class NodeMatch:
    """A matched pair of leaf nodes."""

    a: VisualNode
    b: VisualNode
    distance: float
    differences: MatchDifferences
    match_type: MatchType
    ignored: bool = False

    @property
    def similarity(self) -> float:
        return max(0.0, 1.0 - self.distance) * 100.0

    @property
    def score(self) -> float:
        """Similarity as counted toward the overall result."""
        return 100.0 if self.ignored else self.similarity

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "node",
            "a": self.a.to_dict(),
            "b": self.b.to_dict(),
            "distance": self.distance,
            "similarity": self.similarity,
            "matchType": self.match_type.value,
            "ignored": self.ignored,
            "differences": self.differences.to_dict(),
        }


@dataclass(frozen=True)
class GroupMatch:
    """A matched pair of groups, with the comparison of their children."""

    a: Any
    b: Any
    distance: float
    differences: MatchDifferences
    match_type: MatchType
    ignored: bool = False
    group_matches: tuple["GroupMatch", ...] = ()
    node_matches: tuple[NodeMatch, ...] = ()
    removed: tuple[Any, ...] = ()
    added: tuple[Any, ...] = ()

    @property
    def similarity(self) -> float:
        return max(0.0, 1.0 - self.distance) * 100.0

    @property
    def score(self) -> float:
        return 100.0 if self.ignored else self.similarity

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "group",
            "a": _summarize_group(self.a),
            "b": _summarize_group(self.b),
            "distance": self.distance,
            "similarity": self.similarity,
            "matchType": self.match_type.value,
            "ignored": self.ignored,
            "differences": self.differences.to_dict(),
            "groupMatches": [m.to_dict() for m in self.group_matches],
            "nodeMatches": [m.to_dict() for m in self.node_matches],
            "removed": [item.to_dict() for item in self.removed],
            "added": [item.to_dict() for item in self.added],
        }


Match = Union[NodeMatch, GroupMatch]


def iter_matches(matches: "tuple[Match, ...] | list[Match]") -> Iterator[Match]:
    """Depth-first walk over matches and every nested child match."""
    for match in matches:
        yield match
        if isinstance(match, GroupMatch):
            yield from iter_matches(match.group_matches)
            yield from iter_matches(match.node_matches)


@dataclass(frozen=True)
class ComparisonStatistics:
    """Summary counts consumed by the threshold layer and reporters."""

    total_baseline: int = 0
    total_current: int = 0
    matched: int = 0
    added: int = 0
    removed: int = 0
    identical: int = 0
    moved: int = 0
    resized: int = 0
    modified: int = 0
    ignored: int = 0
    average_distance: float = 0.0
    max_position_shift_px: float = 0.0
    max_size_change_px: float = 0.0
    max_size_change_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalBaseline": self.total_baseline,
            "totalCurrent": self.total_current,
            "matched": self.matched,
            "added": self.added,
            "removed": self.removed,
            "identical": self.identical,
            "moved": self.moved,
            "resized": self.resized,
            "modified": self.modified,
            "ignored": self.ignored,
            "averageDistance": self.average_distance,
            "maxPositionShiftPx": self.max_position_shift_px,
            "maxSizeChangePx": self.max_size_change_px,
            "maxSizeChangePercent": self.max_size_change_percent,
        }


@dataclass(frozen=True)
class ComparisonResult:
    """Outcome of comparing a baseline snapshot with a current one."""

    similarity: float
    matches: tuple[Match, ...] = ()
    removed: tuple[Any, ...] = ()
    added: tuple[Any, ...] = ()
    has_issues: bool = False
    statistics: ComparisonStatistics = field(default_factory=ComparisonStatistics)
    mode: str = "tree"
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    warnings: tuple[str, ...] = ()

    def iter_matches(self) -> Iterator[Match]:
        return iter_matches(self.matches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "similarity": self.similarity,
            "similarityThreshold": self.similarity_threshold,
            "hasIssues": self.has_issues,
            "statistics": self.statistics.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "removed": [item.to_dict() for item in self.removed],
            "added": [item.to_dict() for item in self.added],
            "warnings": list(self.warnings),
        }


def build_node_match(
    a: VisualNode,
    b: VisualNode,
    distance: float,
    settings: ComparisonSettings,
    ignore: IgnoreFilter,
) -> NodeMatch:
    differences = describe_node_differences(a, b)
    return NodeMatch(
        a=a,
        b=b,
        distance=distance,
        differences=differences,
        match_type=classify_match(differences, settings),
        ignored=ignore(a) or ignore(b),
    )


def build_group_match(
    a: Any,
    b: Any,
    distance: float,
    settings: ComparisonSettings,
    ignore: IgnoreFilter,
    **children: Any,
) -> GroupMatch:
    differences = describe_group_differences(a, b)
    return GroupMatch(
        a=a,
        b=b,
        distance=distance,
        differences=differences,
        match_type=classify_match(differences, settings),
        ignored=ignore(a) or ignore(b),
        **children,
    )


def compare_nodes(
    left: "tuple[VisualNode, ...] | list[VisualNode]",
    right: "tuple[VisualNode, ...] | list[VisualNode]",
    matcher: LayoutMatcher,
    settings: ComparisonSettings,
    ignore: IgnoreFilter,
) -> tuple[list[NodeMatch], list[VisualNode], list[VisualNode]]:
    """
    Match two node lists.

    Returns:
        Tuple of (node matches, removed nodes, added nodes)
    """
    matching = matcher.match_nodes(left, right)
    matches = [
        build_node_match(left[i], right[j], d, settings, ignore)
        for i, j, d in matching.pairs
    ]
    removed = [left[i] for i in matching.unmatched_left]
    added = [right[j] for j in matching.unmatched_right]
    return matches, removed, added


def check_viewports(
    baseline: LayoutSnapshot, current: LayoutSnapshot, allow_mismatch: bool = False
) -> list[str]:
    """Warn (DimensionMismatch) when snapshots come from different viewports."""
    if baseline.viewport == current.viewport or allow_mismatch:
        return []
    message = (
        f"Viewport mismatch: baseline {baseline.viewport.width:g}x"
        f"{baseline.viewport.height:g}, current {current.viewport.width:g}x"
        f"{current.viewport.height:g}"
    )
    logger.warning(message)
    warnings.warn(message, DimensionMismatch, stacklevel=3)
    return [message]


def _countable(item: Any, ignore: IgnoreFilter) -> int:
    """Items in an unmatched subtree that count toward the penalty."""
    own = 0 if ignore(item) else 1
    if isinstance(item, VisualNodeGroup):
        return own + sum(_countable(child, ignore) for child in item.children)
    return own


def score_comparison(
    matches: "list[Match]",
    removed: list[Any],
    added: list[Any],
    ignore: IgnoreFilter,
    mode: str,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    warning_messages: list[str] | None = None,
) -> ComparisonResult:
    """Assemble a ComparisonResult from matches and unmatched items at the top level."""
    all_matches = list(iter_matches(matches))
    all_removed = list(removed)
    all_added = list(added)
    for match in all_matches:
        if isinstance(match, GroupMatch):
            all_removed.extend(match.removed)
            all_added.extend(match.added)

    removed_count = sum(_countable(item, ignore) for item in all_removed)
    added_count = sum(_countable(item, ignore) for item in all_added)
    unmatched = removed_count + added_count
    total = 2 * len(all_matches) + unmatched

    if total == 0:
        similarity = 100.0
    else:
        mean_score = (
            sum(m.score for m in all_matches) / len(all_matches) if all_matches else 100.0
        )
        penalty = unmatched / total * UNMATCHED_PENALTY_SCALE
        similarity = max(0.0, min(100.0, mean_score - penalty))

    counted = [m for m in all_matches if not m.ignored]
    type_counts = {match_type: 0 for match_type in MatchType}
    for match in counted:
        type_counts[match.match_type] += 1

    statistics = ComparisonStatistics(
        total_baseline=len(all_matches) + removed_count,
        total_current=len(all_matches) + added_count,
        matched=len(all_matches),
        added=added_count,
        removed=removed_count,
        identical=type_counts[MatchType.IDENTICAL],
        moved=type_counts[MatchType.MOVED],
        resized=type_counts[MatchType.RESIZED],
        modified=type_counts[MatchType.MODIFIED],
        ignored=len(all_matches) - len(counted),
        average_distance=(
            sum(m.distance for m in counted) / len(counted) if counted else 0.0
        ),
        max_position_shift_px=max(
            (m.differences.position_shift for m in counted), default=0.0
        ),
        max_size_change_px=max(
            (m.differences.size_change for m in counted), default=0.0
        ),
        max_size_change_percent=max(
            (m.differences.size_change_percent for m in counted), default=0.0
        ),
    )

    return ComparisonResult(
        similarity=similarity,
        matches=tuple(matches),
        removed=tuple(removed),
        added=tuple(added),
        has_issues=similarity < similarity_threshold,
        statistics=statistics,
        mode=mode,
        similarity_threshold=similarity_threshold,
        warnings=tuple(warning_messages or ()),
    )


def summarize_changes(result: ComparisonResult) -> list[str]:
    """Short human-readable lines describing a comparison."""
    stats = result.statistics
    lines = []

    def plural(count: int, word: str) -> str:
        return f"{count} {word}" if count == 1 else f"{count} {word}s"

    if stats.added:
        lines.append(f"{plural(stats.added, 'element')} added")
    if stats.removed:
        lines.append(f"{plural(stats.removed, 'element')} removed")
    if stats.moved:
        lines.append(
            f"{plural(stats.moved, 'element')} moved "
            f"(max {stats.max_position_shift_px:.1f}px)"
        )
    if stats.resized:
        lines.append(
            f"{plural(stats.resized, 'element')} resized "
            f"(max {stats.max_size_change_percent:.1f}%)"
        )
    if stats.modified:
        lines.append(f"{plural(stats.modified, 'element')} modified")
    if not lines:
        lines.append("No layout changes")
    lines.append(f"similarity {result.similarity:.1f}%")
    return lines


__all__ = [
    "UNMATCHED_PENALTY_SCALE",
    "DEFAULT_SIMILARITY_THRESHOLD",
    "MatchType",
    "MatchDifferences",
    "NodeMatch",
    "GroupMatch",
    "Match",
    "ComparisonStatistics",
    "ComparisonResult",
    "IgnoreFilter",
    "describe_node_differences",
    "describe_group_differences",
    "classify_match",
    "build_node_match",
    "build_group_match",
    "compare_nodes",
    "check_viewports",
    "score_comparison",
    "iter_matches",
    "summarize_changes",
]
