#!/usr/bin/env python3
"""
Flat Comparator - hierarchy-agnostic layout comparison.

Every group, at any depth, becomes one FlattenedGroup record keyed by
group_key(type, bounds). Records are matched across the whole page, and all
leaf nodes are matched in one flat pass. Two pages with the same visual
arrangement but different nesting (say an extra wrapper div) compare as
near-identical here, while TreeComparator reports the nesting change.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from layout_validation.models import (
    ComparisonSettings,
    LayoutSnapshot,
    Rect,
    VisualNode,
    VisualNodeGroup,
)

from .comparison import (
    DEFAULT_SIMILARITY_THRESHOLD,
    ComparisonResult,
    IgnoreFilter,
    build_group_match,
    check_viewports,
    compare_nodes,
    score_comparison,
)
from .matcher import LayoutMatcher, group_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlattenedGroup:
    """A group lifted out of its tree. ``path`` and ``depth`` are diagnostics only."""

    id: str
    type: str
    label: str
    bounds: Rect
    importance: float
    element_count: int
    path: tuple[str, ...] = ()
    depth: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "flattenedGroup",
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "bounds": self.bounds.to_dict(),
            "importance": self.importance,
            "elementCount": self.element_count,
            "path": list(self.path),
            "depth": self.depth,
        }


def flatten_groups(
    groups: Sequence[VisualNodeGroup],
    path: tuple[str, ...] = (),
    depth: int = 0,
) -> list[FlattenedGroup]:
    """Pre-order flattening of a group tree."""
    flattened: list[FlattenedGroup] = []
    for group in groups:
        flattened.append(
            FlattenedGroup(
                id=group_key(group.type, group.bounds),
                type=group.type,
                label=group.label,
                bounds=group.bounds,
                importance=group.importance,
                element_count=sum(
                    1 for child in group.children if isinstance(child, VisualNode)
                ),
                path=path,
                depth=depth,
            )
        )
        children = [c for c in group.children if isinstance(c, VisualNodeGroup)]
        flattened.extend(
            flatten_groups(children, path + (f"{group.type}:{group.label}",), depth + 1)
        )
    return flattened


class FlatComparator:
    """
    Compares two LayoutSnapshots ignoring tree shape.

    Usage:
        result = FlatComparator().compare(baseline, current)
        for match in result.matches:
            print(match.match_type.value, match.similarity)
    """

    mode = "flat"

    def __init__(
        self,
        settings: ComparisonSettings | None = None,
        matcher: LayoutMatcher | None = None,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        allow_viewport_mismatch: bool = False,
    ):
        if not 0.0 <= similarity_threshold <= 100.0:
            raise ValueError("similarity_threshold must be between 0 and 100")
        self.settings = settings or ComparisonSettings()
        self.matcher = matcher or LayoutMatcher()
        self.similarity_threshold = similarity_threshold
        self.allow_viewport_mismatch = allow_viewport_mismatch

    def compare(
        self, baseline: LayoutSnapshot, current: LayoutSnapshot
    ) -> ComparisonResult:
        messages = check_viewports(baseline, current, self.allow_viewport_mismatch)
        ignore = IgnoreFilter(self.settings)

        matches: list[Any] = []
        removed: list[Any] = []
        added: list[Any] = []
        mode = "nodes"

        if baseline.has_groups and current.has_groups:
            mode = self.mode
            flat_a = flatten_groups(baseline.groups)
            flat_b = flatten_groups(current.groups)
            matching = self.matcher.match_groups(
                flat_a, flat_b, baseline.viewport.as_rect()
            )
            matches.extend(
                build_group_match(flat_a[i], flat_b[j], d, self.settings, ignore)
                for i, j, d in matching.pairs
            )
            removed.extend(flat_a[i] for i in matching.unmatched_left)
            added.extend(flat_b[j] for j in matching.unmatched_right)

        node_matches, nodes_removed, nodes_added = compare_nodes(
            baseline.all_nodes(),
            current.all_nodes(),
            self.matcher,
            self.settings,
            ignore,
        )
        matches.extend(node_matches)
        removed.extend(nodes_removed)
        added.extend(nodes_added)

        result = score_comparison(
            matches,
            removed,
            added,
            ignore,
            mode=mode,
            similarity_threshold=self.similarity_threshold,
            warning_messages=messages,
        )
        logger.debug(
            f"{mode} comparison: {result.similarity:.1f}% "
            f"({len(matches)} matched, {len(removed)} removed, {len(added)} added)"
        )
        return result


__all__ = ["FlatComparator", "FlattenedGroup", "flatten_groups", "group_key"]
