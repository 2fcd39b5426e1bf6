#!/usr/bin/env python3
"""
Tree-Aware Comparator - compares two layouts group tree against group tree.

Top-level groups are matched first (frame: the viewport), then each matched
pair recurses into its children. Within one parent, sub-groups are matched
against sub-groups (frame: the parent's bounds) and leaf nodes against leaf
nodes - a group is never matched to a node. Each child's differences stay on
that child's match record.

A change of nesting (an extra wrapper) is a structural difference here; use
FlatComparator when only visual placement matters.
"""

import logging
from collections.abc import Sequence

from layout_validation.models import (
    ComparisonSettings,
    LayoutSnapshot,
    Rect,
    TreeItem,
    VisualNodeGroup,
    split_children,
)

from .comparison import (
    DEFAULT_SIMILARITY_THRESHOLD,
    ComparisonResult,
    GroupMatch,
    IgnoreFilter,
    build_group_match,
    check_viewports,
    compare_nodes,
    score_comparison,
)
from .matcher import LayoutMatcher

logger = logging.getLogger(__name__)


class TreeComparator:
    """
    Compares two LayoutSnapshots structurally.

    Snapshots without a group tree fall back to comparing their flat node
    lists (mode "nodes").

    Usage:
        comparator = TreeComparator(ComparisonSettings(position_tolerance_px=3))
        result = comparator.compare(baseline, current)
        print(f"{result.similarity:.1f}% similar, issues: {result.has_issues}")
    """

    mode = "tree"

    def __init__(
        self,
        settings: ComparisonSettings | None = None,
        matcher: LayoutMatcher | None = None,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        allow_viewport_mismatch: bool = False,
    ):
        """
        Initialize comparator.

        Args:
            settings: Tolerances and ignore list (defaults if None)
            matcher: Matcher with custom weights (defaults if None)
            similarity_threshold: Results below this similarity have issues
            allow_viewport_mismatch: Suppress the DimensionMismatch warning
        """
        if not 0.0 <= similarity_threshold <= 100.0:
            raise ValueError("similarity_threshold must be between 0 and 100")
        self.settings = settings or ComparisonSettings()
        self.matcher = matcher or LayoutMatcher()
        self.similarity_threshold = similarity_threshold
        self.allow_viewport_mismatch = allow_viewport_mismatch

    def compare(
        self, baseline: LayoutSnapshot, current: LayoutSnapshot
    ) -> ComparisonResult:
        """
        Compare baseline against current.

        Args:
            baseline: Reference snapshot
            current: Snapshot under test

        Returns:
            ComparisonResult (removed = baseline-only, added = current-only)
        """
        messages = check_viewports(baseline, current, self.allow_viewport_mismatch)
        ignore = IgnoreFilter(self.settings)

        if baseline.has_groups and current.has_groups:
            matches, removed, added = self._compare_groups(
                baseline.groups, current.groups, baseline.viewport.as_rect(), ignore
            )
            mode = self.mode
        else:
            matches, removed, added = compare_nodes(
                baseline.all_nodes(),
                current.all_nodes(),
                self.matcher,
                self.settings,
                ignore,
            )
            mode = "nodes"

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
            f"({result.statistics.matched} matched, {result.statistics.removed} removed, "
            f"{result.statistics.added} added)"
        )
        return result

    def _compare_groups(
        self,
        left: Sequence[VisualNodeGroup],
        right: Sequence[VisualNodeGroup],
        frame: Rect,
        ignore: IgnoreFilter,
    ) -> tuple[list[GroupMatch], list[TreeItem], list[TreeItem]]:
        """Match one level of groups and recurse into each matched pair."""
        matching = self.matcher.match_groups(left, right, frame)

        matches: list[GroupMatch] = []
        for i, j, distance in matching.pairs:
            a = left[i]
            b = right[j]
            groups_a, nodes_a = split_children(a)
            groups_b, nodes_b = split_children(b)

            child_groups, groups_removed, groups_added = self._compare_groups(
                groups_a, groups_b, a.bounds, ignore
            )
            child_nodes, nodes_removed, nodes_added = compare_nodes(
                nodes_a, nodes_b, self.matcher, self.settings, ignore
            )

            matches.append(
                build_group_match(
                    a,
                    b,
                    distance,
                    self.settings,
                    ignore,
                    group_matches=tuple(child_groups),
                    node_matches=tuple(child_nodes),
                    removed=tuple(groups_removed + nodes_removed),
                    added=tuple(groups_added + nodes_added),
                )
            )

        removed: list[TreeItem] = [left[i] for i in matching.unmatched_left]
        added: list[TreeItem] = [right[j] for j in matching.unmatched_right]
        return matches, removed, added


__all__ = ["TreeComparator"]
