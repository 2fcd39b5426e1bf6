#!/usr/bin/env python3
"""
Node/Group Matcher - weighted greedy 1:1 assignment between two collections.

Every pair (i, j) gets a composite distance in which 0 means identical.
Pairs above ``max_match_distance`` are never eligible. The remaining
candidates are sorted by distance (stable, so input order breaks ties) and
accepted greedily when neither side is taken yet.

This is an approximation of a min-cost bipartite matching: an early
acceptance can block a slightly better pair later on. Threshold defaults
elsewhere were tuned against this greedy behavior, so it stays greedy.

Two-pass variant: an exact-key pass (DOM id for nodes, group_key() for
groups) runs first and its pairs are never revisited by the distance pass.
"""

from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from layout_validation.models import Rect, VisualNode

from .distance import bounding_box, position_distance, set_similarity, size_difference
from .text_distance import text_similarity

T = TypeVar("T")

DEFAULT_MAX_MATCH_DISTANCE = 0.5


@dataclass
class Matching:
    """Result of matching two index ranges."""

    pairs: list[tuple[int, int, float]] = field(default_factory=list)
    unmatched_left: list[int] = field(default_factory=list)
    unmatched_right: list[int] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return len(self.pairs)


@dataclass
class NodeWeights:
    """Composite distance weights for leaf nodes."""

    position: float = 0.3
    text: float = 0.3
    size: float = 0.2
    class_names: float = 0.1
    accessibility: float = 0.1
    tag: float = 0.3  # added on tag mismatch


@dataclass
class GroupWeights:
    """Composite distance weights for groups."""

    position: float = 0.4
    size: float = 0.2
    type: float = 0.3
    importance: float = 0.1


def group_key(group_type: str, bounds: Rect) -> str:
    """
    Identity key for a group: its type plus its rounded bounds.

    Deliberately lossy - two groups of the same type whose bounds round to
    the same integers collide. Rounding is Python's round-half-to-even, so
    10.5 -> 10 while 11.5 -> 12.
    """
    return (
        f"{group_type}_{round(bounds.x)}_{round(bounds.y)}"
        f"_{round(bounds.width)}_{round(bounds.height)}"
    )


def node_distance(a: VisualNode, b: VisualNode, weights: NodeWeights | None = None) -> float:
    """
    Composite distance between two leaf nodes.

    Position is measured in the frame spanned by both placements, so a shift
    is judged relative to the element's own extent rather than the page.
    """
    weights = weights or NodeWeights()
    frame = bounding_box([a.rect, b.rect])
    distance = (
        weights.position * position_distance(a.rect.center, b.rect.center, frame)
        + weights.text * (1.0 - text_similarity(a.text, b.text))
        + weights.size * size_difference(a.rect, b.rect)
        + weights.class_names * (1.0 - set_similarity(a.class_names, b.class_names))
        + weights.accessibility
        * (1.0 - set_similarity(a.accessibility_attributes(), b.accessibility_attributes()))
    )
    if a.tag_name != b.tag_name:
        distance += weights.tag
    return distance


def group_distance(
    a: Any, b: Any, frame: Rect, weights: GroupWeights | None = None
) -> float:
    """
    Composite distance between two groups (or flattened group records).

    Args:
        a: Group-like object with type, bounds and importance
        b: Group-like object with type, bounds and importance
        frame: Rectangle positions are normalized against
        weights: Optional weight override
    """
    weights = weights or GroupWeights()
    distance = (
        weights.position * position_distance(a.bounds.center, b.bounds.center, frame)
        + weights.size * size_difference(a.bounds, b.bounds)
        + weights.importance * abs(a.importance - b.importance) / 100.0
    )
    if a.type != b.type:
        distance += weights.type
    return distance


def greedy_match(
    left: Sequence[T],
    right: Sequence[T],
    distance: Callable[[T, T], float],
    max_distance: float = DEFAULT_MAX_MATCH_DISTANCE,
    left_indices: Sequence[int] | None = None,
    right_indices: Sequence[int] | None = None,
) -> Matching:
    """
    Greedy assignment over the given indices (all indices by default).

    Args:
        left: Baseline items
        right: Current items
        distance: Pairwise distance function (0 = identical)
        max_distance: Pairs strictly above this are never matched
        left_indices: Restrict matching to these left indices
        right_indices: Restrict matching to these right indices

    Returns:
        Matching with accepted pairs and leftovers, both in index order
    """
    left_pool = list(range(len(left))) if left_indices is None else list(left_indices)
    right_pool = list(range(len(right))) if right_indices is None else list(right_indices)

    candidates: list[tuple[float, int, int]] = []
    for i in left_pool:
        for j in right_pool:
            d = distance(left[i], right[j])
            if d <= max_distance:
                candidates.append((d, i, j))

    # Stable: equal distances keep input order
    candidates.sort(key=lambda candidate: candidate[0])

    used_left: set[int] = set()
    used_right: set[int] = set()
    pairs: list[tuple[int, int, float]] = []
    for d, i, j in candidates:
        if i in used_left or j in used_right:
            continue
        used_left.add(i)
        used_right.add(j)
        pairs.append((i, j, d))

    return Matching(
        pairs=sorted(pairs),
        unmatched_left=[i for i in left_pool if i not in used_left],
        unmatched_right=[j for j in right_pool if j not in used_right],
    )


def key_match(
    left: Sequence[T],
    right: Sequence[T],
    key: Callable[[T], Hashable | None],
) -> Matching:
    """
    Pair items with equal, non-None keys; duplicates pair up in input order.

    Distances of key matches are reported as 0.0 here; callers that need the
    real distance recompute it.
    """
    waiting: dict[Hashable, list[int]] = {}
    for j, item in enumerate(right):
        item_key = key(item)
        if item_key is not None:
            waiting.setdefault(item_key, []).append(j)

    pairs: list[tuple[int, int, float]] = []
    used_right: set[int] = set()
    unmatched_left: list[int] = []
    for i, item in enumerate(left):
        item_key = key(item)
        queue = waiting.get(item_key) if item_key is not None else None
        if queue:
            j = queue.pop(0)
            used_right.add(j)
            pairs.append((i, j, 0.0))
        else:
            unmatched_left.append(i)

    return Matching(
        pairs=pairs,
        unmatched_left=unmatched_left,
        unmatched_right=[j for j in range(len(right)) if j not in used_right],
    )


def two_pass_match(
    left: Sequence[T],
    right: Sequence[T],
    key: Callable[[T], Hashable | None],
    distance: Callable[[T, T], float],
    max_distance: float = DEFAULT_MAX_MATCH_DISTANCE,
) -> Matching:
    """Exact-key pass first, then greedy distance matching over the remainder."""
    exact = key_match(left, right, key)
    rest = greedy_match(
        left,
        right,
        distance,
        max_distance=max_distance,
        left_indices=exact.unmatched_left,
        right_indices=exact.unmatched_right,
    )
    exact_pairs = [(i, j, distance(left[i], right[j])) for i, j, _ in exact.pairs]
    return Matching(
        pairs=sorted(exact_pairs + rest.pairs),
        unmatched_left=rest.unmatched_left,
        unmatched_right=rest.unmatched_right,
    )


class LayoutMatcher:
    """
    Matches nodes and groups between two snapshots.

    Usage:
        matcher = LayoutMatcher(max_match_distance=0.5)
        matching = matcher.match_nodes(baseline_nodes, current_nodes)
        for i, j, distance in matching.pairs:
            ...
    """

    def __init__(
        self,
        node_weights: NodeWeights | None = None,
        group_weights: GroupWeights | None = None,
        max_match_distance: float = DEFAULT_MAX_MATCH_DISTANCE,
    ):
        if max_match_distance < 0.0:
            raise ValueError("max_match_distance must be non-negative")
        self.node_weights = node_weights or NodeWeights()
        self.group_weights = group_weights or GroupWeights()
        self.max_match_distance = max_match_distance

    def node_distance(self, a: VisualNode, b: VisualNode) -> float:
        return node_distance(a, b, self.node_weights)

    def group_distance(self, a: Any, b: Any, frame: Rect) -> float:
        return group_distance(a, b, frame, self.group_weights)

    def match_nodes(
        self, left: Sequence[VisualNode], right: Sequence[VisualNode]
    ) -> Matching:
        """Match leaf nodes: DOM id equality first, composite distance second."""
        return two_pass_match(
            left,
            right,
            key=lambda node: node.element_id,
            distance=self.node_distance,
            max_distance=self.max_match_distance,
        )

    def match_groups(self, left: Sequence[Any], right: Sequence[Any], frame: Rect) -> Matching:
        """Match groups: group_key() equality first, composite distance second."""
        return two_pass_match(
            left,
            right,
            key=lambda group: group_key(group.type, group.bounds),
            distance=lambda a, b: self.group_distance(a, b, frame),
            max_distance=self.max_match_distance,
        )


__all__ = [
    "DEFAULT_MAX_MATCH_DISTANCE",
    "Matching",
    "NodeWeights",
    "GroupWeights",
    "LayoutMatcher",
    "group_key",
    "node_distance",
    "group_distance",
    "greedy_match",
    "key_match",
    "two_pass_match",
]
