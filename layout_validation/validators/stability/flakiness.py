#!/usr/bin/env python3
"""
Flakiness Detector - per-node variation across repeated snapshots.

Given snapshots of the same, unchanged page captured moments apart, every
node is keyed (by id, else by parent path + tag + classes + ordinal) and its
appearances are bucketed into a NodeVariation.

Per node, three instability components in [0, 1]:
- position: 0 while the spread of x/y/width/height stays within
  ``stable_drift_px``, then grows linearly over ``position_scale_px``
- text: 1 if more than one distinct text was observed
- visibility: 1 if the node was not consistently visible (absence counts)

stability_score = 1 - max(components). Text and visibility are binary:
a flip is never "a little" flaky.
"""

import logging
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from layout_validation.models import (
    LayoutSnapshot,
    Rect,
    TreeItem,
    VisualNode,
    VisualNodeGroup,
)
from layout_validation.selectors import generate_selector

logger = logging.getLogger(__name__)


@dataclass
class NodeVariation:
    """One node's observations across all samples."""

    key: str
    tag_name: str
    class_names: tuple[str, ...] = ()
    element_id: str | None = None
    importance: float = 0.0
    rects: list[Rect] = field(default_factory=list)
    texts: list[str | None] = field(default_factory=list)
    visibility: list[bool] = field(default_factory=list)
    stability_score: float = 1.0
    position_instability: float = 0.0
    text_instability: float = 0.0
    visibility_instability: float = 0.0
    variation_type: str | None = None  # "position", "text", "visibility", "mixed"
    suggested_selector: str = ""
    reason: str = ""

    @property
    def text_values(self) -> set[str | None]:
        return set(self.texts)

    @property
    def appearances(self) -> int:
        return len(self.rects)

    @property
    def occurrence_rate(self) -> float:
        return self.appearances / len(self.visibility) if self.visibility else 0.0

    @property
    def position_spread(self) -> float:
        """Largest max-min range over x, y, width and height."""
        if len(self.rects) < 2:
            return 0.0
        return max(
            max(values) - min(values)
            for values in (
                [r.x for r in self.rects],
                [r.y for r in self.rects],
                [r.width for r in self.rects],
                [r.height for r in self.rects],
            )
        )

    @property
    def position_drift(self) -> float:
        """Largest max-min range of the top-left corner."""
        if len(self.rects) < 2:
            return 0.0
        xs = [r.x for r in self.rects]
        ys = [r.y for r in self.rects]
        return max(max(xs) - min(xs), max(ys) - min(ys))

    @property
    def size_change_percent(self) -> float:
        if len(self.rects) < 2:
            return 0.0
        percents = []
        for values in ([r.width for r in self.rects], [r.height for r in self.rects]):
            largest = max(values)
            percents.append((largest - min(values)) / largest * 100 if largest else 0.0)
        return max(percents)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "tagName": self.tag_name,
            "classNames": list(self.class_names),
            "id": self.element_id,
            "importance": self.importance,
            "appearances": self.appearances,
            "occurrenceRate": self.occurrence_rate,
            "positionSpread": self.position_spread,
            "sizeChangePercent": self.size_change_percent,
            "textValues": sorted(t for t in self.text_values if t is not None),
            "visibility": list(self.visibility),
            "stabilityScore": self.stability_score,
            "variationType": self.variation_type,
            "suggestedSelector": self.suggested_selector,
            "reason": self.reason,
        }


@dataclass
class FlakinessAnalysis:
    """Result of analyzing a set of snapshots."""

    sample_count: int
    nodes: list[NodeVariation] = field(default_factory=list)
    unstable_nodes: list[NodeVariation] = field(default_factory=list)
    overall_stability_score: float = 100.0  # 0-100

    @property
    def stable_count(self) -> int:
        return len(self.nodes) - len(self.unstable_nodes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sampleCount": self.sample_count,
            "overallStabilityScore": self.overall_stability_score,
            "totalNodes": len(self.nodes),
            "stableNodes": self.stable_count,
            "unstableNodes": [node.to_dict() for node in self.unstable_nodes],
        }


def _ordinal_key(node: VisualNode, prefix: str, seen: dict[str, int]) -> str:
    base = f"{prefix}/{node.tag_name}"
    if node.class_names:
        base += "." + ".".join(sorted(node.class_names))
    ordinal = seen.get(base, 0)
    seen[base] = ordinal + 1
    return f"{base}[{ordinal}]"


def iter_keyed_nodes(snapshot: LayoutSnapshot) -> Iterator[tuple[str, VisualNode]]:
    """
    Yield (stable key, node) for every node of a snapshot.

    The flat element list is used when present, otherwise the group tree's
    leaves with their group path as parent.
    """
    if snapshot.elements or not snapshot.groups:
        seen: dict[str, int] = {}
        for node in snapshot.elements:
            if node.element_id:
                yield f"#{node.element_id}", node
            else:
                yield _ordinal_key(node, "", seen), node
        return
    yield from _iter_tree(snapshot.groups, "")


def _iter_tree(
    items: Sequence[TreeItem], prefix: str
) -> Iterator[tuple[str, VisualNode]]:
    seen: dict[str, int] = {}
    group_seen: dict[str, int] = {}
    for item in items:
        if isinstance(item, VisualNode):
            if item.element_id:
                yield f"#{item.element_id}", item
            else:
                yield _ordinal_key(item, prefix, seen), item
        elif isinstance(item, VisualNodeGroup):
            ordinal = group_seen.get(item.type, 0)
            group_seen[item.type] = ordinal + 1
            yield from _iter_tree(item.children, f"{prefix}/{item.type}[{ordinal}]")


class FlakinessDetector:
    """
    Aggregates per-node variation across snapshots of one page.

    Usage:
        detector = FlakinessDetector()
        analysis = detector.analyze(snapshots)
        print(f"Stability: {analysis.overall_stability_score:.1f}%")
        for node in analysis.unstable_nodes:
            print(node.suggested_selector, node.variation_type)
    """

    def __init__(
        self,
        stable_drift_px: float = 2.0,
        position_scale_px: float = 50.0,
        unstable_threshold: float = 0.95,
    ):
        """
        Initialize detector.

        Args:
            stable_drift_px: Spread at or below this counts as no movement
            position_scale_px: Spread beyond the drift allowance that makes
                position maximally unstable
            unstable_threshold: Nodes scoring below this are reported unstable
        """
        if stable_drift_px < 0.0:
            raise ValueError("stable_drift_px must be non-negative")
        if position_scale_px <= 0.0:
            raise ValueError("position_scale_px must be positive")
        if unstable_threshold < 0.0 or unstable_threshold > 1.0:
            raise ValueError("unstable_threshold must be between 0.0 and 1.0")

        self.stable_drift_px = stable_drift_px
        self.position_scale_px = position_scale_px
        self.unstable_threshold = unstable_threshold

    def analyze(self, snapshots: Sequence[LayoutSnapshot]) -> FlakinessAnalysis:
        """
        Analyze variation across snapshots.

        Args:
            snapshots: Two or more snapshots of the same page, in capture order

        Returns:
            FlakinessAnalysis with per-node variations and overall score
        """
        if len(snapshots) < 2:
            raise ValueError("at least 2 snapshots are required")

        variations: dict[str, NodeVariation] = {}
        for index, snapshot in enumerate(snapshots):
            for key, node in iter_keyed_nodes(snapshot):
                variation = variations.get(key)
                if variation is None:
                    variation = NodeVariation(
                        key=key,
                        tag_name=node.tag_name,
                        class_names=node.class_names,
                        element_id=node.element_id,
                        visibility=[False] * index,
                    )
                    variations[key] = variation
                elif len(variation.visibility) > index:
                    # Same key twice in one sample (duplicate id); keep the first
                    continue
                variation.importance = max(variation.importance, node.importance)
                variation.rects.append(node.rect)
                variation.texts.append(node.text)
                variation.visibility.append(node.visible)
            for variation in variations.values():
                if len(variation.visibility) <= index:
                    variation.visibility.append(False)

        nodes = [self._score(v) for v in variations.values()]
        unstable = [n for n in nodes if n.stability_score < self.unstable_threshold]

        total_weight = sum(1.0 + n.importance for n in nodes)
        overall = (
            sum((1.0 + n.importance) * n.stability_score for n in nodes)
            / total_weight
            * 100.0
            if total_weight
            else 100.0
        )

        logger.debug(
            f"Analyzed {len(snapshots)} samples: {len(nodes)} nodes, "
            f"{len(unstable)} unstable, stability {overall:.1f}%"
        )
        return FlakinessAnalysis(
            sample_count=len(snapshots),
            nodes=nodes,
            unstable_nodes=unstable,
            overall_stability_score=overall,
        )

    def _score(self, variation: NodeVariation) -> NodeVariation:
        spread = variation.position_spread
        if spread <= self.stable_drift_px:
            position = 0.0
        else:
            position = min(1.0, (spread - self.stable_drift_px) / self.position_scale_px)
        text = 1.0 if len(variation.text_values) > 1 else 0.0
        visibility = 1.0 if len(set(variation.visibility)) > 1 else 0.0

        variation.position_instability = position
        variation.text_instability = text
        variation.visibility_instability = visibility
        variation.stability_score = 1.0 - max(position, text, visibility)

        varying = [
            name
            for name, value in (
                ("position", position),
                ("text", text),
                ("visibility", visibility),
            )
            if value > 0
        ]
        if not varying:
            variation.variation_type = None
        elif len(varying) == 1:
            variation.variation_type = varying[0]
        else:
            variation.variation_type = "mixed"

        variation.suggested_selector = generate_selector(
            variation.tag_name, variation.class_names
        )
        variation.reason = self._reason(variation)
        return variation

    def _reason(self, variation: NodeVariation) -> str:
        reasons = []
        if variation.position_instability > 0:
            reasons.append(
                f"position varies by up to {math.ceil(variation.position_spread)}px"
            )
        if variation.text_instability > 0:
            reasons.append(f"{len(variation.text_values)} distinct text values")
        if variation.visibility_instability > 0:
            visible = sum(variation.visibility)
            reasons.append(
                f"visible in {visible} of {len(variation.visibility)} samples"
            )
        return "; ".join(reasons) if reasons else "stable"


__all__ = [
    "NodeVariation",
    "FlakinessAnalysis",
    "FlakinessDetector",
    "iter_keyed_nodes",
]
