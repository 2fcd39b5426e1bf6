#!/usr/bin/env python3
"""
Accessibility Matcher - pairs nodes by accessible identity.

Complements the geometric matcher: when layout moves a lot (responsive
breakpoints, redesigns), an element's aria-label, id, landmark tag or role
still says "this is the same control". Rules, strongest first:

    aria-label equality                 0.95
    element id equality                 0.93
    unique landmark tag (main, nav...)  0.90
    role equality, unique on both sides 0.88 (0.75 otherwise)
    same tag and role                   0.70

A landmark tag that also carries a role gets x1.1, capped at 0.98.

This is a standalone API. The comparators do not call it and their scores
never depend on it; callers use it to audit or re-pair elements that the
geometric matcher reported as removed and added.
"""

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

from layout_validation.models import VisualNode

logger = logging.getLogger(__name__)

LANDMARK_TAGS = frozenset({"main", "header", "footer", "nav", "aside"})
SEMANTIC_BOOST = 1.1
MAX_CONFIDENCE = 0.98

RULE_CONFIDENCE = {
    "aria-label": 0.95,
    "id": 0.93,
    "landmark": 0.90,
    "unique-role": 0.88,
    "role": 0.75,
    "tag-role": 0.70,
}


@dataclass
class AccessibilityMatch:
    """Pair matched by accessible identity."""

    left_index: int
    right_index: int
    confidence: float
    rule: str


class AccessibilityMatcher:
    """
    Matches nodes across snapshots by accessibility attributes.

    Usage:
        matches = AccessibilityMatcher(min_confidence=0.8).match(nodes_a, nodes_b)
        for m in matches:
            print(nodes_a[m.left_index].tag_name, m.rule, m.confidence)
    """

    def __init__(self, min_confidence: float = 0.7):
        if min_confidence < 0.0 or min_confidence > 1.0:
            raise ValueError("min_confidence must be between 0.0 and 1.0")
        self.min_confidence = min_confidence

    def pair_confidence(
        self,
        a: VisualNode,
        b: VisualNode,
        role_counts: tuple[Counter, Counter] | None = None,
        tag_counts: tuple[Counter, Counter] | None = None,
    ) -> tuple[float, str | None]:
        """Confidence and rule name for one pair (0.0, None when nothing applies)."""
        if a.aria_label and a.aria_label == b.aria_label:
            return RULE_CONFIDENCE["aria-label"], "aria-label"
        if a.element_id and a.element_id == b.element_id:
            return RULE_CONFIDENCE["id"], "id"

        same_tag = a.tag_name == b.tag_name
        landmark = same_tag and a.tag_name in LANDMARK_TAGS
        if landmark and (
            tag_counts is None
            or (tag_counts[0][a.tag_name] == 1 and tag_counts[1][b.tag_name] == 1)
        ):
            confidence = RULE_CONFIDENCE["landmark"]
            if a.role and a.role == b.role:
                confidence = min(MAX_CONFIDENCE, confidence * SEMANTIC_BOOST)
            return confidence, "landmark"

        if a.role and a.role == b.role:
            unique = role_counts is None or (
                role_counts[0][a.role] == 1 and role_counts[1][b.role] == 1
            )
            if unique:
                confidence, rule = RULE_CONFIDENCE["unique-role"], "unique-role"
            elif same_tag:
                confidence, rule = RULE_CONFIDENCE["tag-role"], "tag-role"
            else:
                confidence, rule = RULE_CONFIDENCE["role"], "role"
            if landmark:
                confidence = min(MAX_CONFIDENCE, confidence * SEMANTIC_BOOST)
            return confidence, rule

        return 0.0, None

    def match(
        self, left: Sequence[VisualNode], right: Sequence[VisualNode]
    ) -> list[AccessibilityMatch]:
        """
        Greedy 1:1 matching, highest confidence first (input order breaks ties).

        Returns:
            Accepted matches sorted by left index
        """
        role_counts = (
            Counter(n.role for n in left if n.role),
            Counter(n.role for n in right if n.role),
        )
        tag_counts = (
            Counter(n.tag_name for n in left),
            Counter(n.tag_name for n in right),
        )

        candidates: list[tuple[float, int, int, str]] = []
        for i, a in enumerate(left):
            for j, b in enumerate(right):
                confidence, rule = self.pair_confidence(a, b, role_counts, tag_counts)
                if rule is not None and confidence >= self.min_confidence:
                    candidates.append((confidence, i, j, rule))

        candidates.sort(key=lambda candidate: -candidate[0])

        used_left: set[int] = set()
        used_right: set[int] = set()
        matches: list[AccessibilityMatch] = []
        for confidence, i, j, rule in candidates:
            if i in used_left or j in used_right:
                continue
            used_left.add(i)
            used_right.add(j)
            matches.append(AccessibilityMatch(i, j, confidence, rule))

        logger.debug(f"Accessibility matcher paired {len(matches)} nodes")
        return sorted(matches, key=lambda m: m.left_index)


__all__ = ["AccessibilityMatch", "AccessibilityMatcher", "LANDMARK_TAGS"]
