#!/usr/bin/env python3
"""Unit tests for matcher.py - greedy node and group matching."""

import pytest

from layout_validation.models import Rect, VisualNode, VisualNodeGroup
from layout_validation.validators.layout.matcher import (
    GroupWeights,
    LayoutMatcher,
    NodeWeights,
    greedy_match,
    group_distance,
    group_key,
    key_match,
    node_distance,
    two_pass_match,
)


def absolute(a: float, b: float) -> float:
    return abs(a - b)


class TestGroupKey:
    """Tests for group_key() identity hashing."""

    def test_format(self):
        """Test type plus rounded bounds."""
        assert group_key("card", Rect(10, 20, 300, 150)) == "card_10_20_300_150"

    def test_half_rounds_to_even(self):
        """Test .5 boundaries use round-half-to-even."""
        assert group_key("card", Rect(10.5, 11.5, 100.5, 0.5)) == "card_10_12_100_0"

    def test_collision_within_rounding(self):
        """Test bounds that round equal collide."""
        assert group_key("nav", Rect(9.6, 0, 100, 40)) == group_key("nav", Rect(10.4, 0, 100, 40))

    def test_no_collision_across_boundary(self):
        """Test bounds on either side of .5 get different keys."""
        assert group_key("nav", Rect(10.49, 0, 100, 40)) != group_key(
            "nav", Rect(10.51, 0, 100, 40)
        )

    def test_type_is_part_of_key(self):
        """Test same bounds, different type."""
        bounds = Rect(0, 0, 10, 10)
        assert group_key("nav", bounds) != group_key("card", bounds)


class TestNodeDistance:
    """Tests for node_distance()."""

    def test_identical_nodes(self):
        """Test a node against itself is distance 0."""
        node = VisualNode("button", Rect(10, 10, 100, 40), text="Go", class_names=("btn",))
        assert node_distance(node, node) == 0.0

    def test_tag_mismatch_penalty(self):
        """Test differing tags add the tag weight."""
        a = VisualNode("button", Rect(10, 10, 100, 40))
        b = VisualNode("a", Rect(10, 10, 100, 40))
        assert node_distance(a, b) == pytest.approx(0.3)

    def test_missing_text_one_side(self):
        """Test text present on one side costs the full text weight."""
        a = VisualNode("p", Rect(0, 0, 100, 20), text="Hello")
        b = VisualNode("p", Rect(0, 0, 100, 20))
        assert node_distance(a, b) == pytest.approx(0.3)

    def test_class_change(self):
        """Test disjoint class sets cost the class weight."""
        a = VisualNode("div", Rect(0, 0, 10, 10), class_names=("a",))
        b = VisualNode("div", Rect(0, 0, 10, 10), class_names=("b",))
        assert node_distance(a, b) == pytest.approx(0.1)

    def test_custom_weights(self):
        """Test weights override."""
        a = VisualNode("div", Rect(0, 0, 10, 10), class_names=("a",))
        b = VisualNode("div", Rect(0, 0, 10, 10), class_names=("b",))
        weights = NodeWeights(class_names=0.5)
        assert node_distance(a, b, weights) == pytest.approx(0.5)

    def test_position_measured_in_union_frame(self):
        """Test a move by one element width is a moderate distance."""
        a = VisualNode("button", Rect(500, 300, 100, 40))
        b = VisualNode("button", Rect(600, 350, 100, 40))
        distance = node_distance(a, b)
        assert 0.1 < distance < 0.2


class TestGroupDistance:
    """Tests for group_distance()."""

    def test_identical(self):
        """Test same group is distance 0."""
        group = VisualNodeGroup("card", Rect(0, 0, 100, 100), importance=50)
        assert group_distance(group, group, Rect(0, 0, 1000, 1000)) == 0.0

    def test_type_and_importance(self):
        """Test type mismatch plus importance delta."""
        a = VisualNodeGroup("card", Rect(0, 0, 100, 100), importance=0)
        b = VisualNodeGroup("list", Rect(0, 0, 100, 100), importance=50)
        frame = Rect(0, 0, 1000, 1000)
        assert group_distance(a, b, frame) == pytest.approx(0.3 + 0.1 * 0.5)

    def test_custom_weights(self):
        """Test GroupWeights override."""
        a = VisualNodeGroup("card", Rect(0, 0, 100, 100))
        b = VisualNodeGroup("list", Rect(0, 0, 100, 100))
        frame = Rect(0, 0, 1000, 1000)
        assert group_distance(a, b, frame, GroupWeights(type=1.0)) == pytest.approx(1.0)


class TestGreedyMatch:
    """Tests for greedy_match()."""

    def test_pairs_closest_first(self):
        """Test the globally closest pair is accepted first."""
        matching = greedy_match([0.0, 1.0], [1.0, 3.0], absolute, max_distance=10)
        assert matching.pairs == [(0, 1, 3.0), (1, 0, 0.0)]
        assert matching.unmatched_left == []
        assert matching.unmatched_right == []

    def test_ties_keep_input_order(self):
        """Test equal distances resolve by input order."""
        matching = greedy_match([5.0, 5.0], [5.0], absolute)
        assert matching.pairs == [(0, 0, 0.0)]
        assert matching.unmatched_left == [1]

    def test_max_distance_excludes(self):
        """Test pairs beyond max_distance stay unmatched."""
        matching = greedy_match([0.0], [1.0], absolute, max_distance=0.5)
        assert matching.pairs == []
        assert matching.unmatched_left == [0]
        assert matching.unmatched_right == [0]

    def test_max_distance_inclusive(self):
        """Test a pair exactly at max_distance is eligible."""
        matching = greedy_match([0.0], [0.5], absolute, max_distance=0.5)
        assert matching.matched_count == 1

    def test_one_to_one(self):
        """Test no index appears twice."""
        matching = greedy_match([1.0, 1.0, 1.0], [1.0, 1.0], absolute)
        lefts = [i for i, _, _ in matching.pairs]
        rights = [j for _, j, _ in matching.pairs]
        assert len(set(lefts)) == len(lefts) == 2
        assert len(set(rights)) == len(rights) == 2

    def test_empty_sides(self):
        """Test empty inputs."""
        matching = greedy_match([], [1.0], absolute)
        assert matching.pairs == []
        assert matching.unmatched_right == [0]

    def test_restricted_indices(self):
        """Test matching only over given indices."""
        matching = greedy_match(
            [0.0, 1.0], [0.0, 1.0], absolute, left_indices=[1], right_indices=[0, 1]
        )
        assert matching.pairs == [(1, 1, 0.0)]
        assert matching.unmatched_right == [0]


class TestKeyMatching:
    """Tests for key_match() and two_pass_match()."""

    def test_key_match_duplicates_in_order(self):
        """Test duplicate keys pair up in input order."""
        matching = key_match(["a", "a", "b"], ["a", "c", "a"], key=lambda s: s)
        assert matching.pairs == [(0, 0, 0.0), (1, 2, 0.0)]
        assert matching.unmatched_left == [2]
        assert matching.unmatched_right == [1]

    def test_none_keys_never_match(self):
        """Test None keys are skipped."""
        matching = key_match([None], [None], key=lambda s: s)
        assert matching.pairs == []

    def test_two_pass_prefers_keys(self):
        """Test key pairs survive even when far apart."""
        left = [("x", 0.0), (None, 5.0)]
        right = [(None, 0.0), ("x", 100.0)]
        matching = two_pass_match(
            left,
            right,
            key=lambda item: item[0],
            distance=lambda a, b: abs(a[1] - b[1]),
            max_distance=10,
        )
        assert matching.pairs == [(0, 1, 100.0), (1, 0, 5.0)]


class TestLayoutMatcher:
    """Tests for LayoutMatcher."""

    def test_negative_max_distance(self):
        """Test invalid max_match_distance is rejected."""
        with pytest.raises(ValueError, match="max_match_distance"):
            LayoutMatcher(max_match_distance=-0.1)

    def test_match_nodes_by_id(self):
        """Test nodes sharing an id match despite a large move."""
        a = [VisualNode("div", Rect(0, 0, 50, 50), element_id="cart")]
        b = [VisualNode("div", Rect(900, 700, 50, 50), element_id="cart")]
        matching = LayoutMatcher().match_nodes(a, b)
        assert [(i, j) for i, j, _ in matching.pairs] == [(0, 0)]

    def test_match_nodes_rejects_unrelated(self):
        """Test unrelated nodes stay unmatched."""
        a = [VisualNode("img", Rect(0, 0, 50, 50))]
        b = [VisualNode("p", Rect(900, 700, 300, 20), text="Hello", class_names=("x",))]
        matching = LayoutMatcher().match_nodes(a, b)
        assert matching.pairs == []

    def test_match_groups_by_key(self):
        """Test groups with equal keys match in the first pass."""
        a = [VisualNodeGroup("card", Rect(0, 0, 100, 100)), VisualNodeGroup("card", Rect(200, 0, 100, 100))]
        b = [VisualNodeGroup("card", Rect(200, 0, 100, 100)), VisualNodeGroup("card", Rect(0, 0, 100, 100))]
        matching = LayoutMatcher().match_groups(a, b, Rect(0, 0, 1280, 720))
        assert [(i, j) for i, j, _ in matching.pairs] == [(0, 1), (1, 0)]
