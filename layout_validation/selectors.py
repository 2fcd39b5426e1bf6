#!/usr/bin/env python3
"""
Simple selectors for ignore lists.

Only the compound selectors calibration produces (and people typically
hand-write for ignore lists) are supported - no combinators:

    tag            .class          #id
    tag.class.b    tag#id          [role=banner]   [aria-label="Close"]

A comma separates alternatives. Anything unparseable matches nothing.
"""

import logging
import re

from .models import VisualNode

logger = logging.getLogger(__name__)

_COMPOUND_PATTERN = re.compile(
    r"""
    ^(?P<tag>[a-zA-Z][\w-]*|\*)?
    (?P<rest>(?:[.#][\w-]+|\[[\w-]+(?:=(?:"[^"]*"|'[^']*'|[^\]]*))?\])*)$
    """,
    re.VERBOSE,
)
_PART_PATTERN = re.compile(
    r"""([.#])([\w-]+)|\[([\w-]+)(?:=("[^"]*"|'[^']*'|[^\]]*))?\]""",
    re.VERBOSE,
)


def generate_selector(tag_name: str, class_names: "tuple[str, ...] | list[str]" = ()) -> str:
    """Selector from stable identifying attributes: first class, else tag."""
    if class_names:
        return f".{class_names[0]}"
    return tag_name.lower()


def _attribute_value(node: VisualNode, name: str) -> str | None:
    if name == "id":
        return node.element_id
    if name == "class":
        return " ".join(node.class_names)
    if name == "role":
        return node.role
    if name == "aria-label":
        return node.aria_label
    value = node.accessibility_state.get(name)
    return None if value is None else str(value)


def _matches_compound(node: VisualNode, selector: str) -> bool:
    match = _COMPOUND_PATTERN.match(selector)
    if not match or not selector:
        logger.debug(f"Unsupported selector ignored: {selector!r}")
        return False

    tag = match.group("tag")
    if tag and tag != "*" and tag.lower() != node.tag_name:
        return False

    for prefix, name, attribute, value in _PART_PATTERN.findall(match.group("rest")):
        if prefix == ".":
            if name not in node.class_names:
                return False
        elif prefix == "#":
            if node.element_id != name:
                return False
        else:
            actual = _attribute_value(node, attribute)
            if actual is None:
                return False
            if value:
                expected = value.strip("\"'")
                if actual != expected:
                    return False
    return True


def matches_selector(node: VisualNode, selector: str) -> bool:
    """True when ``node`` matches any alternative of a comma-separated selector."""
    return any(
        _matches_compound(node, part.strip())
        for part in selector.split(",")
        if part.strip()
    )


def matches_any(node: VisualNode, selectors: "tuple[str, ...] | list[str]") -> bool:
    return any(matches_selector(node, selector) for selector in selectors)


__all__ = ["generate_selector", "matches_selector", "matches_any"]
