#!/usr/bin/env python3
"""
Layout data model - snapshots, nodes, groups and comparison settings.

Snapshots arrive from the capture step either as objects or as the JSON it
emits (camelCase keys). Geometry is validated once, when a ``Rect`` or
``Viewport`` is built, so every algorithm downstream can assume finite,
non-negative dimensions.

Tree items are a closed union: a child of a group is either a
``VisualNode`` (leaf) or a ``VisualNodeGroup``. Code walking a tree should
branch on both with ``isinstance`` - there is no third kind.
"""

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import InvalidGeometry

MAX_TEXT_LENGTH = 100


def _check_finite(name: str, value: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidGeometry(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise InvalidGeometry(f"{name} must be finite, got {value!r}")
    return number


@dataclass(frozen=True)
class Point:
    """A point in page coordinates."""

    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in CSS pixels."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        for name in ("x", "y", "width", "height"):
            object.__setattr__(self, name, _check_finite(name, getattr(self, name)))
        if self.width < 0 or self.height < 0:
            raise InvalidGeometry(
                f"Rect dimensions must be non-negative, got "
                f"{self.width}x{self.height}"
            )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_dict(self) -> dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Rect":
        if not isinstance(data, dict):
            raise InvalidGeometry(f"Rect must be an object, got {data!r}")
        return cls(
            x=data.get("x", 0.0),
            y=data.get("y", 0.0),
            width=data.get("width", 0.0),
            height=data.get("height", 0.0),
        )


@dataclass(frozen=True)
class Viewport:
    """Browser viewport the snapshot was captured with."""

    width: float
    height: float

    def __post_init__(self):
        for name in ("width", "height"):
            value = _check_finite(name, getattr(self, name))
            if value <= 0:
                raise InvalidGeometry(f"Viewport {name} must be positive, got {value}")
            object.__setattr__(self, name, value)

    def as_rect(self) -> Rect:
        return Rect(0.0, 0.0, self.width, self.height)

    def to_dict(self) -> dict[str, float]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class VisualNode:
    """A leaf UI element as extracted from the rendered page."""

    tag_name: str
    rect: Rect
    element_id: str | None = None
    class_names: tuple[str, ...] = ()
    text: str | None = None
    role: str | None = None
    aria_label: str | None = None
    accessibility_state: dict[str, Any] = field(default_factory=dict)
    interactive: bool = False
    importance: float = 0.0
    visible: bool = True

    def __post_init__(self):
        object.__setattr__(self, "tag_name", self.tag_name.lower())
        object.__setattr__(self, "class_names", tuple(self.class_names))
        if self.text is not None and len(self.text) > MAX_TEXT_LENGTH:
            object.__setattr__(self, "text", self.text[:MAX_TEXT_LENGTH])
        if not 0.0 <= self.importance <= 100.0:
            raise ValueError("importance must be between 0 and 100")

    def accessibility_attributes(self) -> set[str]:
        """Flatten role, label and state into comparable ``key=value`` strings."""
        attributes = set()
        if self.role:
            attributes.add(f"role={self.role}")
        if self.aria_label:
            attributes.add(f"aria-label={self.aria_label}")
        for key, value in self.accessibility_state.items():
            attributes.add(f"{key}={value}")
        return attributes

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "node",
            "tagName": self.tag_name,
            "id": self.element_id,
            "classNames": list(self.class_names),
            "rect": self.rect.to_dict(),
            "text": self.text,
            "role": self.role,
            "ariaLabel": self.aria_label,
            "accessibilityState": dict(self.accessibility_state),
            "isInteractive": self.interactive,
            "importance": self.importance,
            "isVisible": self.visible,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VisualNode":
        class_names = data.get("classNames")
        if class_names is None:
            class_name = data.get("className") or ""
            class_names = class_name.split() if isinstance(class_name, str) else []
        return cls(
            tag_name=data.get("tagName", "div"),
            rect=Rect.from_dict(data.get("rect") or data.get("bounds") or {}),
            element_id=data.get("id") or None,
            class_names=tuple(class_names),
            text=data.get("text") or None,
            role=data.get("role") or None,
            aria_label=data.get("ariaLabel") or None,
            accessibility_state=dict(data.get("accessibilityState") or {}),
            interactive=bool(data.get("isInteractive", False)),
            importance=float(data.get("importance", 0.0)),
            visible=bool(data.get("isVisible", True)),
        )


@dataclass(frozen=True)
class VisualNodeGroup:
    """A semantically labeled subtree of the layout."""

    type: str
    bounds: Rect
    importance: float = 0.0
    label: str = ""
    children: tuple["TreeItem", ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "children", tuple(self.children))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "group",
            "type": self.type,
            "bounds": self.bounds.to_dict(),
            "importance": self.importance,
            "label": self.label,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VisualNodeGroup":
        return cls(
            type=data.get("type", "container"),
            bounds=Rect.from_dict(data.get("bounds") or {}),
            importance=float(data.get("importance", 0.0)),
            label=data.get("label", ""),
            children=tuple(tree_item_from_dict(c) for c in data.get("children", [])),
        )


TreeItem = Union[VisualNode, VisualNodeGroup]


def tree_item_from_dict(data: dict[str, Any]) -> TreeItem:
    """Decode a child entry, using ``kind`` when present and the shape otherwise."""
    kind = data.get("kind")
    if kind == "node" or (kind is None and "tagName" in data):
        return VisualNode.from_dict(data)
    if kind in (None, "group"):
        return VisualNodeGroup.from_dict(data)
    raise ValueError(f"Unknown tree item kind: {kind!r}")


def split_children(
    group: VisualNodeGroup,
) -> tuple[list[VisualNodeGroup], list[VisualNode]]:
    """Separate a group's children into sub-groups and leaf nodes (order kept)."""
    groups: list[VisualNodeGroup] = []
    nodes: list[VisualNode] = []
    for child in group.children:
        if isinstance(child, VisualNodeGroup):
            groups.append(child)
        elif isinstance(child, VisualNode):
            nodes.append(child)
        else:
            raise TypeError(f"Unexpected tree item: {type(child).__name__}")
    return groups, nodes


def iter_leaf_nodes(items: "tuple[TreeItem, ...] | list[TreeItem]") -> Iterator[VisualNode]:
    """Depth-first walk yielding every leaf node under ``items``."""
    for item in items:
        if isinstance(item, VisualNode):
            yield item
        else:
            yield from iter_leaf_nodes(item.children)


def subtree_size(item: TreeItem) -> int:
    """Number of items in the subtree rooted at ``item`` (itself included)."""
    if isinstance(item, VisualNode):
        return 1
    return 1 + sum(subtree_size(child) for child in item.children)


@dataclass(frozen=True)
class LayoutSnapshot:
    """One captured observation of a page layout."""

    viewport: Viewport
    elements: tuple[VisualNode, ...] = ()
    groups: tuple[VisualNodeGroup, ...] | None = None
    url: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "elements", tuple(self.elements))
        if self.groups is not None:
            object.__setattr__(self, "groups", tuple(self.groups))

    @property
    def has_groups(self) -> bool:
        """True when a non-empty group tree was captured."""
        return bool(self.groups)

    @property
    def is_empty(self) -> bool:
        return not self.elements and not self.groups

    def all_nodes(self) -> tuple[VisualNode, ...]:
        """Flat element list, or the tree's leaves when no flat list was captured."""
        if self.elements or not self.groups:
            return self.elements
        return tuple(iter_leaf_nodes(self.groups))

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "viewport": self.viewport.to_dict(),
            "elements": [node.to_dict() for node in self.elements],
            "groups": (
                [group.to_dict() for group in self.groups]
                if self.groups is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LayoutSnapshot":
        """Build a snapshot from capture JSON, rejecting malformed geometry."""
        viewport = data.get("viewport") or {}
        groups = data.get("groups")
        return cls(
            viewport=Viewport(viewport.get("width", 0), viewport.get("height", 0)),
            elements=tuple(VisualNode.from_dict(e) for e in data.get("elements", [])),
            groups=(
                tuple(VisualNodeGroup.from_dict(g) for g in groups)
                if groups is not None
                else None
            ),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class ComparisonSettings:
    """Tolerances applied when comparing two snapshots."""

    position_tolerance_px: float = 5.0
    size_tolerance_percent: float = 5.0
    text_similarity_threshold: float = 0.8
    importance_threshold: float = 0.0
    ignore_selectors: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "ignore_selectors", tuple(self.ignore_selectors))
        if self.position_tolerance_px < 0:
            raise ValueError("position_tolerance_px must be non-negative")
        if self.size_tolerance_percent < 0:
            raise ValueError("size_tolerance_percent must be non-negative")
        if not 0.0 <= self.text_similarity_threshold <= 1.0:
            raise ValueError("text_similarity_threshold must be between 0.0 and 1.0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "positionTolerancePx": self.position_tolerance_px,
            "sizeTolerancePercent": self.size_tolerance_percent,
            "textSimilarityThreshold": self.text_similarity_threshold,
            "importanceThreshold": self.importance_threshold,
            "ignoreSelectors": list(self.ignore_selectors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ComparisonSettings":
        defaults = cls()
        return cls(
            position_tolerance_px=data.get(
                "positionTolerancePx", defaults.position_tolerance_px
            ),
            size_tolerance_percent=data.get(
                "sizeTolerancePercent", defaults.size_tolerance_percent
            ),
            text_similarity_threshold=data.get(
                "textSimilarityThreshold", defaults.text_similarity_threshold
            ),
            importance_threshold=data.get(
                "importanceThreshold", defaults.importance_threshold
            ),
            ignore_selectors=tuple(data.get("ignoreSelectors", ())),
        )


__all__ = [
    "MAX_TEXT_LENGTH",
    "Point",
    "Rect",
    "Viewport",
    "VisualNode",
    "VisualNodeGroup",
    "TreeItem",
    "LayoutSnapshot",
    "ComparisonSettings",
    "tree_item_from_dict",
    "split_children",
    "iter_leaf_nodes",
    "subtree_size",
]
