"""Layout Validator - Layout Similarity Checking.

Matches elements and groups between two layout snapshots under positional
and semantic uncertainty, scores overall similarity and classifies
differences. Tree-aware and flat comparators answer different questions and
are both kept available.

Tier 3 validator (Monitor) - emits metrics, doesn't block.
"""

from .accessibility import AccessibilityMatch, AccessibilityMatcher
from .comparison import (
    ComparisonResult,
    ComparisonStatistics,
    GroupMatch,
    MatchDifferences,
    MatchType,
    NodeMatch,
    summarize_changes,
)
from .flat_comparator import FlatComparator, FlattenedGroup, flatten_groups
from .matcher import GroupWeights, LayoutMatcher, Matching, NodeWeights, group_key
from .tree_comparator import TreeComparator
from .validator import (
    LayoutConfig,
    LayoutValidator,
    ValidationResult,
    ValidationTier,
    compare_layouts,
)

__all__ = [
    # Main exports
    "LayoutValidator",
    "LayoutConfig",
    "compare_layouts",
    # Types
    "ValidationResult",
    "ValidationTier",
    # Comparators
    "TreeComparator",
    "FlatComparator",
    "FlattenedGroup",
    "flatten_groups",
    # Matching
    "LayoutMatcher",
    "Matching",
    "NodeWeights",
    "GroupWeights",
    "group_key",
    "AccessibilityMatcher",
    "AccessibilityMatch",
    # Results
    "ComparisonResult",
    "ComparisonStatistics",
    "NodeMatch",
    "GroupMatch",
    "MatchDifferences",
    "MatchType",
    "summarize_changes",
]
