"""
Layout Validation - layout comparison and adaptive calibration.

Decides whether two observations of a page's rendered layout represent the
same UI despite DOM churn, reflow noise and dynamic content, and learns
per-page noise tolerances from repeated observations.

Components:
- TreeComparator / FlatComparator: match and score two LayoutSnapshots
- FlakinessDetector: per-node variation across repeated snapshots
- AdaptiveCalibrator: sequential sampling that derives ComparisonSettings
- ThresholdEvaluator: pass / warning / failure policy over results
"""

from .errors import (
    CalibrationIncomplete,
    DimensionMismatch,
    InvalidGeometry,
    LayoutValidationError,
    LowConfidenceCalibration,
)
from .models import (
    ComparisonSettings,
    LayoutSnapshot,
    Point,
    Rect,
    Viewport,
    VisualNode,
    VisualNodeGroup,
)
from .validators.layout import (
    ComparisonResult,
    FlatComparator,
    LayoutValidator,
    TreeComparator,
    compare_layouts,
)
from .validators.stability import (
    AdaptiveCalibrator,
    CalibrationConfig,
    CalibrationResult,
    FlakinessDetector,
)
from .validators.thresholds import ThresholdConfig, ThresholdEvaluator

__version__ = "0.1.0"

__all__ = [
    # Models
    "Point",
    "Rect",
    "Viewport",
    "VisualNode",
    "VisualNodeGroup",
    "LayoutSnapshot",
    "ComparisonSettings",
    # Comparison
    "ComparisonResult",
    "TreeComparator",
    "FlatComparator",
    "LayoutValidator",
    "compare_layouts",
    # Calibration
    "FlakinessDetector",
    "AdaptiveCalibrator",
    "CalibrationConfig",
    "CalibrationResult",
    # Thresholds
    "ThresholdConfig",
    "ThresholdEvaluator",
    # Errors
    "LayoutValidationError",
    "InvalidGeometry",
    "CalibrationIncomplete",
    "DimensionMismatch",
    "LowConfidenceCalibration",
]
