"""
Stability - flakiness detection and adaptive calibration.

Components:
- FlakinessDetector: per-node variation across repeated snapshots
- ConvergenceEvaluator: stopping rule for sequential sampling
- AdaptiveCalibrator: captures samples until stability estimates converge
"""

from .calibrator import (
    AdaptiveCalibrator,
    CalibrationConfig,
    CalibrationProgress,
    CalibrationResult,
    CalibratorState,
)
from .flakiness import FlakinessAnalysis, FlakinessDetector, NodeVariation
from .termination import CalibrationPhase, ConvergenceDecision, ConvergenceEvaluator

__all__ = [
    # Calibrator
    "AdaptiveCalibrator",
    "CalibrationConfig",
    "CalibrationProgress",
    "CalibrationResult",
    "CalibratorState",
    # Termination
    "CalibrationPhase",
    "ConvergenceDecision",
    "ConvergenceEvaluator",
    # Flakiness
    "FlakinessDetector",
    "FlakinessAnalysis",
    "NodeVariation",
]
