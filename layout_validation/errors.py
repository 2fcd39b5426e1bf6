#!/usr/bin/env python3
"""
Error and warning types for layout comparison and calibration.

Fatal conditions are exceptions; conditions a caller may knowingly accept
(cross-viewport comparison, weak calibration) are warnings issued through
the ``warnings`` module so callers can filter or escalate them.
"""


class LayoutValidationError(Exception):
    """Base class for all layout validation errors."""


class InvalidGeometry(LayoutValidationError, ValueError):
    """A rectangle or viewport holds non-finite or negative dimensions."""


class CalibrationIncomplete(LayoutValidationError):
    """Capture failures prevented calibration from reaching min_iterations."""

    def __init__(
        self,
        message: str,
        successful_samples: int = 0,
        required_samples: int = 0,
        failures: list[BaseException] | None = None,
    ):
        super().__init__(message)
        self.successful_samples = successful_samples
        self.required_samples = required_samples
        self.failures = list(failures or [])


class DimensionMismatch(UserWarning):
    """Snapshots were captured with different viewport sizes."""


class LowConfidenceCalibration(UserWarning):
    """Calibration finished with confidence below the usability floor."""


__all__ = [
    "LayoutValidationError",
    "InvalidGeometry",
    "CalibrationIncomplete",
    "DimensionMismatch",
    "LowConfidenceCalibration",
]
