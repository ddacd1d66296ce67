"""
Error taxonomy for the wound planimetry pipeline

Every error here is recoverable: the worst case is returning the session to
an earlier pipeline stage.
"""

from typing import Optional


class PlanimetryError(Exception):
    """Base class for all pipeline errors"""

    remediation: str = "Return to the previous step and try again"
    fallback: Optional[str] = None

    def __init__(self, message: str = "", remediation: Optional[str] = None,
                 fallback: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if remediation is not None:
            self.remediation = remediation
        if fallback is not None:
            self.fallback = fallback

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self):
        return {
            'error': self.code,
            'message': self.message,
            'remediation': self.remediation,
            'fallback': self.fallback
        }


class InvalidInputError(PlanimetryError, ValueError):
    """Bad or missing numeric or file input"""
    remediation = "Check the value entered or upload a different image"


class DeviceUnavailableError(PlanimetryError):
    """Camera permission denied or hardware missing"""
    remediation = "Unable to access camera. Please upload an image instead."
    fallback = "file_upload"


class CalibrationDegenerateError(PlanimetryError):
    """Calibration points coincide"""
    remediation = "Reset calibration and click both ends of the reference object"


class InsufficientInputError(PlanimetryError):
    """Not enough points collected"""
    remediation = "Please mark at least 3 points around the wound boundary"


class MeasurementUndefinedError(PlanimetryError):
    """Empty mask or degenerate polygon at measurement time"""
    remediation = "No wound region found. Trace the boundary manually or use a different image"
    fallback = "manual"


class SegmentationFailedError(PlanimetryError):
    """Automatic segmentation failed; the manual strategy is offered instead"""
    remediation = "AI segmentation failed. Please use manual mode."
    fallback = "manual"


class PipelineStateError(PlanimetryError):
    """Operation is not valid in the current pipeline stage"""
    remediation = "Complete the current step first"


__all__ = [
    'PlanimetryError',
    'InvalidInputError',
    'DeviceUnavailableError',
    'CalibrationDegenerateError',
    'InsufficientInputError',
    'MeasurementUndefinedError',
    'SegmentationFailedError',
    'PipelineStateError'
]
