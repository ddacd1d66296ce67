"""
Wound planimetry: calibration, segmentation and measurement of wound images
"""

from .errors import (
    PlanimetryError,
    InvalidInputError,
    DeviceUnavailableError,
    CalibrationDegenerateError,
    InsufficientInputError,
    MeasurementUndefinedError,
    SegmentationFailedError,
    PipelineStateError
)
from .models import (
    REFERENCE_OBJECTS,
    CaptureSource,
    ImageUpload,
    MeasurementHandoff,
    PipelineStage,
    PixelScale,
    Point,
    RasterImage,
    ReferenceSpec,
    SegmentationStrategy,
    WoundMeasurement,
    get_reference
)
from .calibration import CalibrationEngine
from .segmentation import SegmentationEngine, AutomaticSegmenter, ManualSegmenter
from .measurement import MeasurementEngine
from .acquisition import ImageAcquisition
from .pipeline import WoundMeasurementPipeline

__version__ = '0.1.0'

__all__ = [
    'PlanimetryError',
    'InvalidInputError',
    'DeviceUnavailableError',
    'CalibrationDegenerateError',
    'InsufficientInputError',
    'MeasurementUndefinedError',
    'SegmentationFailedError',
    'PipelineStateError',
    'REFERENCE_OBJECTS',
    'CaptureSource',
    'ImageUpload',
    'MeasurementHandoff',
    'PipelineStage',
    'PixelScale',
    'Point',
    'RasterImage',
    'ReferenceSpec',
    'SegmentationStrategy',
    'WoundMeasurement',
    'get_reference',
    'CalibrationEngine',
    'SegmentationEngine',
    'AutomaticSegmenter',
    'ManualSegmenter',
    'MeasurementEngine',
    'ImageAcquisition',
    'WoundMeasurementPipeline'
]
