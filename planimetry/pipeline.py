"""
Wound measurement pipeline state machine

idle -> acquiring -> calibrating -> segmenting -> measured, with explicit
back-transitions on user resets. Each pipeline instance owns its own state;
nothing is shared between sessions.
"""

import logging
from typing import Callable, Dict, FrozenSet, Optional

from .acquisition import ImageAcquisition
from .calibration import CalibrationEngine
from .config import Settings, get_settings
from .errors import MeasurementUndefinedError, PipelineStateError
from .measurement import MeasurementEngine
from .models import (
    BoundaryPolygon,
    CaptureSource,
    ImageUpload,
    MeasurementHandoff,
    PipelineStage,
    PipelineState,
    PixelScale,
    RasterImage,
    ReferenceSpec,
    SegmentationMask,
    SegmentationStrategy,
    WoundMeasurement,
    REFERENCE_OBJECTS,
)
from .segmentation import SegmentationEngine
from .utils import image_utils

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[PipelineStage, FrozenSet[PipelineStage]] = {
    PipelineStage.IDLE: frozenset({PipelineStage.ACQUIRING}),
    PipelineStage.ACQUIRING: frozenset({PipelineStage.CALIBRATING, PipelineStage.IDLE}),
    PipelineStage.CALIBRATING: frozenset({
        PipelineStage.SEGMENTING, PipelineStage.ACQUIRING, PipelineStage.IDLE
    }),
    PipelineStage.SEGMENTING: frozenset({
        PipelineStage.MEASURED, PipelineStage.CALIBRATING, PipelineStage.ACQUIRING, PipelineStage.IDLE
    }),
    PipelineStage.MEASURED: frozenset({
        PipelineStage.IDLE, PipelineStage.SEGMENTING, PipelineStage.CALIBRATING, PipelineStage.ACQUIRING
    }),
}


class WoundMeasurementPipeline:
    """Single-session wound planimetry pipeline"""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 device_factory=None,
                 on_complete: Optional[Callable[[MeasurementHandoff], None]] = None):
        self.settings = settings or get_settings()
        self.on_complete = on_complete

        self.acquisition = ImageAcquisition(self.settings, device_factory=device_factory)
        self.measurement_engine = MeasurementEngine(self.settings)
        self.segmentation = SegmentationEngine(self.settings)

        self.stage = PipelineStage.IDLE
        self.image: Optional[RasterImage] = None
        self.reference: ReferenceSpec = REFERENCE_OBJECTS[0]
        self.calibration: Optional[CalibrationEngine] = None
        self.scale: Optional[PixelScale] = None
        self.mask: Optional[SegmentationMask] = None
        self.polygon: Optional[BoundaryPolygon] = None
        self.measurement: Optional[WoundMeasurement] = None

    # State machine

    def _transition(self, target: PipelineStage):
        if target == self.stage:
            return
        if target not in TRANSITIONS[self.stage]:
            raise PipelineStateError(
                f"Cannot move from {self.stage.value} to {target.value}"
            )

        # Leaving acquisition by any path frees the camera
        if self.stage == PipelineStage.ACQUIRING:
            self.acquisition.release_capture()

        logger.info(f"Pipeline stage: {self.stage.value} -> {target.value}")
        self.stage = target

    def _require(self, *stages: PipelineStage):
        if self.stage not in stages:
            expected = ', '.join(s.value for s in stages)
            raise PipelineStateError(
                f"Operation requires stage {expected}, pipeline is {self.stage.value}"
            )

    def _discard_segmentation(self):
        self.segmentation.reset()
        self.mask = None
        self.polygon = None
        self.measurement = None

    def _discard_calibration(self):
        if self.calibration is not None:
            self.calibration.reset()
        self.scale = None

    def _discard_image(self):
        self.image = None
        self.calibration = None

    # Acquisition

    def begin_acquisition(self):
        """Enter acquisition, discarding any image and later-stage state"""
        self.acquisition.release_capture()
        self._discard_segmentation()
        self._discard_calibration()
        self._discard_image()
        self._transition(PipelineStage.ACQUIRING)

    def start_camera(self):
        """Open the camera; on DeviceUnavailableError file upload remains available"""
        self._require(PipelineStage.ACQUIRING)
        self.acquisition.start_capture(CaptureSource.CAMERA)

    def capture_frame(self) -> RasterImage:
        self._require(PipelineStage.ACQUIRING)
        image = self.acquisition.capture_frame()
        self._accept_image(image)
        return image

    def upload_image(self, upload: ImageUpload) -> RasterImage:
        if self.stage == PipelineStage.IDLE:
            self.begin_acquisition()
        self._require(PipelineStage.ACQUIRING)
        image = self.acquisition.start_capture(CaptureSource.FILE, upload)
        self._accept_image(image)
        return image

    def _accept_image(self, image: RasterImage):
        self.image = image
        self.calibration = CalibrationEngine(
            image.width, image.height,
            reference=self.reference,
            min_distance_px=self.settings.calibration_min_distance_px
        )
        self._transition(PipelineStage.CALIBRATING)

    def cancel_acquisition(self):
        self._require(PipelineStage.ACQUIRING)
        self._transition(PipelineStage.IDLE)

    # Calibration

    def select_reference(self, spec: ReferenceSpec):
        self._require(PipelineStage.IDLE, PipelineStage.ACQUIRING, PipelineStage.CALIBRATING)
        self.reference = spec
        self.scale = None
        if self.calibration is not None:
            self.calibration.select_reference(spec)

    def record_calibration_point(self, x: float, y: float) -> bool:
        self._require(PipelineStage.CALIBRATING)
        return self.calibration.record_point(x, y)

    def reset_calibration(self):
        self._require(PipelineStage.CALIBRATING)
        self._discard_calibration()

    def confirm_calibration(self) -> PixelScale:
        """Compute the scale and move on to segmentation; blocked until the scale is valid"""
        self._require(PipelineStage.CALIBRATING)
        self.scale = self.calibration.compute_scale()
        self._discard_segmentation()
        self._transition(PipelineStage.SEGMENTING)
        return self.scale

    # Segmentation

    def select_strategy(self, strategy: SegmentationStrategy):
        self._require(PipelineStage.SEGMENTING)
        self._discard_segmentation()
        self.segmentation.select_strategy(strategy)

    def run_automatic(self) -> WoundMeasurement:
        """
        Segment automatically and measure

        SegmentationFailedError switches the session to manual tracing.
        MeasurementUndefinedError leaves the pipeline in segmentation.
        """
        self._require(PipelineStage.SEGMENTING)
        if self.segmentation.strategy != SegmentationStrategy.AUTOMATIC:
            raise PipelineStateError("Automatic segmentation is not the selected strategy")
        self._discard_segmentation()
        mask = self.segmentation.run_automatic(self.image)
        self.mask = mask
        try:
            measurement = self.measurement_engine.measure_from_mask(mask, self.scale)
        except MeasurementUndefinedError:
            logger.warning("Automatic segmentation found no wound tissue")
            raise
        return self._accept_measurement(measurement)

    def add_boundary_point(self, x: float, y: float):
        self._require(PipelineStage.SEGMENTING)
        self.segmentation.add_boundary_point(x, y)

    def clear_boundary_points(self):
        self._require(PipelineStage.SEGMENTING)
        self.segmentation.clear_boundary_points()

    def finalize_polygon(self) -> WoundMeasurement:
        self._require(PipelineStage.SEGMENTING)
        polygon = self.segmentation.finalize_polygon()
        measurement = self.measurement_engine.measure_from_polygon(polygon, self.scale)
        self.polygon = polygon
        return self._accept_measurement(measurement)

    def _accept_measurement(self, measurement: WoundMeasurement) -> WoundMeasurement:
        self.measurement = measurement
        self._transition(PipelineStage.MEASURED)
        return measurement

    # Back-navigation

    def remeasure(self):
        self._require(PipelineStage.MEASURED)
        self._discard_segmentation()
        self._transition(PipelineStage.SEGMENTING)

    def recalibrate(self):
        self._require(PipelineStage.SEGMENTING, PipelineStage.MEASURED)
        self._discard_segmentation()
        self._discard_calibration()
        self._transition(PipelineStage.CALIBRATING)

    def restart(self):
        """Back to acquisition; the current image is discarded"""
        self._require(PipelineStage.CALIBRATING, PipelineStage.SEGMENTING, PipelineStage.MEASURED)
        self._discard_segmentation()
        self._discard_calibration()
        self._discard_image()
        self._transition(PipelineStage.ACQUIRING)

    def reset(self):
        self.acquisition.release_capture()
        self._discard_segmentation()
        self._discard_calibration()
        self._discard_image()
        self._transition(PipelineStage.IDLE)

    # Hand-off

    def render_snapshot(self) -> str:
        if self.image is None:
            raise PipelineStateError("No image to render")
        annotations = {}
        if self.mask is not None:
            annotations['mask'] = self.mask.mask
            annotations['bounding_box'] = self.mask.bounding_box
        if self.polygon is not None:
            annotations['polygon'] = list(self.polygon.points)
        return image_utils.render_snapshot(self.image, quality=self.settings.snapshot_quality, **annotations)

    def complete(self) -> MeasurementHandoff:
        """Hand the measurement and annotated image to the clinical record"""
        self._require(PipelineStage.MEASURED)
        handoff = MeasurementHandoff(
            measurement=self.measurement,
            image_snapshot=self.render_snapshot()
        )
        if self.on_complete is not None:
            self.on_complete(handoff)
        logger.info("Measurement handed off")
        return handoff

    def snapshot(self) -> PipelineState:
        """Current state for rendering"""
        return PipelineState(
            stage=self.stage,
            has_image=self.image is not None,
            image_size=(self.image.width, self.image.height) if self.image is not None else None,
            camera_active=self.acquisition.is_streaming,
            reference=self.reference,
            calibration_points=self.calibration.points if self.calibration is not None else [],
            pixels_per_cm=self.scale.pixels_per_cm if self.scale is not None else None,
            strategy=self.segmentation.strategy,
            automatic_status=self.segmentation.automatic.status,
            manual_status=self.segmentation.manual.status,
            boundary_points=self.segmentation.manual.points,
            measurement=(
                self.measurement.display(self.settings.display_precision)
                if self.measurement is not None else None
            )
        )
