"""
Wound segmentation: automatic colour thresholding or a manually traced polygon

The automatic strategy is a heuristic threshold classifier over normalized
RGB channels, not a trained model. It approximates reddish/pink tissue
against typical skin and background.
"""

import math
import logging
from typing import Dict, List, Optional

import numpy as np

from .config import SegmentationConfig, Settings, get_settings
from .errors import InsufficientInputError, InvalidInputError, PipelineStateError, SegmentationFailedError
from .models import (
    AutomaticStatus,
    BoundaryPolygon,
    ManualStatus,
    Point,
    RasterImage,
    SegmentationMask,
    SegmentationStrategy,
)

logger = logging.getLogger(__name__)

MIN_POLYGON_POINTS = 3


def classify_wound_pixels(rgb: np.ndarray, red_min: float, green_max: float,
                          blue_max: float) -> np.ndarray:
    """Flag pixels with r > red_min, g < green_max and b < blue_max on channels scaled to [0, 1]"""
    normalized = rgb.astype(np.float32) / 255.0
    r = normalized[:, :, 0]
    g = normalized[:, :, 1]
    b = normalized[:, :, 2]
    return (r > red_min) & (g < green_max) & (b < blue_max)


class AutomaticSegmenter:
    """awaiting_run -> running -> done | failed"""

    def __init__(self, red_min: float = 0.35, green_max: float = 0.6, blue_max: float = 0.6):
        self.red_min = red_min
        self.green_max = green_max
        self.blue_max = blue_max
        self.status = AutomaticStatus.AWAITING_RUN
        self.mask: Optional[SegmentationMask] = None

    @classmethod
    def from_config(cls, config: Dict[str, float]) -> 'AutomaticSegmenter':
        return cls(**config)

    def run(self, image: RasterImage) -> SegmentationMask:
        """
        Classify every pixel of the image

        The mask is published only once it is complete.

        Raises:
            SegmentationFailedError: the numeric step failed; use the manual strategy
        """
        self.status = AutomaticStatus.RUNNING
        self.mask = None
        try:
            flagged = classify_wound_pixels(image.rgb, self.red_min, self.green_max, self.blue_max)
            mask = SegmentationMask(mask=flagged, source=image)
        except Exception as e:
            self.status = AutomaticStatus.FAILED
            logger.error(f"Segmentation error: {str(e)}")
            raise SegmentationFailedError(f"Automatic segmentation failed: {str(e)}") from e

        self.mask = mask
        self.status = AutomaticStatus.DONE
        logger.info(f"Automatic segmentation flagged {mask.pixel_count} of "
                    f"{image.width * image.height} pixels")
        return mask

    def reset(self):
        self.status = AutomaticStatus.AWAITING_RUN
        self.mask = None


class ManualSegmenter:
    """collecting_points -> ready once three points exist"""

    def __init__(self):
        self._points: List[Point] = []

    @property
    def points(self) -> List[Point]:
        return list(self._points)

    @property
    def status(self) -> ManualStatus:
        if len(self._points) >= MIN_POLYGON_POINTS:
            return ManualStatus.READY
        return ManualStatus.COLLECTING_POINTS

    def add_boundary_point(self, x: float, y: float):
        x, y = float(x), float(y)
        if not (math.isfinite(x) and math.isfinite(y)):
            raise InvalidInputError(f"Boundary point must have finite coordinates (got {x}, {y})")
        # Click order is kept; no reordering or deduplication
        self._points.append(Point(x=x, y=y))
        logger.debug(f"Boundary point {len(self._points)}: ({x:.1f}, {y:.1f})")

    def clear_boundary_points(self):
        self._points = []

    def finalize_polygon(self) -> BoundaryPolygon:
        if len(self._points) < MIN_POLYGON_POINTS:
            raise InsufficientInputError("need at least 3 points")
        return BoundaryPolygon(points=tuple(self._points))


class SegmentationEngine:
    """Holds both strategies; the session uses one at a time"""

    def __init__(self, settings: Optional[Settings] = None,
                 strategy: SegmentationStrategy = SegmentationStrategy.AUTOMATIC):
        settings = settings or get_settings()
        self.automatic = AutomaticSegmenter.from_config(SegmentationConfig.get_classifier_config(settings))
        self.manual = ManualSegmenter()
        self.strategy = SegmentationStrategy(strategy)

    def select_strategy(self, strategy: SegmentationStrategy):
        self.strategy = SegmentationStrategy(strategy)
        logger.info(f"Segmentation strategy: {self.strategy.value}")

    def run_automatic(self, image: RasterImage) -> SegmentationMask:
        """Run the colour classifier; on failure the session falls back to manual tracing"""
        if self.strategy != SegmentationStrategy.AUTOMATIC:
            raise PipelineStateError("Automatic segmentation is not the selected strategy")
        try:
            return self.automatic.run(image)
        except SegmentationFailedError:
            logger.warning("Falling back to manual segmentation")
            self.strategy = SegmentationStrategy.MANUAL
            raise

    def _require_manual(self):
        if self.strategy != SegmentationStrategy.MANUAL:
            raise PipelineStateError("Manual tracing is not the selected strategy")

    def add_boundary_point(self, x: float, y: float):
        self._require_manual()
        self.manual.add_boundary_point(x, y)

    def clear_boundary_points(self):
        self.manual.clear_boundary_points()

    def finalize_polygon(self) -> BoundaryPolygon:
        self._require_manual()
        return self.manual.finalize_polygon()

    def reset(self):
        self.automatic.reset()
        self.manual.clear_boundary_points()
