"""
Measurement and metrics from a segmentation plus a calibration scale

All values are kept at full floating-point precision; rounding happens only
in WoundMeasurement.display().
"""

import logging
from typing import Optional, Sequence, Union

import numpy as np

from .config import MeasurementConfig, PerimeterMethod, Settings, get_settings
from .errors import InvalidInputError, MeasurementUndefinedError
from .geometry import (
    polygon_perimeter,
    ramanujan_ellipse_perimeter,
    shoelace_area,
    simple_ellipse_perimeter,
)
from .models import (
    BoundaryPolygon,
    MeasurementMethod,
    PixelScale,
    Point,
    RasterImage,
    SegmentationMask,
    WoundMeasurement,
)

logger = logging.getLogger(__name__)


def ellipse_perimeter(length: float, width: float,
                      method: PerimeterMethod = PerimeterMethod.SIMPLE_ELLIPSE) -> float:
    """Approximate perimeter of an ellipse with the given full axes; not a boundary trace"""
    if method == PerimeterMethod.RAMANUJAN:
        return ramanujan_ellipse_perimeter(length, width)
    return simple_ellipse_perimeter(length, width)


class MeasurementEngine:
    """Converts a mask or polygon plus a PixelScale into a WoundMeasurement"""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        granulation = MeasurementConfig.get_granulation_config(settings)
        policy = MeasurementConfig.get_policy_config(settings)

        self.granulation_red_min = granulation['red_min']
        self.granulation_red_green_ratio = granulation['red_green_ratio']
        self.granulation_green_min = granulation['green_min']
        self.automatic_confidence = policy['automatic_confidence']
        self.manual_confidence = policy['manual_confidence']
        self.perimeter_method = policy['perimeter_method']

    @staticmethod
    def _pixels_per_cm(scale: PixelScale) -> float:
        ppcm = scale.pixels_per_cm
        if not ppcm > 0:
            raise InvalidInputError("Scale must be positive")
        return ppcm

    def granulation_percent(self, image: RasterImage, mask: np.ndarray) -> Optional[float]:
        """
        Share of wound pixels that look like healthy granulation tissue

        Heuristic: beefy red, i.e. high red, red well above green, green above
        blue and not too dark.
        """
        wound_pixels = int(np.count_nonzero(mask))
        if wound_pixels == 0:
            return None

        rgb = image.rgb.astype(np.float32)
        r = rgb[:, :, 0]
        g = rgb[:, :, 1]
        b = rgb[:, :, 2]
        granulation = (
            (r > self.granulation_red_min)
            & (r > g * self.granulation_red_green_ratio)
            & (g > b)
            & (g > self.granulation_green_min)
            & mask
        )
        return float(np.count_nonzero(granulation)) / wound_pixels * 100.0

    def measure_from_mask(self, mask: SegmentationMask, scale: PixelScale) -> WoundMeasurement:
        """
        Measure an automatic segmentation

        Length and width come from the bounding box of flagged pixels; the
        perimeter is an ellipse approximation from them.

        Raises:
            MeasurementUndefinedError: no pixel was flagged
        """
        ppcm = self._pixels_per_cm(scale)

        count = mask.pixel_count
        bbox = mask.bounding_box
        if count == 0 or bbox is None:
            raise MeasurementUndefinedError("No wound tissue detected in the image")

        length_cm = bbox.height / ppcm
        width_cm = bbox.width / ppcm
        area_cm2 = count / (ppcm * ppcm)
        perimeter_cm = ellipse_perimeter(length_cm, width_cm, self.perimeter_method)

        granulation = None
        if mask.source is not None:
            granulation = self.granulation_percent(mask.source, mask.mask)

        measurement = WoundMeasurement(
            length_cm=length_cm,
            width_cm=width_cm,
            area_cm2=area_cm2,
            perimeter_cm=perimeter_cm,
            granulation_percent=granulation,
            confidence=self.automatic_confidence,
            method=MeasurementMethod.AUTOMATIC,
            pixels_per_cm=ppcm
        )
        logger.info(f"Automatic measurement: {measurement.display()}")
        return measurement

    def measure_from_polygon(self, polygon: Union[BoundaryPolygon, Sequence[Point]],
                             scale: PixelScale) -> WoundMeasurement:
        """
        Measure a manually traced polygon

        The polygon is closed back to the first point. Self-intersecting
        outlines are measured as-is with the signed Shoelace sum.

        Raises:
            MeasurementUndefinedError: fewer than 3 distinct points or zero area
        """
        ppcm = self._pixels_per_cm(scale)

        if not isinstance(polygon, BoundaryPolygon):
            polygon = BoundaryPolygon(points=tuple(polygon))

        if polygon.distinct_point_count < 3:
            raise MeasurementUndefinedError(
                "Wound outline needs at least 3 distinct points",
                remediation="Clear the points and trace the wound boundary again"
            )

        area_px = polygon.pixel_count
        if area_px == 0:
            raise MeasurementUndefinedError(
                "Wound outline encloses no area",
                remediation="Clear the points and trace the wound boundary again"
            )

        bbox = polygon.bounding_box
        measurement = WoundMeasurement(
            length_cm=bbox.height / ppcm,
            width_cm=bbox.width / ppcm,
            area_cm2=area_px / (ppcm * ppcm),
            perimeter_cm=polygon.perimeter_px / ppcm,
            confidence=self.manual_confidence,
            method=MeasurementMethod.MANUAL,
            pixels_per_cm=ppcm
        )
        logger.info(f"Manual measurement: {measurement.display()}")
        return measurement


__all__ = [
    'MeasurementEngine',
    'ellipse_perimeter',
    'shoelace_area',
    'polygon_perimeter'
]
