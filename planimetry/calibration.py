"""
Pixel-to-centimetre calibration from two clicks on a reference object
"""

import math
import logging
from typing import List, Optional

from .errors import CalibrationDegenerateError, InsufficientInputError, InvalidInputError
from .geometry import euclidean_distance
from .models import REFERENCE_OBJECTS, PixelScale, Point, ReferenceSpec

logger = logging.getLogger(__name__)

REQUIRED_POINTS = 2


class CalibrationEngine:
    """
    Turns two user-marked points on a reference object into a PixelScale

    Only the numeric reference length enters the formula; the label of the
    chosen object is irrelevant.
    """

    def __init__(self, image_width: int, image_height: int,
                 reference: ReferenceSpec = REFERENCE_OBJECTS[0],
                 min_distance_px: float = 1e-6):
        self.image_width = image_width
        self.image_height = image_height
        self.reference = reference
        self.min_distance_px = min_distance_px
        self._points: List[Point] = []
        self._scale: Optional[PixelScale] = None

    @property
    def points(self) -> List[Point]:
        return list(self._points)

    @property
    def scale(self) -> Optional[PixelScale]:
        return self._scale

    @property
    def is_complete(self) -> bool:
        return len(self._points) == REQUIRED_POINTS

    def select_reference(self, spec: ReferenceSpec):
        self.reference = spec
        self._scale = None
        logger.info(f"Calibration reference: {spec.label} ({spec.physical_length_cm} cm)")

    def record_point(self, x: float, y: float) -> bool:
        """
        Record a click, clamped to the image extent

        Returns:
            False when two points already exist and the click was ignored

        Raises:
            InvalidInputError: a coordinate is NaN or infinite
        """
        if len(self._points) >= REQUIRED_POINTS:
            logger.debug("Calibration already has two points; click ignored")
            return False

        x, y = float(x), float(y)
        if not (math.isfinite(x) and math.isfinite(y)):
            raise InvalidInputError(f"Calibration point must have finite coordinates (got {x}, {y})")

        point = Point(
            x=min(max(x, 0.0), float(self.image_width)),
            y=min(max(y, 0.0), float(self.image_height))
        )
        self._points.append(point)
        logger.debug(f"Calibration point {len(self._points)}: ({point.x:.1f}, {point.y:.1f})")
        return True

    def compute_scale(self) -> PixelScale:
        """
        Compute pixels per centimetre

        Raises:
            InvalidInputError: reference length missing or not positive
            InsufficientInputError: fewer than two points marked
            CalibrationDegenerateError: the two points coincide
        """
        length_cm = self.reference.physical_length_cm
        if length_cm is None or not math.isfinite(length_cm) or length_cm <= 0:
            raise InvalidInputError(
                f"Reference length must be a positive number of centimetres (got {length_cm})",
                remediation="Enter the size of the custom reference object in cm"
            )

        if len(self._points) < REQUIRED_POINTS:
            raise InsufficientInputError(
                "need two calibration points",
                remediation="Click both ends of the reference object"
            )

        p1, p2 = self._points
        distance = euclidean_distance(p1.as_tuple(), p2.as_tuple())
        if distance <= self.min_distance_px:
            raise CalibrationDegenerateError("Calibration points coincide")

        self._scale = PixelScale(
            pixels_per_cm=distance / length_cm,
            pixel_distance=distance,
            reference=self.reference
        )
        logger.info(f"Calibration complete: {self._scale.pixels_per_cm:.1f} pixels/cm")
        return self._scale

    def reset(self):
        self._points = []
        self._scale = None
        logger.debug("Calibration reset")
