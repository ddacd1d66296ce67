from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Dict, Optional, Any, Tuple
from datetime import datetime
from enum import Enum

import numpy as np
from PIL import Image

from .errors import InvalidInputError
from .geometry import extent, polygon_perimeter, shoelace_area


class CaptureSource(str, Enum):
    CAMERA = 'camera'
    FILE = 'file'


class SegmentationStrategy(str, Enum):
    AUTOMATIC = 'automatic'
    MANUAL = 'manual'


class AutomaticStatus(str, Enum):
    AWAITING_RUN = 'awaiting_run'
    RUNNING = 'running'
    DONE = 'done'
    FAILED = 'failed'


class ManualStatus(str, Enum):
    COLLECTING_POINTS = 'collecting_points'
    READY = 'ready'


class PipelineStage(str, Enum):
    IDLE = 'idle'
    ACQUIRING = 'acquiring'
    CALIBRATING = 'calibrating'
    SEGMENTING = 'segmenting'
    MEASURED = 'measured'


class MeasurementMethod(str, Enum):
    AUTOMATIC = 'automatic'
    MANUAL = 'manual'


def _readonly(array: np.ndarray) -> np.ndarray:
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


class RasterImage(BaseModel):
    """Immutable RGBA pixel grid, shape (height, width, 4), dtype uint8"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    pixels: np.ndarray = Field(..., description="RGBA pixel data")

    @field_validator('pixels')
    @classmethod
    def validate_pixels(cls, v):
        if not isinstance(v, np.ndarray):
            raise ValueError('pixels must be a numpy array')
        if v.ndim != 3 or v.shape[2] != 4:
            raise ValueError(f'pixels must have shape (height, width, 4), got {v.shape}')
        if v.shape[0] == 0 or v.shape[1] == 0:
            raise ValueError('image cannot be empty')
        if v.dtype != np.uint8:
            raise ValueError('pixels must be uint8')
        return _readonly(v)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'RasterImage':
        """Build from a grayscale, RGB or RGBA array"""
        array = np.asarray(array)
        if array.dtype != np.uint8:
            array = np.clip(array, 0, 255).astype(np.uint8)
        if array.ndim == 2:
            array = np.stack([array, array, array], axis=-1)
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise InvalidInputError(f"Unsupported pixel layout: {array.shape}")
        if array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=-1)
        return cls(pixels=array)

    @classmethod
    def from_pil(cls, img: Image.Image) -> 'RasterImage':
        return cls(pixels=np.array(img.convert('RGBA')))


class Point(BaseModel):
    """Pixel coordinate on the displayed image"""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


class ReferenceSpec(BaseModel):
    """Reference object of known physical size used for calibration"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Reference identifier")
    label: str = Field(..., description="Display label")
    physical_length_cm: Optional[float] = Field(None, description="Known length in cm; checked at calibration time")

    @property
    def is_custom(self) -> bool:
        return self.id == 'custom'

    @classmethod
    def custom(cls, physical_length_cm: Optional[float]) -> 'ReferenceSpec':
        return cls(id='custom', label='Custom Reference', physical_length_cm=physical_length_cm)


REFERENCE_OBJECTS: Tuple[ReferenceSpec, ...] = (
    ReferenceSpec(id='coin_1naira', label='₦1 Coin', physical_length_cm=2.2),
    ReferenceSpec(id='coin_50kobo', label='50 Kobo Coin', physical_length_cm=2.0),
    ReferenceSpec(id='ruler', label='Ruler (cm marks visible)', physical_length_cm=1.0),
    ReferenceSpec(id='credit_card', label='Credit Card (width)', physical_length_cm=5.4),
    ReferenceSpec(id='custom', label='Custom Reference', physical_length_cm=None),
)


def get_reference(reference_id: str, custom_length_cm: Optional[float] = None) -> ReferenceSpec:
    """Look up a named reference; the custom variant takes the user-supplied length"""
    if reference_id == 'custom':
        return ReferenceSpec.custom(custom_length_cm)
    for spec in REFERENCE_OBJECTS:
        if spec.id == reference_id:
            return spec
    raise InvalidInputError(f"Unknown reference object: {reference_id}")


class PixelScale(BaseModel):
    """Pixels-per-centimetre factor established by calibration"""
    model_config = ConfigDict(frozen=True)

    pixels_per_cm: float = Field(..., gt=0.0)
    pixel_distance: float = Field(..., gt=0.0)
    reference: ReferenceSpec


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


class SegmentationMask(BaseModel):
    """Per-pixel wound classification over a source image"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    mask: np.ndarray = Field(..., description="Boolean array, shape (height, width)")
    source: Optional[RasterImage] = Field(None, description="Image the mask was computed from")

    @field_validator('mask')
    @classmethod
    def validate_mask(cls, v):
        if not isinstance(v, np.ndarray) or v.ndim != 2:
            raise ValueError('mask must be a 2D numpy array')
        return _readonly(v.astype(bool))

    @property
    def pixel_count(self) -> int:
        return int(np.count_nonzero(self.mask))

    @property
    def bounding_box(self) -> Optional[BoundingBox]:
        ys, xs = np.nonzero(self.mask)
        if xs.size == 0:
            return None
        return BoundingBox(min_x=int(xs.min()), max_x=int(xs.max()),
                           min_y=int(ys.min()), max_y=int(ys.max()))


class BoundaryPolygon(BaseModel):
    """Closed wound outline in click order"""
    model_config = ConfigDict(frozen=True)

    points: Tuple[Point, ...] = Field(default_factory=tuple)

    @property
    def coordinates(self) -> List[Tuple[float, float]]:
        return [p.as_tuple() for p in self.points]

    @property
    def distinct_point_count(self) -> int:
        return len(set(self.coordinates))

    @property
    def pixel_count(self) -> float:
        """Enclosed area in square pixels"""
        return shoelace_area(self.coordinates)

    @property
    def perimeter_px(self) -> float:
        return polygon_perimeter(self.coordinates)

    @property
    def bounding_box(self) -> Optional[BoundingBox]:
        if not self.points:
            return None
        min_x, max_x, min_y, max_y = extent(self.coordinates)
        return BoundingBox(min_x=min_x, max_x=max_x, min_y=min_y, max_y=max_y)


class WoundMeasurement(BaseModel):
    """Terminal output of one pipeline run, held at full precision"""
    model_config = ConfigDict(frozen=True)

    length_cm: float = Field(..., ge=0.0)
    width_cm: float = Field(..., ge=0.0)
    area_cm2: float = Field(..., gt=0.0)
    perimeter_cm: float = Field(..., ge=0.0)
    granulation_percent: Optional[float] = Field(None, ge=0.0, le=100.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    method: MeasurementMethod
    pixels_per_cm: float = Field(..., gt=0.0)
    measured_at: datetime = Field(default_factory=datetime.now)

    def display(self, precision: int = 1) -> Dict[str, Any]:
        """Values rounded for presentation"""
        return {
            'length': round(self.length_cm, precision),
            'width': round(self.width_cm, precision),
            'area': round(self.area_cm2, precision),
            'perimeter': round(self.perimeter_cm, precision),
            'granulationPercentage': (
                round(self.granulation_percent, precision)
                if self.granulation_percent is not None else None
            ),
            'confidence': self.confidence,
            'method': self.method.value
        }


class MeasurementHandoff(BaseModel):
    """What the clinical record subsystem receives"""
    model_config = ConfigDict(frozen=True)

    measurement: WoundMeasurement
    image_snapshot: str = Field(..., description="Annotated overlay as a base64 data URL")


class ImageUpload(BaseModel):
    """User-selected image file"""
    filename: str = Field('upload', description="Original filename")
    content_type: str = Field(..., description="Declared MIME type")
    data: bytes = Field(..., description="Raw file content")

    @field_validator('content_type')
    @classmethod
    def normalize_content_type(cls, v):
        return (v or '').split(';')[0].strip().lower()


class PipelineState(BaseModel):
    """Render-ready summary of a pipeline"""
    stage: PipelineStage
    has_image: bool = False
    image_size: Optional[Tuple[int, int]] = None
    camera_active: bool = False
    reference: Optional[ReferenceSpec] = None
    calibration_points: List[Point] = Field(default_factory=list)
    pixels_per_cm: Optional[float] = None
    strategy: SegmentationStrategy = SegmentationStrategy.AUTOMATIC
    automatic_status: AutomaticStatus = AutomaticStatus.AWAITING_RUN
    manual_status: ManualStatus = ManualStatus.COLLECTING_POINTS
    boundary_points: List[Point] = Field(default_factory=list)
    measurement: Optional[Dict[str, Any]] = None


# Healing assessment

class HealingPhaseName(str, Enum):
    EXTENSION = 'extension'
    TRANSITION = 'transition'
    REPAIR = 'repair'
    REMODELING = 'remodeling'


class HealingTrend(str, Enum):
    IMPROVING = 'improving'
    STABLE = 'stable'
    DETERIORATING = 'deteriorating'


class HealingPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: HealingPhaseName
    name: str
    description: str
    characteristics: List[str] = Field(default_factory=list)
    expected_duration: str
    treatment_focus: List[str] = Field(default_factory=list)
    monitoring_frequency: str


class ProgressEntry(BaseModel):
    """One dated wound assessment"""
    date: datetime
    length_cm: float = Field(..., ge=0.0)
    width_cm: float = Field(..., ge=0.0)
    area_cm2: float = Field(..., ge=0.0)
    tissue_distribution: Dict[str, float] = Field(default_factory=dict, description="Tissue type -> percentage")
    notes: Optional[str] = None

    @field_validator('tissue_distribution')
    @classmethod
    def validate_tissue_distribution(cls, v):
        for tissue, percent in v.items():
            if not 0.0 <= percent <= 100.0:
                raise ValueError(f'Percentage for {tissue} must be between 0 and 100')
        return v


class HealingRateResult(BaseModel):
    percent_healed: float
    area_reduction: float
    area_reduction_percent: float
    estimated_healing_days: Optional[int] = None
    weekly_healing_rate: float
    trend: HealingTrend
    recommendations: List[str] = Field(default_factory=list)


# Export all models
__all__ = [
    'CaptureSource',
    'SegmentationStrategy',
    'AutomaticStatus',
    'ManualStatus',
    'PipelineStage',
    'MeasurementMethod',
    'RasterImage',
    'Point',
    'ReferenceSpec',
    'REFERENCE_OBJECTS',
    'get_reference',
    'PixelScale',
    'BoundingBox',
    'SegmentationMask',
    'BoundaryPolygon',
    'WoundMeasurement',
    'MeasurementHandoff',
    'ImageUpload',
    'PipelineState',
    'HealingPhaseName',
    'HealingTrend',
    'HealingPhase',
    'ProgressEntry',
    'HealingRateResult'
]
