"""
Image processing utilities for wound planimetry
"""

import io
import base64
import logging
from typing import Iterable, List, Optional, Sequence

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import InvalidInputError
from ..models import BoundingBox, ImageUpload, Point, RasterImage

logger = logging.getLogger(__name__)

# Overlay colours (RGB)
CALIBRATION_COLOR = (16, 185, 129)
BOUNDARY_COLOR = (239, 68, 68)
MASK_COLOR = (255, 0, 0)
BOX_COLOR = (16, 185, 129)
MASK_OVERLAY_ALPHA = 0.5


class ImageProcessor:
    """Image processing utilities for wound measurement"""

    # Image size constraints
    MIN_SIZE = (2, 2)

    @staticmethod
    def validate_upload(upload: ImageUpload,
                        allowed_types: Optional[Sequence[str]] = None,
                        max_size: Optional[int] = None):
        """
        Validate an uploaded file before decoding

        Args:
            upload: Uploaded file
            allowed_types: Accepted MIME types; any image/* type when None
            max_size: Maximum size in bytes

        Raises:
            InvalidInputError: if the file is not an acceptable image
        """
        if not upload.content_type.startswith('image/'):
            logger.warning(f"Rejected non-image upload: {upload.filename} ({upload.content_type})")
            raise InvalidInputError(
                f"Please upload an image file (got {upload.content_type or 'unknown type'})"
            )

        if allowed_types and upload.content_type not in allowed_types:
            raise InvalidInputError(f"Unsupported image type: {upload.content_type}")

        if not upload.data:
            raise InvalidInputError("Image file is empty")

        if max_size and len(upload.data) > max_size:
            raise InvalidInputError(f"Image file too large: {len(upload.data)} bytes")

    @staticmethod
    def decode_upload(upload: ImageUpload) -> RasterImage:
        """
        Decode uploaded bytes into a RasterImage

        EXIF orientation is applied so the pixels match what the user sees.
        """
        try:
            with Image.open(io.BytesIO(upload.data)) as img:
                img = ImageOps.exif_transpose(img)
                if img.size[0] < ImageProcessor.MIN_SIZE[0] or img.size[1] < ImageProcessor.MIN_SIZE[1]:
                    raise InvalidInputError(f"Image too small: {img.size}")
                raster = RasterImage.from_pil(img)
        except (UnidentifiedImageError, OSError) as e:
            logger.error(f"Image decode error for {upload.filename}: {str(e)}")
            raise InvalidInputError(f"Could not read image file: {upload.filename}") from e

        logger.info(f"Image decoded: {upload.filename} ({raster.width}x{raster.height})")
        return raster

    @staticmethod
    def frame_to_raster(frame: np.ndarray) -> RasterImage:
        """Convert a grayscale, BGR or BGRA camera frame into a RasterImage"""
        if frame.ndim == 2:
            rgba = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
        elif frame.shape[2] == 4:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        else:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        return RasterImage(pixels=rgba)

    @staticmethod
    def render_overlay(image: RasterImage,
                       mask: Optional[np.ndarray] = None,
                       polygon: Optional[Sequence[Point]] = None,
                       calibration_points: Optional[Iterable[Point]] = None,
                       bounding_box: Optional[BoundingBox] = None) -> np.ndarray:
        """
        Draw the segmentation and calibration annotations over the image

        Returns:
            RGB array of the annotated image
        """
        canvas = np.ascontiguousarray(image.rgb.copy())

        if mask is not None and mask.any():
            tint = canvas.copy()
            tint[mask] = MASK_COLOR
            canvas = cv2.addWeighted(tint, MASK_OVERLAY_ALPHA, canvas, 1 - MASK_OVERLAY_ALPHA, 0)

        if bounding_box is not None:
            cv2.rectangle(
                canvas,
                (int(bounding_box.min_x), int(bounding_box.min_y)),
                (int(bounding_box.max_x), int(bounding_box.max_y)),
                BOX_COLOR, 3
            )

        if polygon:
            pts = np.array([[round(p.x), round(p.y)] for p in polygon], dtype=np.int32)
            if len(pts) > 1:
                cv2.polylines(canvas, [pts], isClosed=len(pts) > 2, color=BOUNDARY_COLOR, thickness=2)
            for x, y in pts:
                cv2.circle(canvas, (int(x), int(y)), 6, BOUNDARY_COLOR, -1)

        for point in calibration_points or []:
            center = (round(point.x), round(point.y))
            cv2.circle(canvas, center, 8, CALIBRATION_COLOR, -1)
            cv2.circle(canvas, center, 8, (255, 255, 255), 2)

        return canvas

    @staticmethod
    def encode_data_url(rgb: np.ndarray, quality: int = 95) -> str:
        """Encode an RGB array as a base64 JPEG data URL"""
        buffer = io.BytesIO()
        Image.fromarray(np.ascontiguousarray(rgb, dtype=np.uint8)).save(buffer, 'JPEG', quality=quality)
        encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
        return f"data:image/jpeg;base64,{encoded}"


# Convenience functions
def validate_upload(upload: ImageUpload, **kwargs):
    """Validate an uploaded image"""
    ImageProcessor.validate_upload(upload, **kwargs)

def decode_upload(upload: ImageUpload) -> RasterImage:
    """Decode an uploaded image"""
    return ImageProcessor.decode_upload(upload)

def render_snapshot(image: RasterImage, quality: int = 95, **annotations) -> str:
    """Render annotations and encode the result as a data URL"""
    overlay = ImageProcessor.render_overlay(image, **annotations)
    return ImageProcessor.encode_data_url(overlay, quality=quality)

def load_image_file(path: str, content_type: Optional[str] = None) -> ImageUpload:
    """Read a local file into an ImageUpload"""
    import mimetypes
    from pathlib import Path

    file_path = Path(path)
    guessed = content_type or mimetypes.guess_type(file_path.name)[0] or 'application/octet-stream'
    return ImageUpload(filename=file_path.name, content_type=guessed, data=file_path.read_bytes())


__all__: List[str] = [
    'ImageProcessor',
    'validate_upload',
    'decode_upload',
    'render_snapshot',
    'load_image_file'
]
