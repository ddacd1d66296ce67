"""
Utilities package for wound planimetry
"""

from .image_utils import (
    ImageProcessor,
    validate_upload,
    decode_upload,
    render_snapshot,
    load_image_file
)

__all__ = [
    # Image Processing
    'ImageProcessor',
    'validate_upload',
    'decode_upload',
    'render_snapshot',
    'load_image_file'
]
