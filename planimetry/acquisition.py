"""
Image acquisition from a camera stream or an uploaded file
"""

import logging
from typing import Callable, Optional, Tuple

import cv2

from .config import Settings, get_settings
from .errors import DeviceUnavailableError, InvalidInputError, PipelineStateError
from .models import CaptureSource, ImageUpload, RasterImage
from .utils.image_utils import ImageProcessor

logger = logging.getLogger(__name__)


class ImageAcquisition:
    """
    Obtains a single RasterImage for a measurement session

    The camera is the only exclusive resource; any open stream is released
    before a new one is requested.
    """

    def __init__(self,
                 settings: Optional[Settings] = None,
                 device_factory: Optional[Callable[[int], "cv2.VideoCapture"]] = None):
        self.settings = settings or get_settings()
        self.device_factory = device_factory or cv2.VideoCapture
        self._device = None

    @property
    def is_streaming(self) -> bool:
        return self._device is not None

    @property
    def resolution(self) -> Optional[Tuple[int, int]]:
        """Resolution granted by the device, (width, height)"""
        if self._device is None:
            return None
        width = int(self._device.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._device.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return (width, height)

    def start_capture(self, source: CaptureSource,
                      upload: Optional[ImageUpload] = None) -> Optional[RasterImage]:
        """
        Start acquiring from the given source

        Args:
            source: camera or file
            upload: the selected file, required for file sources

        Returns:
            The decoded image for file sources, None for camera sources

        Raises:
            DeviceUnavailableError: camera cannot be opened
            InvalidInputError: file is missing or not an image
        """
        source = CaptureSource(source)

        if source == CaptureSource.CAMERA:
            self._open_camera()
            return None

        if upload is None:
            raise InvalidInputError("No file selected")

        ImageProcessor.validate_upload(
            upload,
            allowed_types=self.settings.allowed_image_types_list,
            max_size=self.settings.max_image_size
        )
        return ImageProcessor.decode_upload(upload)

    def _open_camera(self):
        self.release_capture()

        try:
            device = self.device_factory(self.settings.camera_index)
        except Exception as e:
            logger.error(f"Camera access error: {str(e)}")
            raise DeviceUnavailableError(f"Unable to access camera: {str(e)}") from e

        if device is None or not device.isOpened():
            if device is not None:
                device.release()
            logger.warning(f"Camera {self.settings.camera_index} unavailable")
            raise DeviceUnavailableError("Unable to access camera")

        # Request the ideal resolution; the device may grant a lower one
        device.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.camera_ideal_width)
        device.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.camera_ideal_height)
        self._device = device

        logger.info(f"Camera stream started at {self.resolution}")

    def capture_frame(self) -> RasterImage:
        """Grab the current frame at the stream's native resolution"""
        if self._device is None:
            raise PipelineStateError("No active camera stream")

        ok, frame = self._device.read()
        if not ok or frame is None:
            logger.error("Camera frame read failed")
            raise DeviceUnavailableError("Could not read a frame from the camera")

        image = ImageProcessor.frame_to_raster(frame)
        logger.info(f"Frame captured: {image.width}x{image.height}")
        return image

    def release_capture(self):
        """Stop and release the camera; safe to call at any time"""
        if self._device is None:
            return
        device, self._device = self._device, None
        device.release()
        logger.info("Camera released")
