import io

import cv2
import numpy as np
import pytest
from PIL import Image

from planimetry.config import TestSettings
from planimetry.models import ImageUpload, RasterImage

SKIN = (200, 200, 200)
WOUND_RED = (220, 80, 40)  # also passes the granulation sub-rule
DARK_RED = (120, 20, 20)   # wound tissue, not granulation


def make_image(width=64, height=48, background=SKIN, patches=()):
    """Build an RGB RasterImage; patches are (x0, y0, x1, y1, colour) with exclusive ends"""
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    rgb[:, :] = background
    for x0, y0, x1, y1, colour in patches:
        rgb[y0:y1, x0:x1] = colour
    return RasterImage.from_array(rgb)


def png_upload(image: RasterImage, filename='wound.png', content_type='image/png') -> ImageUpload:
    buffer = io.BytesIO()
    Image.fromarray(np.array(image.rgb)).save(buffer, 'PNG')
    return ImageUpload(filename=filename, content_type=content_type, data=buffer.getvalue())


class FakeCamera:
    """Stands in for cv2.VideoCapture"""

    def __init__(self, frame=None, opened=True, readable=True):
        self.frame = frame if frame is not None else np.zeros((48, 64, 3), dtype=np.uint8)
        self.opened = opened
        self.readable = readable
        self.requested = {}
        self.released = False

    def isOpened(self):
        return self.opened and not self.released

    def set(self, prop, value):
        self.requested[prop] = value
        return True

    def get(self, prop):
        if prop == cv2.CAP_PROP_FRAME_WIDTH:
            return float(self.frame.shape[1])
        if prop == cv2.CAP_PROP_FRAME_HEIGHT:
            return float(self.frame.shape[0])
        return 0.0

    def read(self):
        if not self.readable:
            return False, None
        return True, self.frame.copy()

    def release(self):
        self.released = True


class CameraFactory:
    """Records every device it hands out"""

    def __init__(self, **camera_kwargs):
        self.camera_kwargs = camera_kwargs
        self.devices = []

    def __call__(self, index):
        camera = FakeCamera(**self.camera_kwargs)
        self.devices.append(camera)
        return camera


@pytest.fixture
def settings():
    return TestSettings()


@pytest.fixture
def camera_factory():
    return CameraFactory()


@pytest.fixture
def wound_image():
    # 20x10 block: left half granulation-coloured, right half dark red
    return make_image(patches=[
        (10, 5, 20, 15, WOUND_RED),
        (20, 5, 30, 15, DARK_RED),
    ])


@pytest.fixture
def background_image():
    return make_image()
