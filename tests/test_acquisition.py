import cv2
import numpy as np
import pytest

from planimetry.acquisition import ImageAcquisition
from planimetry.errors import DeviceUnavailableError, InvalidInputError, PipelineStateError
from planimetry.models import CaptureSource, ImageUpload

from conftest import CameraFactory, FakeCamera, make_image, png_upload


def test_camera_requests_ideal_resolution(settings, camera_factory):
    acquisition = ImageAcquisition(settings, device_factory=camera_factory)

    assert acquisition.start_capture(CaptureSource.CAMERA) is None

    device = camera_factory.devices[0]
    assert device.requested[cv2.CAP_PROP_FRAME_WIDTH] == 1920
    assert device.requested[cv2.CAP_PROP_FRAME_HEIGHT] == 1080
    assert acquisition.is_streaming
    # The fake device grants a lower resolution, which is accepted
    assert acquisition.resolution == (64, 48)


def test_capture_frame_converts_bgr_at_native_resolution(settings):
    frame = np.zeros((30, 40, 3), dtype=np.uint8)
    frame[:, :] = (10, 20, 200)  # BGR
    acquisition = ImageAcquisition(settings, device_factory=lambda index: FakeCamera(frame=frame))
    acquisition.start_capture(CaptureSource.CAMERA)

    image = acquisition.capture_frame()

    assert (image.width, image.height) == (40, 30)
    assert image.pixels[0, 0].tolist() == [200, 20, 10, 255]
    assert acquisition.is_streaming


def test_capture_without_stream(settings):
    with pytest.raises(PipelineStateError):
        ImageAcquisition(settings).capture_frame()


def test_failed_frame_read(settings):
    acquisition = ImageAcquisition(settings, device_factory=CameraFactory(readable=False))
    acquisition.start_capture(CaptureSource.CAMERA)

    with pytest.raises(DeviceUnavailableError):
        acquisition.capture_frame()


def test_unavailable_camera_holds_no_device(settings):
    factory = CameraFactory(opened=False)
    acquisition = ImageAcquisition(settings, device_factory=factory)

    with pytest.raises(DeviceUnavailableError) as excinfo:
        acquisition.start_capture(CaptureSource.CAMERA)

    assert excinfo.value.fallback == 'file_upload'
    assert not acquisition.is_streaming
    assert factory.devices[0].released


def test_permission_error_surfaces_as_device_unavailable(settings):
    def denied(index):
        raise PermissionError("camera access denied")

    acquisition = ImageAcquisition(settings, device_factory=denied)

    with pytest.raises(DeviceUnavailableError):
        acquisition.start_capture(CaptureSource.CAMERA)


def test_new_stream_releases_previous(settings, camera_factory):
    acquisition = ImageAcquisition(settings, device_factory=camera_factory)
    acquisition.start_capture(CaptureSource.CAMERA)
    acquisition.start_capture(CaptureSource.CAMERA)

    first, second = camera_factory.devices
    assert first.released
    assert not second.released


def test_release_is_idempotent(settings, camera_factory):
    acquisition = ImageAcquisition(settings, device_factory=camera_factory)
    acquisition.release_capture()

    acquisition.start_capture(CaptureSource.CAMERA)
    acquisition.release_capture()
    acquisition.release_capture()

    assert camera_factory.devices[0].released
    assert not acquisition.is_streaming
    assert acquisition.resolution is None


def test_file_upload_decodes_image(settings):
    source = make_image(width=12, height=9, patches=[(0, 0, 3, 3, (255, 0, 0))])

    image = ImageAcquisition(settings).start_capture(CaptureSource.FILE, png_upload(source))

    assert (image.width, image.height) == (12, 9)
    assert image.pixels[0, 0].tolist() == [255, 0, 0, 255]


def test_non_image_upload_is_rejected(settings):
    upload = ImageUpload(filename='notes.pdf', content_type='application/pdf', data=b'%PDF-1.4')

    with pytest.raises(InvalidInputError):
        ImageAcquisition(settings).start_capture(CaptureSource.FILE, upload)


def test_corrupt_image_is_rejected(settings):
    upload = ImageUpload(filename='broken.png', content_type='image/png', data=b'not really a png')

    with pytest.raises(InvalidInputError):
        ImageAcquisition(settings).start_capture(CaptureSource.FILE, upload)


def test_oversized_upload_is_rejected(settings):
    small_limit = settings.model_copy(update={'max_image_size': 16})
    upload = png_upload(make_image())

    with pytest.raises(InvalidInputError):
        ImageAcquisition(small_limit).start_capture(CaptureSource.FILE, upload)


def test_missing_file(settings):
    with pytest.raises(InvalidInputError):
        ImageAcquisition(settings).start_capture(CaptureSource.FILE)
