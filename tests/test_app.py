import io
from datetime import datetime, timedelta

import pytest

from planimetry.app import create_app

from conftest import CameraFactory, png_upload


@pytest.fixture
def app(settings):
    app = create_app(settings, device_factory=CameraFactory())
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session_id(client):
    response = client.post('/sessions')
    assert response.status_code == 201
    return response.get_json()['session']['session_id']


def upload(client, session_id, image, content_type='image/png'):
    data = png_upload(image).data
    return client.post(
        f'/sessions/{session_id}/image',
        data={'file': (io.BytesIO(data), 'wound.png', content_type)},
        content_type='multipart/form-data'
    )


def calibrate(client, session_id, reference='coin_1naira', length=None, span=44):
    body = {'id': reference}
    if length is not None:
        body['physical_length_cm'] = length
    assert client.put(f'/sessions/{session_id}/reference', json=body).status_code == 200
    client.post(f'/sessions/{session_id}/calibration/points', json={'x': 0, 'y': 0})
    client.post(f'/sessions/{session_id}/calibration/points', json={'x': span, 'y': 0})
    return client.post(f'/sessions/{session_id}/calibration/confirm')


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_references(client):
    references = {r['id']: r for r in client.get('/references').get_json()['references']}

    assert references['coin_1naira']['physical_length_cm'] == 2.2
    assert references['credit_card']['physical_length_cm'] == 5.4
    assert references['custom']['physical_length_cm'] is None


def test_automatic_flow(client, session_id, wound_image):
    response = upload(client, session_id, wound_image)
    assert response.get_json()['session']['state']['stage'] == 'calibrating'

    response = calibrate(client, session_id)
    assert response.get_json()['pixels_per_cm'] == pytest.approx(20.0)

    response = client.post(f'/sessions/{session_id}/segmentation/auto')
    state = response.get_json()['session']['state']
    assert state['stage'] == 'measured'
    assert state['measurement']['area'] == 0.5
    assert state['measurement']['granulationPercentage'] == 50.0

    response = client.post(f'/sessions/{session_id}/complete')
    body = response.get_json()
    assert body['status'] == 'completed'
    assert body['measurement']['method'] == 'automatic'
    assert body['raw']['area_cm2'] == pytest.approx(0.5)
    assert body['image'].startswith('data:image/jpeg;base64,')


def test_manual_flow_with_custom_reference(client, session_id, background_image):
    upload(client, session_id, background_image)
    response = calibrate(client, session_id, reference='custom', length=4.0, span=40)
    assert response.get_json()['pixels_per_cm'] == pytest.approx(10.0)

    response = client.put(f'/sessions/{session_id}/segmentation/strategy', json={'strategy': 'manual'})
    assert response.get_json()['session']['state']['strategy'] == 'manual'
    for x, y in [(0, 0), (30, 0), (30, 20), (0, 20)]:
        client.post(f'/sessions/{session_id}/segmentation/points', json={'x': x, 'y': y})
    response = client.post(f'/sessions/{session_id}/segmentation/finalize')

    measurement = response.get_json()['session']['state']['measurement']
    assert measurement['area'] == 6.0
    assert measurement['length'] == 2.0
    assert measurement['width'] == 3.0
    assert measurement['perimeter'] == 10.0
    assert measurement['method'] == 'manual'
    assert measurement['granulationPercentage'] is None


def test_calibration_errors(client, session_id, wound_image):
    upload(client, session_id, wound_image)

    response = client.post(f'/sessions/{session_id}/calibration/confirm')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'InsufficientInputError'

    response = calibrate(client, session_id, reference='custom', length=0)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'InvalidInputError'

    client.delete(f'/sessions/{session_id}/calibration')
    client.put(f'/sessions/{session_id}/reference', json={'id': 'credit_card'})
    client.post(f'/sessions/{session_id}/calibration/points', json={'x': 5, 'y': 5})
    client.post(f'/sessions/{session_id}/calibration/points', json={'x': 5, 'y': 5})
    response = client.post(f'/sessions/{session_id}/calibration/confirm')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'CalibrationDegenerateError'


def test_unknown_reference(client, session_id):
    response = client.put(f'/sessions/{session_id}/reference', json={'id': 'bottle_cap'})

    assert response.status_code == 400


def test_bad_coordinates(client, session_id, wound_image):
    upload(client, session_id, wound_image)

    response = client.post(f'/sessions/{session_id}/calibration/points', json={'x': 'left'})

    assert response.status_code == 400


def test_non_image_upload(client, session_id):
    response = client.post(
        f'/sessions/{session_id}/image',
        data={'file': (io.BytesIO(b'%PDF-1.4'), 'notes.pdf', 'application/pdf')},
        content_type='multipart/form-data'
    )

    assert response.status_code == 400
    assert response.get_json()['error'] == 'InvalidInputError'


def test_missing_file(client, session_id):
    response = client.post(f'/sessions/{session_id}/image', data={}, content_type='multipart/form-data')

    assert response.status_code == 400


def test_out_of_order_request_conflicts(client, session_id):
    response = client.post(f'/sessions/{session_id}/segmentation/auto')

    assert response.status_code == 409
    assert response.get_json()['error'] == 'PipelineStateError'


def test_background_only_image_offers_manual(client, session_id, background_image):
    upload(client, session_id, background_image)
    calibrate(client, session_id)

    response = client.post(f'/sessions/{session_id}/segmentation/auto')

    assert response.status_code == 400
    body = response.get_json()
    assert body['error'] == 'MeasurementUndefinedError'
    assert body['fallback'] == 'manual'


def test_camera_capture(client, session_id):
    response = client.post(f'/sessions/{session_id}/camera')
    assert response.get_json()['session']['state']['camera_active']

    response = client.post(f'/sessions/{session_id}/camera/capture')
    state = response.get_json()['session']['state']
    assert state['stage'] == 'calibrating'
    assert not state['camera_active']
    assert state['image_size'] == [64, 48]


def test_back_navigation(client, session_id, wound_image):
    upload(client, session_id, wound_image)
    calibrate(client, session_id)
    client.post(f'/sessions/{session_id}/segmentation/auto')

    state = client.post(f'/sessions/{session_id}/remeasure').get_json()['session']['state']
    assert state['stage'] == 'segmenting'
    assert state['measurement'] is None

    state = client.post(f'/sessions/{session_id}/recalibrate').get_json()['session']['state']
    assert state['stage'] == 'calibrating'
    assert state['calibration_points'] == []

    state = client.post(f'/sessions/{session_id}/restart').get_json()['session']['state']
    assert state['stage'] == 'acquiring'
    assert not state['has_image']


def test_unknown_session(client):
    assert client.get('/sessions/missing').status_code == 404
    assert client.delete('/sessions/missing').status_code == 404


def test_delete_session(client, session_id):
    assert client.delete(f'/sessions/{session_id}').status_code == 200
    assert client.get(f'/sessions/{session_id}').status_code == 404


def test_idle_sessions_are_cleaned_up(app, client, session_id):
    registry = app.extensions['planimetry_sessions']
    later = datetime.now() + timedelta(seconds=registry.settings.session_idle_timeout + 1)

    assert registry.cleanup_idle(now=later) == 1
    assert len(registry) == 0
    assert client.get(f'/sessions/{session_id}').status_code == 404


def test_nan_values_are_rejected_as_invalid_input(client, session_id, wound_image):
    upload(client, session_id, wound_image)

    response = client.post(f'/sessions/{session_id}/calibration/points',
                           data='{"x": NaN, "y": 0}', content_type='application/json')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'InvalidInputError'

    response = calibrate(client, session_id, reference='custom', length='inf')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'InvalidInputError'


def test_completed_measurements_are_listed(client, session_id, wound_image):
    assert client.get(f'/sessions/{session_id}/handoffs').get_json()['handoffs'] == []

    upload(client, session_id, wound_image)
    calibrate(client, session_id)
    client.post(f'/sessions/{session_id}/segmentation/auto')
    client.post(f'/sessions/{session_id}/complete')

    handoffs = client.get(f'/sessions/{session_id}/handoffs').get_json()['handoffs']
    assert len(handoffs) == 1
    assert handoffs[0]['measurement']['area'] == 0.5
    assert handoffs[0]['image'].startswith('data:image/jpeg;base64,')
    session = client.get(f'/sessions/{session_id}').get_json()['session']
    assert session['completed_measurements'] == 1
