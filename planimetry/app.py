#!/usr/bin/env python3
"""
Wound planimetry host
Per-session measurement pipelines driven over HTTP
"""

from flask import Flask, request, jsonify
import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import Settings, get_settings, setup_logging
from .errors import PipelineStateError, PlanimetryError, InvalidInputError
from .models import REFERENCE_OBJECTS, ImageUpload, PipelineStage, SegmentationStrategy, get_reference
from .pipeline import WoundMeasurementPipeline

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    pass


class PlanimetrySession:
    def __init__(self, pipeline: WoundMeasurementPipeline):
        self.session_id = str(uuid.uuid4())
        self.pipeline = pipeline
        self.handoffs = []
        self.created_at = datetime.now()
        self.last_activity = datetime.now()

    def touch(self):
        self.last_activity = datetime.now()

    def close(self):
        """Release the camera and drop pipeline state"""
        self.pipeline.reset()
        logger.info(f"Closed session {self.session_id}")

    def to_dict(self):
        return {
            'session_id': self.session_id,
            'created_at': self.created_at.isoformat(),
            'last_activity': self.last_activity.isoformat(),
            'completed_measurements': len(self.handoffs),
            'state': self.pipeline.snapshot().model_dump(mode='json')
        }


class SessionRegistry:
    """In-memory session store"""

    def __init__(self, settings: Settings, device_factory=None):
        self.settings = settings
        self.device_factory = device_factory
        self._sessions: Dict[str, PlanimetrySession] = {}
        self._lock = threading.Lock()

    def create(self) -> PlanimetrySession:
        session = PlanimetrySession(WoundMeasurementPipeline(
            self.settings,
            device_factory=self.device_factory
        ))
        session.pipeline.on_complete = session.handoffs.append
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info(f"Created session {session.session_id}")
        return session

    def get(self, session_id: str) -> Optional[PlanimetrySession]:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is not None:
            session.touch()
        return session

    def remove(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def cleanup_idle(self, now: Optional[datetime] = None) -> int:
        """Close sessions idle for longer than the configured timeout"""
        now = now or datetime.now()
        cutoff = now - timedelta(seconds=self.settings.session_idle_timeout)
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]
            removed = [self._sessions.pop(sid) for sid in stale]
        for session in removed:
            session.close()
        if removed:
            logger.info(f"Cleaned up {len(removed)} idle sessions")
        return len(removed)

    def __len__(self):
        with self._lock:
            return len(self._sessions)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return body


def _coordinates(body: dict):
    try:
        return float(body['x']), float(body['y'])
    except (KeyError, TypeError, ValueError):
        raise InvalidInputError("x and y must be numbers")


def create_app(settings: Optional[Settings] = None, device_factory=None) -> Flask:
    """Create the Flask host"""
    load_dotenv()
    settings = settings or get_settings()
    setup_logging(settings)

    app = Flask(__name__)
    app.config['SECRET_KEY'] = settings.secret_key
    app.config['MAX_CONTENT_LENGTH'] = settings.max_image_size + 1024 * 1024

    registry = SessionRegistry(settings, device_factory=device_factory)
    app.extensions['planimetry_sessions'] = registry

    def session_or_404(session_id: str) -> PlanimetrySession:
        session = registry.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def state_response(session: PlanimetrySession, status: int = 200, **extra):
        payload = {'status': 'ok', 'session': session.to_dict()}
        payload.update(extra)
        return jsonify(payload), status

    @app.errorhandler(PlanimetryError)
    def planimetry_error(error: PlanimetryError):
        logger.warning(f"{error.code}: {error.message}")
        status = 409 if isinstance(error, PipelineStateError) else 400
        payload = {'status': 'error'}
        payload.update(error.to_dict())
        return jsonify(payload), status

    @app.errorhandler(ValidationError)
    def validation_error(error: ValidationError):
        return jsonify({'status': 'error', 'error': 'InvalidInputError',
                        'message': str(error)}), 400

    @app.errorhandler(SessionNotFoundError)
    def session_not_found(error):
        return jsonify({'status': 'not_found', 'message': f"Unknown session: {error.args[0]}"}), 404

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'sessions': len(registry)
        })

    @app.route('/references', methods=['GET'])
    def references():
        return jsonify({'references': [r.model_dump() for r in REFERENCE_OBJECTS]})

    @app.route('/sessions', methods=['POST'])
    def create_session():
        registry.cleanup_idle()
        session = registry.create()
        return state_response(session, 201)

    @app.route('/sessions/<session_id>', methods=['GET'])
    def get_session(session_id):
        return state_response(session_or_404(session_id))

    @app.route('/sessions/<session_id>', methods=['DELETE'])
    def delete_session(session_id):
        if not registry.remove(session_id):
            raise SessionNotFoundError(session_id)
        return jsonify({'status': 'deleted', 'session_id': session_id})

    # Acquisition

    @app.route('/sessions/<session_id>/image', methods=['POST'])
    def upload_image(session_id):
        session = session_or_404(session_id)
        file = request.files.get('file')
        if file is None:
            raise InvalidInputError("No file selected")
        upload = ImageUpload(
            filename=file.filename or 'upload',
            content_type=file.mimetype or '',
            data=file.read()
        )
        pipeline = session.pipeline
        if pipeline.stage != PipelineStage.ACQUIRING:
            pipeline.begin_acquisition()
        pipeline.upload_image(upload)
        return state_response(session)

    @app.route('/sessions/<session_id>/camera', methods=['POST'])
    def start_camera(session_id):
        session = session_or_404(session_id)
        pipeline = session.pipeline
        if pipeline.stage != PipelineStage.ACQUIRING:
            pipeline.begin_acquisition()
        pipeline.start_camera()
        return state_response(session)

    @app.route('/sessions/<session_id>/camera/capture', methods=['POST'])
    def capture_frame(session_id):
        session = session_or_404(session_id)
        session.pipeline.capture_frame()
        return state_response(session)

    @app.route('/sessions/<session_id>/camera', methods=['DELETE'])
    def cancel_camera(session_id):
        session = session_or_404(session_id)
        session.pipeline.cancel_acquisition()
        return state_response(session)

    # Calibration

    @app.route('/sessions/<session_id>/reference', methods=['PUT'])
    def select_reference(session_id):
        session = session_or_404(session_id)
        body = _json_body()
        reference_id = body.get('id')
        if not reference_id:
            raise InvalidInputError("Reference id is required")
        custom_length = body.get('physical_length_cm')
        if custom_length is not None:
            try:
                custom_length = float(custom_length)
            except (TypeError, ValueError):
                raise InvalidInputError("physical_length_cm must be a number")
        session.pipeline.select_reference(get_reference(reference_id, custom_length))
        return state_response(session)

    @app.route('/sessions/<session_id>/calibration/points', methods=['POST'])
    def add_calibration_point(session_id):
        session = session_or_404(session_id)
        x, y = _coordinates(_json_body())
        recorded = session.pipeline.record_calibration_point(x, y)
        return state_response(session, recorded=recorded)

    @app.route('/sessions/<session_id>/calibration', methods=['DELETE'])
    def reset_calibration(session_id):
        session = session_or_404(session_id)
        session.pipeline.reset_calibration()
        return state_response(session)

    @app.route('/sessions/<session_id>/calibration/confirm', methods=['POST'])
    def confirm_calibration(session_id):
        session = session_or_404(session_id)
        scale = session.pipeline.confirm_calibration()
        return state_response(session, pixels_per_cm=scale.pixels_per_cm)

    # Segmentation

    @app.route('/sessions/<session_id>/segmentation/strategy', methods=['PUT'])
    def select_strategy(session_id):
        session = session_or_404(session_id)
        body = _json_body()
        try:
            strategy = SegmentationStrategy(body.get('strategy'))
        except ValueError:
            raise InvalidInputError("strategy must be 'automatic' or 'manual'")
        session.pipeline.select_strategy(strategy)
        return state_response(session)

    @app.route('/sessions/<session_id>/segmentation/auto', methods=['POST'])
    def run_automatic(session_id):
        session = session_or_404(session_id)
        session.pipeline.run_automatic()
        return state_response(session)

    @app.route('/sessions/<session_id>/segmentation/points', methods=['POST'])
    def add_boundary_point(session_id):
        session = session_or_404(session_id)
        x, y = _coordinates(_json_body())
        session.pipeline.add_boundary_point(x, y)
        return state_response(session)

    @app.route('/sessions/<session_id>/segmentation/points', methods=['DELETE'])
    def clear_boundary_points(session_id):
        session = session_or_404(session_id)
        session.pipeline.clear_boundary_points()
        return state_response(session)

    @app.route('/sessions/<session_id>/segmentation/finalize', methods=['POST'])
    def finalize_polygon(session_id):
        session = session_or_404(session_id)
        session.pipeline.finalize_polygon()
        return state_response(session)

    # Back-navigation and hand-off

    @app.route('/sessions/<session_id>/remeasure', methods=['POST'])
    def remeasure(session_id):
        session = session_or_404(session_id)
        session.pipeline.remeasure()
        return state_response(session)

    @app.route('/sessions/<session_id>/recalibrate', methods=['POST'])
    def recalibrate(session_id):
        session = session_or_404(session_id)
        session.pipeline.recalibrate()
        return state_response(session)

    @app.route('/sessions/<session_id>/restart', methods=['POST'])
    def restart(session_id):
        session = session_or_404(session_id)
        session.pipeline.restart()
        return state_response(session)

    @app.route('/sessions/<session_id>/complete', methods=['POST'])
    def complete(session_id):
        session = session_or_404(session_id)
        handoff = session.pipeline.complete()
        return jsonify({
            'status': 'completed',
            'measurement': handoff.measurement.display(settings.display_precision),
            'raw': handoff.measurement.model_dump(mode='json'),
            'image': handoff.image_snapshot
        })

    @app.route('/sessions/<session_id>/handoffs', methods=['GET'])
    def list_handoffs(session_id):
        session = session_or_404(session_id)
        return jsonify({
            'status': 'ok',
            'handoffs': [
                {
                    'measurement': handoff.measurement.display(settings.display_precision),
                    'measured_at': handoff.measurement.measured_at.isoformat(),
                    'image': handoff.image_snapshot
                }
                for handoff in session.handoffs
            ]
        })

    logger.info("Planimetry host ready")
    return app


def main():
    settings = get_settings()
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port, debug=settings.flask_debug)


if __name__ == '__main__':
    main()
