"""
Flask application for the kiosk HTTP API.

Provides:
- POST/GET /attendance: record and list attendance
- /students: enrollment management
- /kiosk/*: kiosk state and controls
- GET /video_feed: MJPEG preview stream
- GET /health: Service health check
"""

import math
import time
import uuid
from datetime import datetime
from typing import Any, List, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from . import streaming
from .attendance import AttendanceRecorder
from .config import Config
from .enrollment import embedding_from_image
from .exceptions import (
    DuplicateIdentity,
    EmbeddingDimensionError,
    ExtractionFailed,
    IdentityNotFound,
    KioskError,
    ModelNotReady,
    MultipleFacesDetected,
    NoFaceDetected,
)
from .logging_config import get_logger
from .provider import EmbeddingProvider
from .recognition.coordinator import DetectionCoordinator
from .recognition.store import EmbeddingStore
from .recognition.types import EnrolledIdentity
from .utils.timing import format_uptime

logger = get_logger(__name__)

ERROR_STATUS = {
    DuplicateIdentity: 409,
    IdentityNotFound: 404,
    EmbeddingDimensionError: 400,
    NoFaceDetected: 422,
    MultipleFacesDetected: 422,
    ExtractionFailed: 422,
    ModelNotReady: 503,
}


class BadRequest(Exception):
    """Invalid request payload."""


def create_app(
    config: Config,
    store: EmbeddingStore,
    recorder: AttendanceRecorder,
    coordinator: Optional[DetectionCoordinator] = None,
    provider: Optional[EmbeddingProvider] = None,
    frames: Optional[streaming.FrameBuffer] = None,
    preview: Optional[streaming.FrameBuffer] = None,
) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Service configuration
        store: Enrolled identities
        recorder: Attendance log
        coordinator: Detection coordinator (kiosk routes need it)
        provider: Embedding provider (enrollment from photos needs it)
        frames: Latest raw camera frame (manual capture needs it)
        preview: Annotated preview frames for /video_feed

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)
    started_at = time.time()

    @app.errorhandler(KioskError)
    def handle_kiosk_error(error: KioskError):
        status = 500
        for cls in type(error).__mro__:
            if cls in ERROR_STATUS:
                status = ERROR_STATUS[cls]
                break
        if status == 500:
            logger.error(f'Request failed: {error}')
        return jsonify({'error': str(error), 'kind': type(error).__name__}), status

    @app.errorhandler(BadRequest)
    def handle_bad_request(error: BadRequest):
        return jsonify({'error': str(error)}), 400

    # ------------------------------------------------------------------
    # Attendance

    @app.route('/attendance', methods=['POST'])
    def record_attendance():
        """Record one attendance event for an enrolled identity."""
        body = _json_body()
        student_id = body.get('studentId')
        if student_id is None or str(student_id).strip() == '':
            raise BadRequest('studentId is required')

        identity = store.get(str(student_id))
        if identity is None:
            raise IdentityNotFound(f'Identity {student_id} not found')

        event = recorder.record(identity.id, identity.display_name)
        logger.info(
            f"Attendance posted for {identity.id} "
            f"(recognitionStatus={body.get('recognitionStatus', 'manual')})"
        )
        return jsonify(event.to_dict()), 201

    @app.route('/attendance', methods=['GET'])
    def list_attendance():
        """List attendance joined with identity fields, most recent first."""
        student_id = request.args.get('studentId')
        start = _parse_time(request.args.get('from'), 'from')
        end = _parse_time(request.args.get('to'), 'to')

        events = recorder.query_by_range(start, end)
        if student_id is not None:
            events = [e for e in events if e.identity_id == student_id]
        events.sort(key=lambda e: e.occurred_at, reverse=True)

        rows = []
        for event in events:
            row = event.to_dict()
            identity = store.get(event.identity_id)
            row['name'] = identity.display_name if identity else event.display_name
            row['email'] = identity.email if identity else None
            rows.append(row)
        return jsonify(rows)

    # ------------------------------------------------------------------
    # Students

    @app.route('/students', methods=['GET'])
    def list_students():
        return jsonify([i.to_dict() for i in store.list_by_name()])

    @app.route('/students', methods=['POST'])
    def create_student():
        """Enroll an identity from a descriptor or a stored photo."""
        body = _json_body()
        name = str(body.get('name') or '').strip()
        if not name:
            raise BadRequest('name is required')

        embedding = _resolve_embedding(body)
        if embedding is None:
            raise BadRequest('face_descriptor or raw_image_path is required')

        identity = store.add(EnrolledIdentity(
            id=str(body.get('id') or uuid.uuid4().hex),
            display_name=name,
            embedding=embedding,
            email=body.get('email'),
            raw_image_path=body.get('raw_image_path'),
        ))
        return jsonify(identity.to_dict()), 201

    @app.route('/students/<student_id>', methods=['GET'])
    def get_student(student_id: str):
        identity = store.get(student_id)
        if identity is None:
            raise IdentityNotFound(f'Identity {student_id} not found')
        return jsonify(identity.to_dict())

    @app.route('/students/<student_id>', methods=['PUT'])
    def update_student(student_id: str):
        """Re-enroll: replace the embedding and/or the display name."""
        body = _json_body()
        name = body.get('name')
        if name is not None and not str(name).strip():
            raise BadRequest('name must not be empty')

        embedding = _resolve_embedding(body)
        if embedding is None and name is None:
            raise BadRequest('nothing to update')

        identity = store.update(
            student_id,
            new_embedding=embedding,
            display_name=str(name).strip() if name is not None else None,
        )
        return jsonify(identity.to_dict())

    @app.route('/students/<student_id>', methods=['DELETE'])
    def delete_student(student_id: str):
        store.remove(student_id)
        return '', 204

    def _resolve_embedding(body: dict) -> Optional[List[float]]:
        descriptor = body.get('face_descriptor')
        if descriptor is not None:
            return _descriptor_values(descriptor)

        image_path = body.get('raw_image_path')
        if image_path:
            if provider is None:
                raise ModelNotReady()
            return embedding_from_image(image_path, provider, config)
        return None

    # ------------------------------------------------------------------
    # Kiosk

    def _require_coordinator() -> DetectionCoordinator:
        if coordinator is None:
            raise ModelNotReady('Kiosk is not running')
        return coordinator

    @app.route('/kiosk/state')
    def kiosk_state():
        return jsonify(_require_coordinator().state.to_dict())

    @app.route('/kiosk/capture', methods=['POST'])
    def kiosk_capture():
        """Manual detection on the latest camera frame."""
        kiosk = _require_coordinator()
        frame = frames.get_copy() if frames is not None else None
        if frame is None:
            return jsonify({'error': 'No camera frame available'}), 503

        accepted = kiosk.trigger(frame, manual=True)
        status = 202 if accepted else 409
        return jsonify({'accepted': accepted, 'state': kiosk.state.to_dict()}), status

    @app.route('/kiosk/auto', methods=['POST'])
    def kiosk_auto():
        kiosk = _require_coordinator()
        enabled = _json_body().get('enabled')
        if not isinstance(enabled, bool):
            raise BadRequest('enabled must be a boolean')
        kiosk.set_auto_detection(enabled)
        return jsonify(kiosk.state.to_dict())

    @app.route('/kiosk/retry', methods=['POST'])
    def kiosk_retry():
        kiosk = _require_coordinator()
        ready = kiosk.retry()
        return jsonify({'ready': ready, 'state': kiosk.state.to_dict()})

    # ------------------------------------------------------------------
    # Preview / health

    @app.route('/video_feed')
    def video_feed():
        """Stream MJPEG preview."""
        if preview is None:
            return jsonify({'error': 'Preview not available'}), 404
        return Response(
            streaming.generate_mjpeg_frames(preview),
            mimetype='multipart/x-mixed-replace; boundary=frame'
        )

    @app.route('/health')
    def health():
        """Health check endpoint."""
        return jsonify({
            'status': 'ok',
            'kiosk': coordinator.status.value if coordinator else None,
            'streaming': preview.has_frame if preview is not None else False,
            'identities': len(store),
            'attendance': len(recorder),
            'uptime': format_uptime(time.time() - started_at),
            'kioskId': config.kiosk_id,
            'service': config.service_name,
        })

    return app


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BadRequest('JSON object body required')
    return body


def _descriptor_values(descriptor: Any) -> List[float]:
    """
    Accept a descriptor as a list of numbers or as a JSON-serialised
    Float32Array ({"0": x0, "1": x1, ...}).
    """
    if isinstance(descriptor, dict):
        try:
            keys = sorted(descriptor, key=int)
        except ValueError:
            raise BadRequest('face_descriptor keys must be indices') from None
        descriptor = [descriptor[k] for k in keys]

    if not isinstance(descriptor, list) or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
        for v in descriptor
    ):
        raise BadRequest('face_descriptor must be a list of numbers')
    return [float(v) for v in descriptor]


def _parse_time(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise BadRequest(f'{name} must be an ISO-8601 timestamp') from None
