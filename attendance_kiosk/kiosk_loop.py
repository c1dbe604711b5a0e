"""
Main kiosk capture loop.

Orchestrates the kiosk session:
- Camera connection
- Presence check on every N-th frame
- Automatic detection triggers
- Status overlay for the preview stream
"""

import threading
import time
from typing import List, Optional

import cv2
import numpy as np
from flask import Flask

from .camera import connect_camera, reconnect_camera
from .config import Config
from .exceptions import KioskError
from .logging_config import get_logger
from .provider import EmbeddingProvider
from .recognition.coordinator import DetectionCoordinator, KioskState, KioskStatus
from .streaming import FrameBuffer
from .utils.timing import utcnow

logger = get_logger(__name__)

MAX_READ_FAILURES = 10

# BGR
STATUS_COLORS = {
    KioskStatus.SUCCESS: (129, 185, 16),
    KioskStatus.ERROR: (68, 68, 239),
}
DEFAULT_COLOR = (246, 130, 59)

# Presence check is skipped while a detection is in flight
PRESENCE_STATES = frozenset({KioskStatus.IDLE, KioskStatus.SUCCESS, KioskStatus.ERROR})


def start_flask_server(app: Flask, config: Config) -> threading.Thread:
    """
    Start Flask server in a background thread.

    Args:
        app: Configured Flask app
        config: Service configuration
    """
    logger.info(f'Starting kiosk API on port {config.video_port}...')
    thread = threading.Thread(
        target=app.run,
        kwargs={
            'host': '0.0.0.0',
            'port': config.video_port,
            'threaded': True,
            'debug': False,
            'use_reloader': False,
        },
        daemon=True,
        name='kiosk-api',
    )
    thread.start()
    return thread


def run(
    provider: EmbeddingProvider,
    coordinator: DetectionCoordinator,
    config: Config,
    frames: FrameBuffer,
    preview: FrameBuffer,
    stop_flag: Optional[threading.Event] = None,
) -> None:
    """
    Main capture loop.

    Args:
        provider: Prepared embedding provider (used for the presence check)
        coordinator: Detection coordinator of this session
        config: Service configuration
        frames: Receives every raw frame (used by manual capture)
        preview: Receives annotated frames for the MJPEG stream
        stop_flag: Optional threading.Event to signal graceful shutdown
    """
    video_capture = connect_camera(config)

    frame_count = 0
    consecutive_failures = 0
    boxes: List[np.ndarray] = []

    logger.info('🎬 Starting kiosk loop...')

    try:
        while True:
            if stop_flag and stop_flag.is_set():
                logger.info('Stop signal received, exiting gracefully...')
                break

            ret, frame = video_capture.read()

            if not ret or frame is None:
                consecutive_failures += 1
                logger.warning(f'Failed to read frame ({consecutive_failures}/{MAX_READ_FAILURES})')

                if consecutive_failures >= MAX_READ_FAILURES:
                    video_capture, consecutive_failures = reconnect_camera(
                        video_capture, config, consecutive_failures
                    )
                else:
                    time.sleep(0.5)
                continue

            captured_at = utcnow()
            consecutive_failures = 0
            frame_count += 1
            frames.set(frame)

            if frame_count % config.frame_skip == 0:
                boxes = presence_boxes(provider, coordinator, frame)

                if boxes and coordinator.accepts_automatic_trigger():
                    logger.debug('Face detected, triggering recognition')
                    coordinator.trigger(frame, captured_at=captured_at)

            preview.set(draw_overlay(frame.copy(), boxes, coordinator.state))

            time.sleep(0.01)

    finally:
        video_capture.release()
        logger.info('Camera released')


def presence_boxes(
    provider: EmbeddingProvider,
    coordinator: DetectionCoordinator,
    frame: np.ndarray,
) -> List[np.ndarray]:
    """
    Face boxes visible in the frame right now.

    Empty while the models are not loaded or a detection is running.
    """
    if not provider.is_ready or coordinator.status not in PRESENCE_STATES:
        return []
    try:
        return provider.detect(frame)
    except KioskError as e:
        logger.warning(f'Presence check failed: {e}')
        return []


def draw_overlay(frame: np.ndarray, boxes: List[np.ndarray], state: KioskState) -> np.ndarray:
    """
    Draw face boxes and the status bar on a frame.

    Args:
        frame: Frame to draw on
        boxes: Face bounding boxes [x1, y1, x2, y2]
        state: Current kiosk state

    Returns:
        Frame with overlay
    """
    color = STATUS_COLORS.get(state.status, DEFAULT_COLOR)

    for box in boxes:
        x1, y1, x2, y2 = [int(v) for v in box[:4]]
        cv2.rectangle(frame, (x1, y1), (x2, y2), color, 3)

        # Corner accents
        corner = max(8, min(x2 - x1, y2 - y1) // 6)
        for (cx, cy, dx, dy) in ((x1, y1, 1, 1), (x2, y1, -1, 1), (x2, y2, -1, -1), (x1, y2, 1, -1)):
            cv2.line(frame, (cx, cy), (cx + dx * corner, cy), color, 5)
            cv2.line(frame, (cx, cy), (cx, cy + dy * corner), color, 5)

    # Status bar
    height, width = frame.shape[:2]
    cv2.rectangle(frame, (0, height - 40), (width, height), color, cv2.FILLED)
    cv2.putText(frame, state.message, (12, height - 14),
                cv2.FONT_HERSHEY_DUPLEX, 0.6, (255, 255, 255), 1)

    if not state.auto_detection:
        cv2.putText(frame, 'Auto detection off', (12, 28),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 3)
        cv2.putText(frame, 'Auto detection off', (12, 28),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 2)

    return frame
