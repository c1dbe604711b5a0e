"""
Camera connection module.

Opens the kiosk camera, either a local webcam (index 0, 1, 2) or a
network stream URL, with retry and reconnection logic.
"""

import time
from typing import Tuple, Union

import cv2

from .config import Config
from .exceptions import CameraError
from .logging_config import get_logger

logger = get_logger(__name__)


def parse_camera_source(camera_source: str) -> Union[int, str]:
    """Return a webcam index for numeric sources, the URL otherwise."""
    source = camera_source.strip()
    return int(source) if source.isdigit() else source


def connect_camera(config: Config, max_retries: int = 5) -> cv2.VideoCapture:
    """
    Connect to camera with retry logic.

    Args:
        config: Service configuration
        max_retries: Maximum connection attempts

    Returns:
        Opened VideoCapture object

    Raises:
        CameraError: If connection fails after max_retries
    """
    source = parse_camera_source(config.camera_source)
    camera_type = 'local' if isinstance(source, int) else 'stream'

    for attempt in range(max_retries):
        logger.info(f'Connecting to {camera_type} camera (attempt {attempt + 1}/{max_retries})...')

        video_capture = cv2.VideoCapture(source)
        if camera_type == 'local':
            video_capture.set(cv2.CAP_PROP_FRAME_WIDTH, 1280)
            video_capture.set(cv2.CAP_PROP_FRAME_HEIGHT, 720)

        if video_capture.isOpened():
            ret, frame = video_capture.read()
            if ret and frame is not None:
                logger.info(f'✅ Camera connected ({camera_type})')
                logger.info(f'Frame size: {frame.shape[1]}x{frame.shape[0]}')
                return video_capture
            logger.warning('Camera opened but failed to read frame')
        else:
            logger.warning('Failed to open camera')
        video_capture.release()

        # Exponential backoff
        if attempt < max_retries - 1:
            wait_time = 2 ** attempt
            logger.info(f'Retrying in {wait_time} seconds...')
            time.sleep(wait_time)

    raise CameraError(f'Cannot connect to camera after {max_retries} attempts')


def reconnect_camera(
    video_capture: cv2.VideoCapture,
    config: Config,
    consecutive_failures: int
) -> Tuple[cv2.VideoCapture, int]:
    """
    Reconnect to camera after failures.

    Args:
        video_capture: Current VideoCapture (will be released)
        config: Service configuration
        consecutive_failures: Number of consecutive failures

    Returns:
        Tuple of (new VideoCapture, reset failure count)
    """
    logger.error(f'Too many failures ({consecutive_failures}), reconnecting...')

    try:
        video_capture.release()
    except cv2.error as e:
        logger.warning(f'Error releasing camera: {e}')

    time.sleep(2)
    return connect_camera(config), 0
