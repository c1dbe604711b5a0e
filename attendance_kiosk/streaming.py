"""
Video streaming module.

Holds the latest camera frame and the latest annotated preview frame,
and generates the MJPEG preview stream for Flask.
Thread-safe frame access using locks.
"""

import threading
import time
from typing import Generator, Optional

import cv2
import numpy as np


class FrameBuffer:
    """Single-slot frame holder shared between the capture loop and Flask."""

    def __init__(self):
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    def set(self, frame: Optional[np.ndarray]) -> None:
        with self._lock:
            self._frame = frame.copy() if frame is not None else None

    def get_copy(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame.copy() if self._frame is not None else None

    @property
    def has_frame(self) -> bool:
        with self._lock:
            return self._frame is not None


def generate_mjpeg_frames(
    buffer: FrameBuffer,
    stop_flag: Optional[threading.Event] = None,
) -> Generator[bytes, None, None]:
    """
    Generate MJPEG frames from a buffer.

    Yields:
        JPEG frame bytes with multipart headers
    """
    while stop_flag is None or not stop_flag.is_set():
        frame = buffer.get_copy()

        if frame is None:
            time.sleep(0.1)
            continue

        ret, jpeg = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, 85])
        if ret:
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + jpeg.tobytes() + b'\r\n')

        # ~30 FPS
        time.sleep(0.033)
