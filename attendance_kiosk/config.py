"""
Configuration module for the Attendance Kiosk.

Loads configuration from environment variables with sensible defaults.
All settings are immutable after initialization.
"""

import os
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for the Attendance Kiosk.

    Kiosk Identity:
        kiosk_id: Logical identifier for this kiosk (for logging/forwarding)
        service_name: Name of this service instance
        video_port: Port for Flask HTTP server

    Camera Settings:
        camera_source: Camera source - can be:
            - Integer (0, 1, 2) for local webcam
            - RTSP/HTTP URL for a network stream
        frame_skip: Run the presence check every N-th frame

    Recognition:
        embedding_dim: Dimension D of every face embedding
        match_threshold: Maximum L2 distance accepted as a match
        insightface_det_size: Detection size for InsightFace (width, height)

    Detection Cycle:
        cooldown_seconds: Time spent in Success/Error before returning to Idle
        detection_timeout_seconds: Abandon a detection after this long (0 = never)
        auto_detection: Trigger detection automatically when a face is visible

    Enrollment Quality:
        min_face_height_pixels: Minimum face height in pixels for enrollment photos
        min_blur_variance: Minimum Laplacian variance (higher = sharper required)

    System:
        data_dir: Directory holding the identity and attendance collections
        backend_url: Central backend to forward attendance events to (empty = off)
        debug_mode: Enable debug logging
    """

    # Kiosk
    kiosk_id: str
    service_name: str
    video_port: int

    # Camera
    camera_source: str
    frame_skip: int

    # Recognition
    embedding_dim: int
    match_threshold: float
    insightface_det_size: Tuple[int, int]

    # Detection cycle
    cooldown_seconds: float
    detection_timeout_seconds: float
    auto_detection: bool

    # Enrollment quality
    min_face_height_pixels: int
    min_blur_variance: float

    # System
    data_dir: str
    backend_url: str
    debug_mode: bool


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config: Immutable configuration object
    """
    return Config(
        # Kiosk
        kiosk_id=os.getenv('KIOSK_ID', 'kiosk-1'),
        service_name=os.getenv('SERVICE_NAME', 'attendance-kiosk'),
        video_port=int(os.getenv('VIDEO_PORT', '5001')),

        # Camera
        camera_source=os.getenv('CAMERA_SOURCE', '0'),
        frame_skip=int(os.getenv('FRAME_SKIP', '3')),

        # Recognition
        embedding_dim=int(os.getenv('EMBEDDING_DIM', '512')),
        match_threshold=float(os.getenv('MATCH_THRESHOLD', '0.6')),
        insightface_det_size=(640, 640),

        # Detection cycle
        cooldown_seconds=float(os.getenv('COOLDOWN_SECONDS', '3.0')),
        detection_timeout_seconds=float(os.getenv('DETECTION_TIMEOUT', '0')),
        auto_detection=os.getenv('AUTO_DETECTION', 'true').lower() == 'true',

        # Enrollment quality
        min_face_height_pixels=int(os.getenv('MIN_FACE_HEIGHT', '80')),
        min_blur_variance=float(os.getenv('MIN_BLUR_VAR', '50.0')),

        # System
        data_dir=os.getenv('DATA_DIR', 'data'),
        backend_url=os.getenv('BACKEND_URL', '').rstrip('/'),
        debug_mode=os.getenv('DEBUG', 'false').lower() == 'true',
    )
