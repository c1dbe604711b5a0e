"""
Attendance Kiosk - Main Entry Point

Runs one kiosk session: camera loop, detection coordinator and HTTP API.
"""

import argparse
import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path

from .app import create_app
from .attendance import AttendanceRecorder
from .config import Config, load_config
from .events import make_forwarder
from .exceptions import CameraError, StorageFailure
from .logging_config import get_logger, setup_logging
from .recognition.coordinator import DetectionCoordinator
from .recognition.store import EmbeddingStore
from .repository import PickleFileRepository
from .streaming import FrameBuffer

logger = get_logger(__name__)


def _load_local_env() -> None:
    """Load environment variables from attendance_kiosk/.env if present."""
    env_path = Path(__file__).resolve().parent / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Attendance Kiosk - Face Recognition Attendance'
    )

    parser.add_argument('--camera', type=str, help='Camera index or stream URL (or set CAMERA_SOURCE)')
    parser.add_argument('--port', type=int, help='HTTP API port (or set VIDEO_PORT)')
    parser.add_argument('--data-dir', type=str, help='Data directory (or set DATA_DIR)')
    parser.add_argument('--backend-url', type=str, help='Backend to forward attendance to (or set BACKEND_URL)')
    parser.add_argument('--threshold', type=float, help='Match distance threshold (or set MATCH_THRESHOLD)')
    parser.add_argument('--api-only', action='store_true', help='Serve the API without camera or models')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    return parser.parse_args(argv)


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Override environment configuration with command line flags."""
    overrides = {}
    if args.camera is not None:
        overrides['camera_source'] = args.camera
    if args.port is not None:
        overrides['video_port'] = args.port
    if args.data_dir is not None:
        overrides['data_dir'] = args.data_dir
    if args.backend_url is not None:
        overrides['backend_url'] = args.backend_url.rstrip('/')
    if args.threshold is not None:
        overrides['match_threshold'] = args.threshold
    if args.debug:
        overrides['debug_mode'] = True
    return replace(config, **overrides)


def main(argv=None) -> None:
    """Main entry point."""
    _load_local_env()
    args = parse_args(argv)
    config = apply_args(load_config(), args)

    setup_logging(config.kiosk_id, config.debug_mode)

    logger.info('=' * 60)
    logger.info('Attendance Kiosk')
    logger.info('=' * 60)
    logger.info(f'Camera: {config.camera_source}')
    logger.info(f'Data dir: {config.data_dir}')
    logger.info(f'Threshold: {config.match_threshold} (D={config.embedding_dim})')
    logger.info(f'Backend: {config.backend_url or "disabled"}')
    logger.info('=' * 60)

    try:
        repository = PickleFileRepository(config.data_dir)
        store = EmbeddingStore(repository, config.embedding_dim)
        recorder = AttendanceRecorder(repository)
    except StorageFailure as e:
        logger.error(f'Cannot open data directory: {e}')
        sys.exit(1)

    if args.api_only:
        app = create_app(config, store, recorder)
        app.run(host='0.0.0.0', port=config.video_port, debug=False, use_reloader=False)
        return

    forward_pool = None
    forwarder = make_forwarder(config)
    if forwarder is not None:
        forward_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix='forward')
        recorder.subscribe(lambda event: forward_pool.submit(forwarder, event))

    # Import here so --api-only runs without insightface installed
    from .face_app import InsightFaceProvider
    from . import kiosk_loop

    provider = InsightFaceProvider(config)
    detection_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix='detect')
    coordinator = DetectionCoordinator(provider, store, recorder, config, executor=detection_pool)
    frames, preview = FrameBuffer(), FrameBuffer()

    app = create_app(config, store, recorder, coordinator, provider, frames, preview)
    kiosk_loop.start_flask_server(app, config)
    logger.info(f'Preview: http://localhost:{config.video_port}/video_feed')

    if not coordinator.start():
        logger.error('Face models unavailable; POST /kiosk/retry to try again')

    stop_flag = threading.Event()
    try:
        kiosk_loop.run(provider, coordinator, config, frames, preview, stop_flag)
    except KeyboardInterrupt:
        logger.info('Received keyboard interrupt, shutting down...')
    except CameraError as e:
        logger.error(f'Fatal camera error: {e}')
        sys.exit(1)
    finally:
        stop_flag.set()
        coordinator.close()
        detection_pool.shutdown(wait=False)
        if forward_pool is not None:
            forward_pool.shutdown(wait=True)


if __name__ == '__main__':
    main()
