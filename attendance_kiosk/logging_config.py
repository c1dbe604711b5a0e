"""
Logging configuration for the Attendance Kiosk.

Provides structured logging with kiosk ID context.
"""

import logging
import sys


class KioskContextFilter(logging.Filter):
    """Add kiosk context to log records."""

    def __init__(self, kiosk_id: str):
        super().__init__()
        self.kiosk_id = kiosk_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.kiosk_id = self.kiosk_id
        return True


def setup_logging(kiosk_id: str, debug: bool = False) -> None:
    """
    Configure logging for the service.

    Args:
        kiosk_id: Kiosk identifier for log context
        debug: Enable debug level logging
    """
    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '[%(levelname)s] [kiosk=%(kiosk_id)s] %(message)s'
    ))
    console_handler.addFilter(KioskContextFilter(kiosk_id))

    root_logger.addHandler(console_handler)

    # Werkzeug logs every MJPEG poll at INFO
    if not debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
