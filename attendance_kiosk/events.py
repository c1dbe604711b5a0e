"""
Event forwarding module.

Sends recorded attendance events to the central backend API.
"""

import requests

from .attendance import AttendanceEvent
from .config import Config
from .logging_config import get_logger

logger = get_logger(__name__)


def send_event(event: AttendanceEvent, config: Config) -> bool:
    """
    Send an attendance event to the backend.

    Args:
        event: Recorded attendance event
        config: Service configuration

    Returns:
        True if event sent successfully
    """
    url = f'{config.backend_url}/attendance'

    payload = {
        'studentId': event.identity_id,
        'recognitionStatus': 'recognized',
        'timestamp': event.occurred_at.isoformat(),
        'kioskId': config.kiosk_id,
    }

    try:
        logger.info(f'📤 Forwarding attendance of {event.identity_id} to backend')

        response = requests.post(url, json=payload, timeout=5)

        if response.ok:
            logger.info('✅ Event forwarded successfully')
            return True
        logger.error(f'❌ Failed to forward event: {response.status_code} {response.text}')
        return False

    except requests.exceptions.Timeout:
        logger.error(f'❌ Timeout forwarding event to {url}')
        return False
    except requests.exceptions.ConnectionError:
        logger.error(f'❌ Connection error forwarding event to {url}')
        return False
    except requests.exceptions.RequestException as e:
        logger.error(f'❌ Error forwarding event: {e}')
        return False


def make_forwarder(config: Config):
    """Return a recorder listener that forwards events, or None when disabled."""
    if not config.backend_url:
        return None

    def forward(event: AttendanceEvent) -> bool:
        return send_event(event, config)

    return forward
