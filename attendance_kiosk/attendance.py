"""
Attendance recording module.

Appends attendance events and answers read-only queries over them.
Events are kept most-recent-first. Deduplication is not done here: the
detection coordinator's cooldown decides when a write happens.
"""

import enum
import itertools
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .logging_config import get_logger
from .repository import ATTENDANCE, Repository
from .utils.timing import utcnow

logger = get_logger(__name__)


class AttendanceStatus(enum.Enum):
    PRESENT = 'present'
    ABSENT = 'absent'


@dataclass(frozen=True)
class AttendanceEvent:
    id: str
    identity_id: str
    display_name: str
    occurred_at: datetime
    status: AttendanceStatus = AttendanceStatus.PRESENT

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'identity_id': self.identity_id,
            'display_name': self.display_name,
            'occurred_at': self.occurred_at.isoformat(),
            'status': self.status.value,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'AttendanceEvent':
        return cls(
            id=record['id'],
            identity_id=record['identity_id'],
            display_name=record['display_name'],
            occurred_at=datetime.fromisoformat(record['occurred_at']),
            status=AttendanceStatus(record.get('status', 'present')),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Public representation used by the HTTP API and the forwarder."""
        return {
            'id': self.id,
            'studentId': self.identity_id,
            'studentName': self.display_name,
            'attendanceDate': self.occurred_at.date().isoformat(),
            'timestamp': self.occurred_at.isoformat(),
            'status': self.status.value,
        }


Listener = Callable[[AttendanceEvent], Any]


class AttendanceRecorder:
    """Append-only attendance log backed by a repository collection."""

    def __init__(
        self,
        repository: Repository,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the recorder and load persisted events.

        Args:
            repository: Collection storage
            clock: Returns the current timezone-aware time

        Raises:
            StorageFailure: If the collection cannot be loaded
        """
        self.repository = repository
        self.clock = clock
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)
        self._listeners: List[Listener] = []
        self._events: Tuple[AttendanceEvent, ...] = tuple(
            AttendanceEvent.from_record(r) for r in repository.load_all(ATTENDANCE)
        )
        logger.info(f'Attendance log ready with {len(self._events)} events')

    def __len__(self) -> int:
        return len(self._events)

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener(event)`` after every successful write."""
        self._listeners.append(listener)

    def record(
        self,
        identity_id: str,
        display_name: str,
        status: AttendanceStatus = AttendanceStatus.PRESENT,
    ) -> AttendanceEvent:
        """
        Append a new attendance event.

        Args:
            identity_id: Enrolled identity id
            display_name: Name shown on the kiosk and in reports
            status: Attendance status

        Returns:
            The created event

        Raises:
            StorageFailure: If the flush fails (nothing is recorded)
        """
        with self._lock:
            occurred_at = self.clock()
            event = AttendanceEvent(
                id=f'{int(occurred_at.timestamp() * 1000)}-{next(self._sequence)}-{identity_id}',
                identity_id=identity_id,
                display_name=display_name,
                occurred_at=occurred_at,
                status=status,
            )
            events = (event,) + self._events
            self.repository.save_all(ATTENDANCE, [e.to_record() for e in events])
            self._events = events

        logger.info(f'Attendance recorded: {display_name} ({identity_id}) {status.value}')

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f'Attendance listener failed for {event.id}: {e}')

        return event

    def all(self) -> List[AttendanceEvent]:
        """All events, most-recent-first."""
        return list(self._events)

    def query_by_identity(self, identity_id: str) -> List[AttendanceEvent]:
        """Events of one identity, most-recent-first."""
        return [e for e in self._events if e.identity_id == identity_id]

    def query_by_range(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AttendanceEvent]:
        """
        Events whose ``occurred_at`` lies within the inclusive bounds.

        Naive bounds are taken as UTC. Either bound may be omitted.
        """
        start = _as_aware(start)
        end = _as_aware(end)
        return [
            e for e in self._events
            if (start is None or e.occurred_at >= start)
            and (end is None or e.occurred_at <= end)
        ]


def _as_aware(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
