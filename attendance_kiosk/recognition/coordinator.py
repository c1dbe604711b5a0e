"""
Detection coordinator module.

Drives one kiosk session through an explicit state machine:

    INITIALIZING -> IDLE -> DETECTING -> SUCCESS | ERROR -> IDLE

The DETECTING state is the only concurrency gate: a trigger is accepted
only when no detection is in flight. A SUCCESS starts a cooldown for the
matched identity; while it is active no second attendance write is made
for that identity. SUCCESS and ERROR return to IDLE after
``cooldown_seconds``, clearing the cooldown in the same step.

Manual triggers may start a fresh check from SUCCESS or ERROR (they cancel
the pending return to IDLE). Every identity recorded since the last IDLE
stays in cooldown across manual checks, so none of them is written twice.
"""

import enum
import threading
from datetime import datetime
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

import numpy as np

from ..attendance import AttendanceEvent, AttendanceRecorder
from ..config import Config
from ..exceptions import (
    FaceNotRecognized,
    KioskError,
    ModelInitFailure,
    MultipleFacesDetected,
    NoEnrolledIdentities,
    NoFaceDetected,
    ProviderFailure,
    StorageFailure,
)
from ..logging_config import get_logger
from ..provider import DetectedFace, EmbeddingProvider
from ..utils.timing import utcnow
from .matching import Matcher
from .store import EmbeddingStore
from .types import MatchOutcome, MatchResult

logger = get_logger(__name__)

INITIALIZING_MESSAGE = 'Initializing camera and face detection...'
IDLE_MESSAGE = 'Please face the camera to mark your attendance'
DETECTING_MESSAGE = 'Detecting face...'


class KioskStatus(enum.Enum):
    INITIALIZING = 'initializing'
    IDLE = 'idle'
    DETECTING = 'detecting'
    SUCCESS = 'success'
    ERROR = 'error'


TRANSITIONS: Dict[KioskStatus, FrozenSet[KioskStatus]] = {
    KioskStatus.INITIALIZING: frozenset({KioskStatus.IDLE, KioskStatus.ERROR}),
    KioskStatus.IDLE: frozenset({KioskStatus.DETECTING}),
    KioskStatus.DETECTING: frozenset({KioskStatus.SUCCESS, KioskStatus.ERROR}),
    # -> DETECTING from SUCCESS/ERROR is manual only
    KioskStatus.SUCCESS: frozenset({KioskStatus.IDLE, KioskStatus.DETECTING}),
    KioskStatus.ERROR: frozenset({
        KioskStatus.IDLE, KioskStatus.DETECTING, KioskStatus.INITIALIZING,
    }),
}

_OUTCOME_ERRORS = {
    MatchOutcome.NO_MATCH: FaceNotRecognized,
    MatchOutcome.AMBIGUOUS: MultipleFacesDetected,
    MatchOutcome.EMPTY: NoEnrolledIdentities,
}


@dataclass(frozen=True)
class KioskState:
    """Read-only view of the coordinator at one instant."""

    status: KioskStatus
    message: str
    cooldown_active: bool
    cooldown_identity: Optional[str]
    auto_detection: bool
    terminal: bool = False
    error_kind: Optional[str] = None
    last_event: Optional[AttendanceEvent] = None
    last_distance: Optional[float] = None
    boxes: Tuple[Tuple[float, ...], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'message': self.message,
            'cooldownActive': self.cooldown_active,
            'cooldownIdentity': self.cooldown_identity,
            'autoDetection': self.auto_detection,
            'terminal': self.terminal,
            'errorKind': self.error_kind,
            'lastEvent': self.last_event.to_dict() if self.last_event else None,
            'lastDistance': self.last_distance,
            'boxes': [list(b) for b in self.boxes],
        }


class InvalidTransition(RuntimeError):
    """Raised on a state change missing from the transition table."""


class DetectionCoordinator:
    """
    Gates detection requests and turns confident matches into attendance.

    Detection runs inline in ``trigger`` unless an executor is given, in
    which case ``trigger`` returns immediately and the result is applied
    from the worker. Each detection carries a cycle token; results for a
    stale cycle (teardown, timeout, superseded) are discarded.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: EmbeddingStore,
        recorder: AttendanceRecorder,
        config: Config,
        matcher: Optional[Matcher] = None,
        executor: Optional[Executor] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        """
        Initialize the coordinator in INITIALIZING.

        Args:
            provider: Embedding provider
            store: Enrolled identities
            recorder: Attendance log
            config: Service configuration
            matcher: Matcher (defaults to one using config.match_threshold)
            executor: Runs detections off the caller's thread when given
            timer_factory: ``factory(interval, function, args)`` returning an
                object with ``start()`` and ``cancel()``
        """
        self.provider = provider
        self.store = store
        self.recorder = recorder
        self.config = config
        self.matcher = matcher or Matcher(config.match_threshold)
        self.executor = executor
        self.timer_factory = timer_factory

        self._lock = threading.Lock()
        self._status = KioskStatus.INITIALIZING
        self._message = INITIALIZING_MESSAGE
        self._cooldown_identity: Optional[str] = None
        self._cooldown_identities: Set[str] = set()
        self._auto_detection = config.auto_detection
        self._terminal = False
        self._closed = False
        self._cycle = 0
        self._error_kind: Optional[str] = None
        self._last_event: Optional[AttendanceEvent] = None
        self._last_distance: Optional[float] = None
        self._boxes: Tuple[Tuple[float, ...], ...] = ()
        self._cooldown_timer: Any = None
        self._timeout_timer: Any = None

    # ------------------------------------------------------------------
    # Queries

    @property
    def state(self) -> KioskState:
        with self._lock:
            return KioskState(
                status=self._status,
                message=self._message,
                cooldown_active=bool(self._cooldown_identities),
                cooldown_identity=self._cooldown_identity,
                auto_detection=self._auto_detection,
                terminal=self._terminal,
                error_kind=self._error_kind,
                last_event=self._last_event,
                last_distance=self._last_distance,
                boxes=self._boxes,
            )

    @property
    def status(self) -> KioskStatus:
        return self._status

    def accepts_automatic_trigger(self) -> bool:
        """True when an automatic trigger would start a detection now."""
        with self._lock:
            return self._can_start(manual=False)

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> bool:
        """
        Load the provider models and move to IDLE.

        A model failure is terminal: the kiosk stays in ERROR until
        ``retry`` is called.

        Returns:
            True if the kiosk is ready
        """
        with self._lock:
            if self._closed:
                return False
            if self._status is not KioskStatus.INITIALIZING:
                return self._status is not KioskStatus.ERROR

        try:
            if not self.provider.is_ready:
                self.provider.prepare()
        except ModelInitFailure as e:
            logger.error(f'Model initialization failed: {e}')
            with self._lock:
                self._terminal = True
                self._error_kind = type(e).__name__
                self._transition(KioskStatus.ERROR, str(e))
            return False

        with self._lock:
            if self._closed:
                return False
            self._transition(KioskStatus.IDLE, IDLE_MESSAGE)

        logger.info('Kiosk ready')
        return True

    def retry(self) -> bool:
        """
        Re-run initialization after a terminal failure.

        Returns:
            True if the kiosk is ready afterwards
        """
        with self._lock:
            if not self._terminal or self._closed:
                return not self._terminal and not self._closed
            self._terminal = False
            self._error_kind = None
            self._transition(KioskStatus.INITIALIZING, INITIALIZING_MESSAGE)

        logger.info('Retrying model initialization...')
        return self.start()

    def close(self) -> None:
        """Tear down the session: cancel timers and discard pending results."""
        with self._lock:
            self._closed = True
            self._cycle += 1
            self._cancel_timers()
        logger.info('Detection coordinator closed')

    def set_auto_detection(self, enabled: bool) -> None:
        with self._lock:
            self._auto_detection = bool(enabled)
        logger.info(f'Automatic detection {"enabled" if enabled else "disabled"}')

    # ------------------------------------------------------------------
    # Detection

    def trigger(
        self,
        frame: np.ndarray,
        manual: bool = False,
        captured_at: Optional[datetime] = None,
    ) -> bool:
        """
        Request a detection on a frame.

        Args:
            frame: BGR frame
            manual: Operator-initiated trigger
            captured_at: When the frame was read (defaults to now)

        Returns:
            True if a detection was started, False if the trigger was dropped
        """
        with self._lock:
            if self._closed or not self._can_start(manual):
                logger.debug(
                    f'Trigger dropped (status={self._status.value}, manual={manual})'
                )
                return False

            captured_at = captured_at or utcnow()
            self._cancel_timers()
            self._cycle += 1
            cycle = self._cycle
            self._error_kind = None
            self._last_distance = None
            self._boxes = ()
            self._transition(KioskStatus.DETECTING, DETECTING_MESSAGE)

            if self.config.detection_timeout_seconds > 0:
                self._timeout_timer = self._start_timer(
                    self.config.detection_timeout_seconds, self._on_timeout, cycle
                )

        logger.debug(f'Detection {cycle} started ({"manual" if manual else "auto"})')

        if self.executor is None:
            self._run_detection(cycle, frame, captured_at)
        else:
            try:
                self.executor.submit(self._run_detection, cycle, frame, captured_at)
            except RuntimeError as e:
                logger.error(f'Cannot schedule detection: {e}')
                self._fail(cycle, ProviderFailure())
        return True

    def _can_start(self, manual: bool) -> bool:
        # Caller holds the lock
        if self._status is KioskStatus.IDLE:
            if manual:
                return True
            return self._auto_detection and not self._cooldown_identities
        if self._status is KioskStatus.SUCCESS:
            return manual
        if self._status is KioskStatus.ERROR:
            return manual and not self._terminal
        return False

    def _run_detection(self, cycle: int, frame: np.ndarray, captured_at: datetime) -> None:
        try:
            faces = self.provider.extract(frame)
            self._set_boxes(cycle, faces)
            if not faces:
                raise NoFaceDetected()

            result = self.matcher.resolve(
                [face.to_sample(captured_at) for face in faces],
                self.store.snapshot(),
            )
            if not result.matched:
                with self._lock:
                    if self._is_current(cycle):
                        self._last_distance = _finite_or_none(result.distance)
                raise _OUTCOME_ERRORS[result.outcome]()

            self._succeed(cycle, result)

        except StorageFailure as e:
            logger.error(f'Attendance write failed: {e}')
            self._fail(cycle, StorageFailure('Error recording attendance'))
        except KioskError as e:
            self._fail(cycle, e)
        except Exception as e:
            logger.error(f'Error processing face recognition: {e}', exc_info=True)
            self._fail(cycle, ProviderFailure())

    def _set_boxes(self, cycle: int, faces: List[DetectedFace]) -> None:
        with self._lock:
            if self._is_current(cycle):
                self._boxes = tuple(
                    tuple(float(v) for v in face.bbox[:4]) for face in faces
                )

    def _succeed(self, cycle: int, result: MatchResult) -> None:
        name = result.display_name or result.identity_id
        with self._lock:
            if not self._is_current(cycle):
                logger.info(f'Discarding stale match for {result.identity_id}')
                return
            self._cancel_timers()

            if result.identity_id in self._cooldown_identities:
                message = f'Attendance already recorded for {name}'
                logger.info(f'{name} matched during cooldown, no new record')
            else:
                # Written under the lock so a timeout cannot interleave
                self._last_event = self.recorder.record(result.identity_id, name)
                self._cooldown_identities.add(result.identity_id)
                message = f'Attendance marked for {name}'
                logger.info(f'✅ {message} (distance={result.distance:.3f})')

            self._cooldown_identity = result.identity_id
            self._last_distance = result.distance
            self._transition(KioskStatus.SUCCESS, message)
            self._cooldown_timer = self._start_timer(
                self.config.cooldown_seconds, self._on_cooldown_elapsed, cycle
            )

    def _fail(self, cycle: int, error: KioskError) -> None:
        with self._lock:
            if not self._is_current(cycle):
                logger.debug(f'Discarding stale failure: {error}')
                return
            self._cancel_timers()
            self._error_kind = type(error).__name__
            self._transition(KioskStatus.ERROR, str(error))
            self._cooldown_timer = self._start_timer(
                self.config.cooldown_seconds, self._on_cooldown_elapsed, cycle
            )
        logger.info(f'Detection failed: {error}')

    # ------------------------------------------------------------------
    # Timers

    def _on_cooldown_elapsed(self, cycle: int) -> None:
        with self._lock:
            if self._closed or cycle != self._cycle:
                return
            if self._status not in (KioskStatus.SUCCESS, KioskStatus.ERROR) or self._terminal:
                return
            self._cooldown_timer = None
            self._cooldown_identity = None
            self._cooldown_identities.clear()
            self._transition(KioskStatus.IDLE, IDLE_MESSAGE)

    def _on_timeout(self, cycle: int) -> None:
        with self._lock:
            if not self._is_current(cycle):
                return
            self._timeout_timer = None
        logger.warning(f'Detection {cycle} timed out')
        self._fail(cycle, ProviderFailure('Detection timed out'))

    def _start_timer(self, interval: float, function: Callable, cycle: int) -> Any:
        timer = self.timer_factory(interval, function, args=(cycle,))
        timer.daemon = True
        timer.start()
        return timer

    def _cancel_timers(self) -> None:
        # Caller holds the lock
        for timer in (self._cooldown_timer, self._timeout_timer):
            if timer is not None:
                timer.cancel()
        self._cooldown_timer = None
        self._timeout_timer = None

    # ------------------------------------------------------------------

    def _is_current(self, cycle: int) -> bool:
        return (
            not self._closed
            and cycle == self._cycle
            and self._status is KioskStatus.DETECTING
        )

    def _transition(self, status: KioskStatus, message: str) -> None:
        # Caller holds the lock
        if status not in TRANSITIONS[self._status]:
            raise InvalidTransition(f'{self._status.value} -> {status.value}')
        logger.debug(f'State {self._status.value} -> {status.value}: {message}')
        self._status = status
        self._message = message


def _finite_or_none(value: float) -> Optional[float]:
    return value if np.isfinite(value) else None
