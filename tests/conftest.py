"""Shared fixtures and fakes for the attendance kiosk tests."""

from dataclasses import replace

import numpy as np
import pytest

from attendance_kiosk.attendance import AttendanceRecorder
from attendance_kiosk.config import load_config
from attendance_kiosk.provider import DetectedFace, EmbeddingProvider
from attendance_kiosk.recognition.coordinator import DetectionCoordinator
from attendance_kiosk.recognition.store import EmbeddingStore
from attendance_kiosk.recognition.types import EnrolledIdentity
from attendance_kiosk.repository import MemoryRepository

DIM = 4


def vec(*values):
    """Embedding of dimension DIM, zero-padded."""
    padded = list(values) + [0.0] * (DIM - len(values))
    return np.array(padded, dtype=np.float32)


def face(*values, bbox=(10, 10, 50, 50)):
    return DetectedFace(bbox=np.array(bbox, dtype=np.float32), embedding=vec(*values))


class FakeTimer:
    """Stands in for threading.Timer; fired explicitly by the test."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.started = False
        self.cancelled = False
        self.daemon = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=()):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    def active(self):
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self):
        for timer in self.active():
            timer.fire()


class DeferredExecutor:
    """Executor that queues work until ``run_pending`` is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args):
        self.pending.append((fn, args))

    def run_pending(self):
        pending, self.pending = self.pending, []
        for fn, args in pending:
            fn(*args)


class FakeProvider(EmbeddingProvider):
    """Provider returning preset faces (or raising a preset error)."""

    def __init__(self, faces=None, error=None, init_error=None):
        self.faces = faces or []
        self.error = error
        self.init_error = init_error
        self.ready = False
        self.extract_calls = 0
        self.on_extract = None

    @property
    def is_ready(self):
        return self.ready

    def prepare(self):
        if self.init_error is not None:
            raise self.init_error
        self.ready = True

    def detect(self, frame):
        return [f.bbox for f in self.faces]

    def extract(self, frame):
        self.extract_calls += 1
        if self.on_extract is not None:
            self.on_extract()
        if self.error is not None:
            raise self.error
        return list(self.faces)


@pytest.fixture
def config(tmp_path):
    return replace(
        load_config(),
        embedding_dim=DIM,
        match_threshold=0.6,
        cooldown_seconds=3.0,
        detection_timeout_seconds=0.0,
        auto_detection=True,
        min_face_height_pixels=20,
        min_blur_variance=50.0,
        data_dir=str(tmp_path / 'data'),
        backend_url='',
    )


@pytest.fixture
def repository():
    return MemoryRepository()


@pytest.fixture
def store(repository):
    return EmbeddingStore(repository, DIM)


@pytest.fixture
def recorder(repository):
    return AttendanceRecorder(repository)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def coordinator(provider, store, recorder, config, timers):
    kiosk = DetectionCoordinator(provider, store, recorder, config, timer_factory=timers)
    kiosk.start()
    return kiosk


@pytest.fixture
def frame():
    return np.zeros((8, 8, 3), dtype=np.uint8)


def enroll(store, identity_id, name, *values):
    return store.add(EnrolledIdentity(id=identity_id, display_name=name, embedding=vec(*values)))
