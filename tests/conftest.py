"""Shared fixtures and helpers for the treewatch tests."""

import threading
import time
from pathlib import Path

import pytest

from src.treewatch.detector import Detector
from src.treewatch.exceptions import DetectorClosedError, RegistrationError
from src.treewatch.service import WatchService
from src.treewatch.sinks import EventSink
from src.treewatch.tree import RegistrationTree


class FakeDetector(Detector):
    """Detector that only reports the events a test fires explicitly."""

    def __init__(self, config=None, fail_paths=()):
        super().__init__(config)
        self.handles = {}
        self.cancelled = []
        self.fail_paths = {Path(p).resolve() for p in fail_paths}
        self.close_timeouts = []
        self.dead = set()
        self._serial = 0
        self._lock = threading.Lock()

    def start(self):
        self._started = True

    def register_directory(self, path):
        with self._lock:
            if self._closed:
                raise DetectorClosedError("Detector is closed")
            if path in self.fail_paths or not path.is_dir():
                raise RegistrationError(path)
            if path in self.handles and self.handles[path] not in self.dead:
                return self.handles[path]
            self._serial += 1
            handle = ("handle", path, self._serial)
            self.handles[path] = handle
            return handle

    def cancel(self, handle):
        with self._lock:
            self.cancelled.append(handle)
            if self.handles.get(handle[1]) == handle:
                del self.handles[handle[1]]

    def is_valid(self, handle):
        return (
            not self._closed
            and self.handles.get(handle[1]) == handle
            and handle not in self.dead
        )

    def kill(self, path):
        """Drop the registration of a directory the way a stopped emitter does."""
        self.dead.add(self.handles[Path(path)])

    def close(self, timeout=None):
        self.close_timeouts.append(timeout)
        if self._closed:
            return
        self._closed = True
        self.notify_closed()

    def fire(self, path, kind, count=1):
        self.emit(Path(path), kind, count)


class RecordingSink(EventSink):
    """Sink that records everything it receives."""

    def __init__(self):
        self.events = []
        self.watched = []
        self.closed = False
        self._lock = threading.Lock()

    def on_event(self, event):
        with self._lock:
            self.events.append(event)

    def on_path_watched(self, path):
        with self._lock:
            self.watched.append(path)

    def on_close(self):
        self.closed = True

    def snapshot(self):
        with self._lock:
            return list(self.events)


def wait_for(predicate, timeout=5.0, interval=0.02):
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def root(tmp_path):
    """A resolved, empty directory to watch."""
    path = tmp_path / "root"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def detector():
    fake = FakeDetector()
    fake.start()
    return fake


@pytest.fixture
def service(detector):
    return WatchService(detector)


@pytest.fixture
def tree(service):
    return RegistrationTree(service)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_detector():
    """Factory for started fake detectors with custom options."""
    def factory(config=None, fail_paths=()):
        fake = FakeDetector(config=config, fail_paths=fail_paths)
        fake.start()
        return fake
    return factory
