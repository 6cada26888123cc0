"""Change detectors built on the watchdog library."""

import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    DirDeletedEvent,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

from .config import WatcherConfig
from .exceptions import DetectorClosedError, DetectorError, RegistrationError
from .models import EventKind

logger = logging.getLogger(__name__)


class Detector(ABC):
    """
    Base class for change detectors.

    A detector watches individual directories and reports every change it
    sees to the bound feed (normally a WatchService) as
    ``on_raw_event(path, kind, count)`` or ``on_overflow(directory)``.
    """

    def __init__(self, config: Optional[WatcherConfig] = None):
        self.config = config or WatcherConfig()
        self._feed = None
        self._started = False
        self._closed = False

    def bind(self, feed) -> None:
        """
        Set the receiver of raw change notifications.

        Args:
            feed: Object with on_raw_event, on_overflow and
                on_detector_closed methods
        """
        self._feed = feed

    @abstractmethod
    def start(self) -> None:
        """Start detecting changes."""
        pass

    @abstractmethod
    def register_directory(self, path: Path) -> Any:
        """
        Start watching a single directory (not its subdirectories).

        Args:
            path: Absolute directory path

        Returns:
            An opaque handle for cancel()

        Raises:
            RegistrationError: If the directory cannot be watched
            DetectorClosedError: If the detector has been closed
        """
        pass

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """Stop watching the directory behind a handle."""
        pass

    @abstractmethod
    def close(self, timeout: Optional[float] = None) -> None:
        """
        Stop detecting changes and release resources.

        Args:
            timeout: Seconds to wait for detector threads; None waits forever

        Implementations call notify_closed() once they are closed.
        """
        pass

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_polling(self) -> bool:
        return False

    def is_ready(self) -> bool:
        """Check whether the detector is started and not closed."""
        return self._started and not self._closed

    def is_valid(self, handle: Any) -> bool:
        """
        Check whether a registration still delivers events.

        Called while the service lock is held, so implementations must not
        block on their own locks.
        """
        return not self._closed

    def emit(self, path: Path, kind: EventKind, count: int = 1) -> None:
        """Report a change to the bound feed."""
        if self._feed is None or self._closed:
            return
        if self.config.should_ignore(path):
            logger.debug(f"Ignoring {kind.value} event for {path}")
            return
        self._feed.on_raw_event(path, kind, count)

    def emit_overflow(self, directory: Optional[Path] = None) -> None:
        """Report possible event loss for a directory, or for all when None."""
        if self._feed is None or self._closed:
            return
        self._feed.on_overflow(directory)

    def notify_closed(self) -> None:
        """Tell the bound feed that no more events will arrive."""
        if self._feed is not None:
            self._feed.on_detector_closed()


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events for one directory into raw events."""

    def __init__(self, detector: "WatchdogDetector", directory: Path):
        super().__init__()
        self.detector = detector
        self.directory = directory

    @staticmethod
    def _path(raw) -> Path:
        return Path(os.fsdecode(raw))

    def on_created(self, event: FileSystemEvent):
        self.detector.emit(self._path(event.src_path), EventKind.CREATE)

    def on_deleted(self, event: FileSystemEvent):
        path = self._path(event.src_path)
        if isinstance(event, DirDeletedEvent) and path == self.directory:
            # The watched directory itself is gone. A watched parent reports
            # the same deletion as a change of its entry.
            if self.detector.is_watching(path.parent):
                return
        self.detector.emit(path, EventKind.DELETE)

    def on_modified(self, event: FileSystemEvent):
        # Listing changes of a directory are reported through its entries.
        if event.is_directory:
            return
        self.detector.emit(self._path(event.src_path), EventKind.MODIFY)

    def on_moved(self, event: FileSystemEvent):
        self.detector.emit(self._path(event.src_path), EventKind.DELETE)
        self.detector.emit(self._path(event.dest_path), EventKind.CREATE)


class WatchdogDetector(Detector):
    """
    Detector that schedules one non-recursive watchdog watch per directory.

    Subclasses choose the observer implementation.
    """

    def __init__(self, config: Optional[WatcherConfig] = None):
        super().__init__(config)
        self._observer = self._make_observer()
        self._watches: Dict[Path, ObservedWatch] = {}
        self._lock = threading.Lock()

    @abstractmethod
    def _make_observer(self) -> BaseObserver:
        pass

    def start(self) -> None:
        with self._lock:
            if self._closed:
                raise DetectorClosedError("Detector is closed")
            if self._started:
                return
            try:
                self._observer.start()
            except OSError as e:
                raise DetectorError(f"Failed to start {type(self).__name__}: {e}") from e
            self._started = True
        logger.debug(f"{type(self).__name__} started")

    def register_directory(self, path: Path) -> ObservedWatch:
        with self._lock:
            if self._closed:
                raise DetectorClosedError("Detector is closed")
            if not path.is_dir():
                raise RegistrationError(path, f"Not a directory: {path}")

            existing = self._watches.get(path)
            if existing is not None:
                if self._emitter_alive(existing):
                    return existing
                # The directory was deleted (and maybe recreated) under a
                # watch whose emitter has stopped.
                logger.debug(f"Replacing stopped watch for {path}")
                del self._watches[path]
                self._unschedule(existing)

            handler = FSEventHandler(self, path)
            try:
                watch = self._observer.schedule(handler, str(path), recursive=False)
            except OSError as e:
                raise RegistrationError(path, f"Failed to register path {path}: {e}") from e

            self._watches[path] = watch
            return watch

    def cancel(self, handle: ObservedWatch) -> None:
        with self._lock:
            path = Path(handle.path)
            if self._watches.get(path) is not handle:
                # Already cancelled or replaced; watches compare equal by
                # path, so unscheduling would hit the replacement.
                logger.debug(f"Watch for {path} was already removed")
                return
            del self._watches[path]
            if not self._closed:
                self._unschedule(handle)

    def _unschedule(self, handle: ObservedWatch) -> None:
        try:
            self._observer.unschedule(handle)
        except KeyError:
            logger.debug(f"Watch for {handle.path} was already unscheduled")

    def _emitter_alive(self, handle: ObservedWatch) -> bool:
        if not self._started:
            return True
        for emitter in list(self._observer.emitters):
            if emitter.watch is handle:
                return emitter.is_alive() and emitter.should_keep_running()
        return False

    def is_valid(self, handle: ObservedWatch) -> bool:
        if self._closed:
            return False
        if self._watches.get(Path(handle.path)) is not handle:
            return False
        return self._emitter_alive(handle)

    def is_ready(self) -> bool:
        return super().is_ready() and self._observer.is_alive()

    def is_watching(self, path: Path) -> bool:
        return path in self._watches

    def close(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._watches.clear()

        self._observer.stop()
        if self._started:
            self._observer.join(timeout=timeout)
            if self._observer.is_alive():
                logger.warning(f"{type(self).__name__} did not stop within {timeout}s")
        logger.debug(f"{type(self).__name__} closed")
        self.notify_closed()

    def __len__(self) -> int:
        """Return the number of watched directories."""
        with self._lock:
            return len(self._watches)


class NativeDetector(WatchdogDetector):
    """Push-based detector using the platform's notification facility."""

    def _make_observer(self) -> BaseObserver:
        return Observer()


class PollingDetector(WatchdogDetector):
    """Detector that periodically diffs directory snapshots."""

    def __init__(
        self,
        config: Optional[WatcherConfig] = None,
        interval_ms: Optional[int] = None,
    ):
        """
        Initialize the polling detector.

        Args:
            config: Watcher configuration
            interval_ms: Polling interval (overrides config.poll_interval_ms)
        """
        config = config or WatcherConfig()
        self.interval_ms = interval_ms or config.poll_interval_ms or 1000
        if self.interval_ms <= 0:
            raise ValueError(f"interval_ms must be > 0: {self.interval_ms}")
        super().__init__(config)

    def _make_observer(self) -> BaseObserver:
        return PollingObserver(timeout=self.interval_ms / 1000.0)

    @property
    def is_polling(self) -> bool:
        return True
