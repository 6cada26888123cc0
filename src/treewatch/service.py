"""Correlation of raw change notifications with registered watch keys."""

import logging
from pathlib import Path
from typing import FrozenSet, List, Optional

from .detector import Detector
from .exceptions import RegistrationError
from .models import ChangeEvent, EventKind, KeyState
from .registry import Registry
from .signal_queue import SignalQueue
from .watch_key import WatchKey

logger = logging.getLogger(__name__)


class WatchService:
    """
    Owns the registry and the signal queue of one watcher.

    Raw events from the detector are appended to the buffer of every
    matching key, and a key with pending events is put on the signal queue
    exactly once until the dispatch loop resets it.

    The registry lock guards registry contents, key states and queue
    membership. Detector calls are made outside of it because detectors
    deliver events from their own threads while holding their own locks.
    """

    def __init__(self, detector: Detector):
        """
        Initialize the service and bind it to a detector.

        Args:
            detector: Source of raw change notifications
        """
        self.detector = detector
        self._registry = Registry()
        self._queue = SignalQueue()
        detector.bind(self)

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def queue(self) -> SignalQueue:
        return self._queue

    def register(self, path: Path, recursive: bool = False) -> WatchKey:
        """
        Register a directory, or refresh an existing registration.

        Args:
            path: Absolute directory path
            recursive: Whether new child directories are registered
                automatically

        Returns:
            The key for the directory

        Raises:
            RegistrationError: If the detector cannot watch the directory
        """
        with self._registry.lock:
            key = self._registry.get(path)
            if key is not None:
                if key.is_valid():
                    key.watch_children_recursively = recursive
                    return key
                # The detector lost the registration, e.g. because the
                # directory was deleted and recreated.
                self._registry.remove(key)
                self._queue.remove(key)
                key.state = KeyState.INVALID
                stale = key
            else:
                stale = None

        if stale is not None:
            logger.debug(f"Replacing stale registration for {path}")
            stale.cancel()

        try:
            handle = self.detector.register_directory(path)
        except OSError as e:
            raise RegistrationError(path, f"Failed to register path {path}: {e}") from e

        key = WatchKey(
            path,
            handle,
            recursive,
            canceller=self.detector.cancel,
            validator=self.detector.is_valid,
        )

        with self._registry.lock:
            existing = self._registry.get(path)
            if existing is None:
                self._registry.add(key)
                logger.debug(f"Registered {path} (recursive={recursive})")
                return key
            existing.watch_children_recursively = recursive

        # Lost a registration race; the detector may hand out the same
        # handle twice for one directory.
        if handle is not existing.handle:
            self.detector.cancel(handle)
        return existing

    def on_raw_event(self, path: Path, kind: EventKind, count: int = 1) -> int:
        """
        Correlate a raw change notification with the registered keys.

        Args:
            path: Absolute path of the changed entry
            kind: Kind of change
            count: Number of coalesced notifications

        Returns:
            Number of keys the event was delivered to
        """
        if kind == EventKind.OVERFLOW:
            return self.on_overflow(None)

        event = ChangeEvent(path, kind, count)

        with self._registry.lock:
            keys = self._registry.candidates(path)
            for key in keys:
                self._signal(key, event)

        if not keys:
            logger.debug(f"Dropping {kind.value} event for unwatched path {path}")
        return len(keys)

    def on_overflow(self, directory: Optional[Path] = None) -> int:
        """
        Record that events may have been lost.

        Args:
            directory: The affected directory, or None for every key

        Returns:
            Number of keys the overflow was delivered to
        """
        event = ChangeEvent(None, EventKind.OVERFLOW)

        with self._registry.lock:
            if directory is None:
                keys = self._registry.keys()
            else:
                key = self._registry.get(directory)
                keys = [key] if key is not None else []
            for key in keys:
                self._signal(key, event)

        logger.warning(f"Overflow reported for {directory or 'all watched directories'}")
        return len(keys)

    def _signal(self, key: WatchKey, event: ChangeEvent) -> None:
        """Append an event and enqueue the key if it is idle. Caller holds the lock."""
        if key.state == KeyState.INVALID:
            return
        key.append(event)
        if key.state == KeyState.READY:
            key.state = KeyState.SIGNALLED
            if not self._queue.closed:
                self._queue.put(key)

    def take(self) -> WatchKey:
        """Block until a key is signalled. Raises QueueClosedError once closed."""
        return self._queue.take()

    def poll(self, timeout: Optional[float] = 0) -> Optional[WatchKey]:
        """
        Get the next signalled key.

        Args:
            timeout: Seconds to wait; 0 returns immediately, None blocks

        Returns:
            The key, or None if none was signalled in time
        """
        return self._queue.poll(timeout=timeout)

    def reset_key(self, key: WatchKey) -> bool:
        """
        Return a dispatched key to the idle state.

        A key that collected events while it was being dispatched goes
        straight back onto the queue. A key whose directory is gone becomes
        INVALID and is removed.

        Args:
            key: Key that was taken from the queue

        Returns:
            True if the key is still valid
        """
        with self._registry.lock:
            if key.state == KeyState.INVALID:
                return False
            if self._registry.get(key.path) is not key:
                key.state = KeyState.INVALID
                return False

            valid = key.is_valid()
            if valid:
                if key.has_pending() and not self._queue.closed:
                    key.state = KeyState.SIGNALLED
                    self._queue.put(key)
                else:
                    key.state = KeyState.READY
                return True

            self._registry.remove(key)
            self._queue.remove(key)
            key.state = KeyState.INVALID

        logger.info(f"Watched directory no longer valid, removing: {key.path}")
        key.cancel()
        return False

    def cancel(self, key: WatchKey) -> None:
        """Unregister a single key."""
        with self._registry.lock:
            self._registry.remove(key)
            self._queue.remove(key)
            key.state = KeyState.INVALID
        key.cancel()

    def clear_all(self) -> int:
        """
        Cancel every key and empty the registry.

        Returns:
            Number of keys removed
        """
        with self._registry.lock:
            keys = self._registry.clear()
            self._queue.clear()
            for key in keys:
                key.state = KeyState.INVALID

        for key in keys:
            key.cancel()
        if keys:
            logger.debug(f"Cleared {len(keys)} registered path(s)")
        return len(keys)

    def get_key(self, path: Path) -> Optional[WatchKey]:
        return self._registry.get(path)

    def keys(self) -> List[WatchKey]:
        return self._registry.keys()

    def watched_paths(self) -> FrozenSet[Path]:
        return self._registry.paths()

    def on_detector_closed(self) -> None:
        """Close the service once its detector has shut down."""
        if not self.closed:
            logger.info("Detector closed, closing watch service")
        self.close()

    def close(self) -> None:
        """Close the signal queue, waking up the dispatch loop."""
        # Producers check the queue under the same lock before putting.
        with self._registry.lock:
            self._queue.close()

    @property
    def closed(self) -> bool:
        return self._queue.closed
