"""Watch keys: one per registered directory."""

import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

from .models import ChangeEvent, KeyState


class WatchKey:
    """
    Handle representing one registered, watchable directory.

    The key owns a buffer of pending change events. Correlation appends to
    the buffer and dispatch drains it, both under the key's own lock. The
    state field is only changed by the owning WatchService while it holds
    the service lock.
    """

    def __init__(
        self,
        path: Path,
        handle: Any,
        watch_children_recursively: bool = False,
        canceller: Optional[Callable[[Any], None]] = None,
        validator: Optional[Callable[[Any], bool]] = None,
    ):
        """
        Initialize the key.

        Args:
            path: Absolute, normalized directory path
            handle: Opaque registration handle returned by the detector
            watch_children_recursively: Whether new child directories are
                registered automatically
            canceller: Callback that unregisters the handle from the detector
            validator: Callback telling whether the detector still watches
                through the handle
        """
        self._path = path
        self.handle = handle
        self.watch_children_recursively = watch_children_recursively
        self.state = KeyState.READY
        self._canceller = canceller
        self._validator = validator
        self._cancelled = False
        self._events: List[ChangeEvent] = []
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def append(self, event: ChangeEvent) -> None:
        """Append a change event to the pending buffer."""
        with self._lock:
            self._events.append(event)

    def poll_events(self) -> List[ChangeEvent]:
        """
        Drain the pending buffer.

        Returns a snapshot of the buffered events and clears the live
        buffer; events appended afterwards belong to the next signal cycle.
        """
        with self._lock:
            events = self._events
            self._events = []
            return events

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._events)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._events)

    def is_valid(self) -> bool:
        """
        Check whether the key can still receive events.

        Returns:
            False once cancelled or invalidated, when the directory is gone,
            or when the detector has dropped the registration
        """
        if self._cancelled or self.state == KeyState.INVALID:
            return False
        if self._validator is not None and not self._validator(self.handle):
            return False
        return self._path.is_dir()

    def cancel(self) -> None:
        """Unregister from the detector and drop pending events."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._events.clear()
        self.state = KeyState.INVALID
        if self._canceller is not None:
            self._canceller(self.handle)

    def __repr__(self) -> str:
        return (
            f"WatchKey(path={str(self._path)!r}, state={self.state.value}, "
            f"recursive={self.watch_children_recursively})"
        )
