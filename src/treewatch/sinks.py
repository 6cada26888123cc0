"""Event sinks fed by the dispatch loop."""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .models import EventKind, PathWatchEvent

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Receiver of dispatched events. Called synchronously on the dispatch thread."""

    @abstractmethod
    def on_event(self, event: PathWatchEvent) -> None:
        """Handle one dispatched event."""
        pass

    def on_path_watched(self, path: Path) -> None:
        """Called when a new directory has been registered."""
        pass

    def on_close(self) -> None:
        """Called once when the dispatch loop exits."""
        pass


class CallbackSink(EventSink):
    """Sink that forwards every event to a plain function."""

    def __init__(self, callback: Callable[[PathWatchEvent], None]):
        self.callback = callback

    def on_event(self, event: PathWatchEvent) -> None:
        self.callback(event)


class PathWatcherListener:
    """
    Listener interface for path watcher notifications.

    All callbacks default to no-ops; override the ones you need.
    """

    def new_path_watched(self, path: Path) -> None:
        """Fired when a new path is added to the list of watched paths."""
        pass

    def path_changed(self, path: Path, context: Optional[Path], overflow: bool) -> None:
        """
        Any change in the path. Always fired before created, deleted or
        modified.

        Args:
            path: The watched path under which the change happened
            context: The created, deleted or modified path, or None if
                overflow is set
            overflow: True if events may have been lost or discarded
        """
        pass

    def directory_created(self, path: Path, created: Path) -> None:
        """Fired when a directory or its content has been created."""
        pass

    def directory_deleted(self, path: Path, deleted: Path) -> None:
        """Fired when a directory or its content has been deleted."""
        pass

    def directory_modified(self, path: Path, modified: Path) -> None:
        """Fired when a directory or its content has been modified."""
        pass


class ListenerSink(EventSink):
    """Fans events out to an ordered list of listeners."""

    def __init__(self):
        self._listeners: List[PathWatcherListener] = []
        self._lock = threading.Lock()

    def add(self, listener: PathWatcherListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: PathWatcherListener) -> bool:
        with self._lock:
            try:
                self._listeners.remove(listener)
                return True
            except ValueError:
                return False

    def _snapshot(self) -> List[PathWatcherListener]:
        with self._lock:
            return list(self._listeners)

    def on_event(self, event: PathWatchEvent) -> None:
        listeners = self._snapshot()

        for listener in listeners:
            listener.path_changed(event.registered_path, event.path, event.overflow)

        if event.overflow:
            return

        if event.kind == EventKind.CREATE:
            for listener in listeners:
                listener.directory_created(event.registered_path, event.path)
        elif event.kind == EventKind.DELETE:
            for listener in listeners:
                listener.directory_deleted(event.registered_path, event.path)
        elif event.kind == EventKind.MODIFY:
            for listener in listeners:
                listener.directory_modified(event.registered_path, event.path)

    def on_path_watched(self, path: Path) -> None:
        for listener in self._snapshot():
            listener.new_path_watched(path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


_END = object()


class EventStream(EventSink):
    """
    Iterable stream of dispatched events.

    Events are buffered without bound; iteration blocks until the next
    event arrives and ends when the watcher stops or the stream is closed.
    """

    def __init__(self, on_unsubscribe: Optional[Callable[["EventStream"], None]] = None):
        self._queue: "queue.Queue" = queue.Queue()
        self._on_unsubscribe = on_unsubscribe
        self._completed = False

    def on_event(self, event: PathWatchEvent) -> None:
        if not self._completed:
            self._queue.put(event)

    def on_close(self) -> None:
        self._complete()

    def _complete(self) -> None:
        if self._completed:
            return
        self._completed = True
        self._queue.put(_END)

    def close(self) -> None:
        """Unsubscribe from the watcher and end iteration."""
        if self._on_unsubscribe is not None:
            self._on_unsubscribe(self)
            self._on_unsubscribe = None
        self._complete()

    @property
    def completed(self) -> bool:
        return self._completed

    def get(self, timeout: Optional[float] = None) -> Optional[PathWatchEvent]:
        """
        Get the next event.

        Args:
            timeout: Seconds to wait; None waits until an event arrives

        Returns:
            The next event, or None on timeout or once the stream has ended
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _END:
            # Keep the end marker for other consumers.
            self._queue.put(_END)
            return None
        return item

    def __iter__(self) -> Iterator[PathWatchEvent]:
        while True:
            item = self._queue.get()
            if item is _END:
                self._queue.put(_END)
                return
            yield item

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
