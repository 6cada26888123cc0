"""The single consumer loop that delivers signalled events to sinks."""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import WatcherConfig
from .exceptions import QueueClosedError
from .models import ChangeEvent, EventKind, PathWatchEvent
from .service import WatchService
from .sinks import EventSink
from .tree import RegistrationTree
from .watch_key import WatchKey

logger = logging.getLogger(__name__)


class DispatchState(Enum):
    """Lifecycle states of the dispatch loop."""
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Dispatcher:
    """
    Drains signalled keys and forwards their events to sinks.

    For every key taken from the signal queue the loop:
    1. drains the key's buffer,
    2. delivers each event, in arrival order, to every sink,
    3. registers directories created under a recursive key,
    4. resets the key.

    A drained batch is always delivered completely before the stop flag is
    checked again.
    """

    def __init__(
        self,
        service: WatchService,
        tree: RegistrationTree,
        sinks: Callable[[], Sequence[EventSink]],
        config: Optional[WatcherConfig] = None,
        on_stopped: Optional[Callable[["Dispatcher"], None]] = None,
    ):
        """
        Initialize the dispatcher in the RUNNING state.

        Args:
            service: Service providing signalled keys
            tree: Tree manager used for dynamic extension
            sinks: Returns the current sinks in delivery order
            config: Watcher configuration
            on_stopped: Called with the dispatcher after the loop has exited
        """
        self.service = service
        self.tree = tree
        self.config = config or WatcherConfig()
        self._sinks = sinks
        self._on_stopped = on_stopped
        self._state = DispatchState.RUNNING
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self.events_dispatched = 0

    @property
    def state(self) -> DispatchState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == DispatchState.RUNNING

    def stop(self) -> None:
        """Ask the loop to exit after the batch in progress."""
        with self._lock:
            if self._state == DispatchState.RUNNING:
                self._state = DispatchState.STOPPING

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the loop has exited.

        Returns:
            True if the loop is stopped
        """
        return self._stopped.wait(timeout)

    def run(self) -> None:
        """Run the loop until stopped or until the signal queue is closed."""
        wait = self.config.dispatch_poll_interval_ms / 1000.0
        logger.info("Dispatch loop started")

        try:
            while self.is_running:
                try:
                    key = self.service.poll(timeout=wait)
                except QueueClosedError:
                    logger.debug("Signal queue closed, leaving dispatch loop")
                    break

                if key is None:
                    if not self.service.detector.is_ready():
                        logger.warning("Detector is no longer running, leaving dispatch loop")
                        break
                    continue

                self.process_key(key)
        finally:
            self._shutdown()

    def process_key(self, key: WatchKey) -> bool:
        """
        Deliver the pending events of one key and reset it.

        Args:
            key: A key taken from the signal queue

        Returns:
            True if the key is still valid after the reset
        """
        events = key.poll_events()
        new_directories: List[Path] = []

        for change in events:
            self.deliver(PathWatchEvent.from_change(key.path, change))
            if self._extends_tree(key, change):
                new_directories.append(change.path)

        if new_directories:
            self.extend(new_directories)

        return self.service.reset_key(key)

    def deliver(self, event: PathWatchEvent) -> None:
        """Hand an event to every sink, in registration order."""
        if event.overflow:
            logger.warning(f"Events may have been lost for {event.registered_path}")
        else:
            logger.debug(f"{event.kind.value}: {event.path} (watched {event.registered_path})")

        for sink in self._sinks():
            try:
                sink.on_event(event)
            except Exception:
                logger.exception(f"Sink {sink!r} failed handling {event.kind.value} for {event.path}")

        self.events_dispatched += 1

    def _extends_tree(self, key: WatchKey, change: ChangeEvent) -> bool:
        if change.kind != EventKind.CREATE or not key.watch_children_recursively:
            return False
        path = change.path
        if path is None or path == key.path:
            return False
        if path.is_symlink() and not self.config.follow_symlinks:
            return False
        return path.is_dir()

    def extend(self, directories: List[Path]) -> None:
        """
        Register new directories and their subtrees, shallowest first.

        Directories already registered (for example by the walk of a
        shallower directory in the same batch) are skipped unless their
        registration is no longer valid, as for a directory deleted and
        recreated under the same path.
        """
        for directory in sorted(set(directories), key=lambda p: (len(p.parts), str(p))):
            key = self.service.get_key(directory)
            if key is not None and key.is_valid():
                continue
            logger.debug(f"Extending watch to new directory {directory}")
            self.tree.register_children(directory)

    def _shutdown(self) -> None:
        try:
            if self.config.clear_on_exit:
                self.service.clear_all()
            for sink in self._sinks():
                try:
                    sink.on_close()
                except Exception:
                    logger.exception(f"Sink {sink!r} failed to close")
        finally:
            with self._lock:
                self._state = DispatchState.STOPPED
            self._stopped.set()
            logger.info("Dispatch loop stopped")
            if self._on_stopped is not None:
                self._on_stopped(self)
