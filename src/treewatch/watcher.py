"""File system watcher lifecycle: detector, registrations and dispatch thread."""

import dataclasses
import logging
import threading
from pathlib import Path
from typing import Callable, FrozenSet, List, Optional

from .config import WatcherConfig
from .detector import Detector, NativeDetector, PollingDetector
from .dispatcher import Dispatcher
from .exceptions import (
    DetectorNotCreatedError,
    WatcherAlreadyRunningError,
    WatcherNotRunningError,
)
from .service import WatchService
from .sinks import CallbackSink, EventSink, EventStream, ListenerSink, PathWatcherListener
from .tree import RegistrationTree
from .watch_key import WatchKey

logger = logging.getLogger(__name__)

ThreadFactory = Callable[[Callable[[], None]], threading.Thread]


class FileSystemWatcher:
    """
    Main entry point for watching directory trees.

    Typical use::

        watcher = FileSystemWatcher()
        watcher.create()
        watcher.add_listener(MyListener())
        watcher.register_path(root, recursive_children=True)
        watcher.start()
        ...
        watcher.stop(timeout=5)

    create() builds and starts the detector; registrations are accepted from
    then on and buffer their events until start() launches the dispatch
    thread. stop() closes the detector, so a new create() is required before
    the watcher can be started again.
    """

    def __init__(
        self,
        config: Optional[WatcherConfig] = None,
        poll_interval_ms: Optional[int] = None,
        thread_factory: Optional[ThreadFactory] = None,
    ):
        """
        Initialize the watcher.

        Args:
            config: Watcher configuration
            poll_interval_ms: Use the polling detector with this interval
                (overrides config.poll_interval_ms)
            thread_factory: Builds the dispatch thread from its target
        """
        config = config or WatcherConfig()
        if poll_interval_ms is not None:
            config = dataclasses.replace(config, poll_interval_ms=poll_interval_ms)
        self.config = config
        self.thread_factory = thread_factory

        self._detector: Optional[Detector] = None
        self._service: Optional[WatchService] = None
        self._tree: Optional[RegistrationTree] = None
        self._dispatcher: Optional[Dispatcher] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._lock = threading.Lock()

        self._listeners = ListenerSink()
        self._sinks: List[EventSink] = [self._listeners]
        self._sinks_lock = threading.Lock()

    def create(self, detector: Optional[Detector] = None) -> Detector:
        """
        Create and start the change detector.

        Any previously created detector is closed together with its
        registrations.

        Args:
            detector: Detector to use; by default a PollingDetector when a
                polling interval is configured, a NativeDetector otherwise

        Returns:
            The started detector

        Raises:
            WatcherAlreadyRunningError: If the watcher is running
            DetectorError: If the detector fails to start
        """
        with self._lock:
            if self._running:
                raise WatcherAlreadyRunningError("Watcher is already running")
            previous = self._detector

            if detector is None:
                if self.config.use_polling:
                    detector = PollingDetector(self.config)
                else:
                    detector = NativeDetector(self.config)

            service = WatchService(detector)
            tree = RegistrationTree(service, self.config, on_registered=self._fire_path_watched)

        if previous is not None:
            previous.close()

        try:
            detector.start()
        except Exception:
            detector.close()
            raise

        with self._lock:
            self._detector = detector
            self._service = service
            self._tree = tree

        logger.info(f"Created {type(detector).__name__}")
        return detector

    def _require_tree(self) -> RegistrationTree:
        tree = self._tree
        if tree is None:
            raise DetectorNotCreatedError("No detector created yet")
        return tree

    def _require_service(self) -> WatchService:
        service = self._service
        if service is None:
            raise DetectorNotCreatedError("No detector created yet")
        return service

    def register_path(
        self,
        path,
        recursive_children: bool = False,
        all_parents: bool = False,
    ) -> bool:
        """
        Add a path to the watched paths.

        If a path to a file is given, its parent directory is registered
        instead because only directories can be watched.

        Args:
            path: File or directory path
            recursive_children: Register all child directories too
            all_parents: Register all parent directories too

        Returns:
            False if the path does not exist

        Raises:
            DetectorNotCreatedError: If create() has not been called
            RegistrationError: If a single directory cannot be registered
        """
        return self._require_tree().register_path(path, recursive_children, all_parents)

    def register(self, path, recursive: bool = False) -> WatchKey:
        """
        Register exactly one directory.

        Raises:
            DetectorNotCreatedError: If create() has not been called
            RegistrationError: If the directory cannot be registered
        """
        return self._require_tree().register(path, recursive)

    def clear_all_registered_paths(self) -> int:
        """Unregister every watched directory."""
        return self._require_tree().clear_all()

    def watched_paths(self) -> FrozenSet[Path]:
        """Get the currently watched directories."""
        return self._require_service().watched_paths()

    def get_key(self, path) -> Optional[WatchKey]:
        """Get the key of a watched directory, or None."""
        return self._require_service().get_key(RegistrationTree.normalize(path))

    @property
    def detector(self) -> Optional[Detector]:
        return self._detector

    @property
    def is_polling(self) -> bool:
        if self._detector is None:
            raise DetectorNotCreatedError("No detector created yet")
        return self._detector.is_polling

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    def start(self) -> None:
        """
        Start the dispatch thread.

        Raises:
            DetectorNotCreatedError: If create() has not been called
            WatcherAlreadyRunningError: If already running
        """
        with self._lock:
            if self._service is None or self._tree is None:
                raise DetectorNotCreatedError("No detector created yet")
            if self._running:
                raise WatcherAlreadyRunningError("Watcher is already running")

            dispatcher = Dispatcher(
                self._service,
                self._tree,
                self.sinks,
                self.config,
                on_stopped=self._on_dispatch_stopped,
            )
            if self.thread_factory is not None:
                thread = self.thread_factory(dispatcher.run)
            else:
                thread = threading.Thread(
                    target=dispatcher.run, name=self.config.thread_name, daemon=True
                )

            self._dispatcher = dispatcher
            self._thread = thread
            self._running = True

        thread.start()
        logger.info(f"Watcher started with {len(dispatcher.service.registry)} watched path(s)")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the watcher.

        Closes the detector, wakes up and stops the dispatch loop, and waits
        for the dispatch thread.

        Args:
            timeout: Seconds to wait for the dispatch thread; None waits
                until it exits, a negative value does not wait

        Returns:
            True if the dispatch thread has exited

        Raises:
            WatcherNotRunningError: If the watcher is not running
        """
        with self._lock:
            if not self._running:
                raise WatcherNotRunningError("Watcher is not running")
            self._running = False

            detector = self._detector
            service = self._service
            dispatcher = self._dispatcher
            thread = self._thread
            self._detector = None
            self._service = None
            self._tree = None

        wait = None if timeout is None else max(timeout, 0)
        detector.close(timeout=wait)
        service.close()
        dispatcher.stop()

        if thread is threading.current_thread():
            # Called from a sink; the loop exits once the current batch is done.
            return False

        if timeout is None:
            thread.join()
        elif timeout >= 0:
            thread.join(timeout)

        stopped = not thread.is_alive()
        if stopped:
            logger.info("Watcher stopped")
        else:
            logger.warning("Dispatch thread still running after stop timeout")
        return stopped

    def _on_dispatch_stopped(self, dispatcher: Dispatcher) -> None:
        """Drop the running state when the loop exits without stop()."""
        with self._lock:
            if not self._running or self._dispatcher is not dispatcher:
                return
            self._running = False
            detector = self._detector
            self._detector = None
            self._service = None
            self._tree = None

        logger.warning("Dispatch loop exited on its own, watcher is no longer running")
        if detector is not None:
            detector.close(timeout=self.config.stop_timeout_s)

    def close(self) -> None:
        """Stop the watcher if it is running and release the detector."""
        if self._running:
            self.stop(timeout=self.config.stop_timeout_s)
            return

        with self._lock:
            detector = self._detector
            self._detector = None
            self._service = None
            self._tree = None
        if detector is not None:
            detector.close(timeout=self.config.stop_timeout_s)

    def sinks(self) -> List[EventSink]:
        """Get the current sinks in delivery order."""
        with self._sinks_lock:
            return list(self._sinks)

    def add_sink(self, sink: EventSink) -> EventSink:
        with self._sinks_lock:
            self._sinks.append(sink)
        return sink

    def remove_sink(self, sink: EventSink) -> bool:
        with self._sinks_lock:
            try:
                self._sinks.remove(sink)
                return True
            except ValueError:
                return False

    def add_callback(self, callback) -> EventSink:
        """Deliver every event to a plain function."""
        return self.add_sink(CallbackSink(callback))

    def add_listener(self, listener: PathWatcherListener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: PathWatcherListener) -> bool:
        return self._listeners.remove(listener)

    def stream(self) -> EventStream:
        """
        Subscribe to dispatched events as an iterable stream.

        The stream ends when the watcher stops or when it is closed.
        """
        stream = EventStream(on_unsubscribe=self.remove_sink)
        self.add_sink(stream)
        return stream

    def _fire_path_watched(self, path: Path) -> None:
        for sink in self.sinks():
            try:
                sink.on_path_watched(path)
            except Exception:
                logger.exception(f"Sink {sink!r} failed handling new watched path {path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
