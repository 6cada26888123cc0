"""
Treewatch Package

Watches directory trees for create, delete and modify activity and
delivers the changes through a pull-based, per-directory event queue.

Features:
- Native (push) and polling (directory diff) detectors
- Recursive and ancestor registration of directory trees
- Dynamic registration of new subdirectories under recursive watches
- One deduplicated signal per directory until its events are dispatched
- Listener and iterable stream sinks
"""

from .models import (
    EventKind,
    KeyState,
    ChangeEvent,
    PathWatchEvent,
)

from .config import WatcherConfig

from .exceptions import (
    WatcherError,
    WatcherStateError,
    WatcherNotRunningError,
    WatcherAlreadyRunningError,
    DetectorNotCreatedError,
    RegistrationError,
    DetectorError,
    DetectorClosedError,
    QueueError,
    QueueClosedError,
)

from .watch_key import WatchKey
from .registry import Registry
from .signal_queue import SignalQueue
from .detector import Detector, NativeDetector, PollingDetector, FSEventHandler
from .service import WatchService
from .tree import RegistrationTree
from .sinks import (
    EventSink,
    CallbackSink,
    PathWatcherListener,
    ListenerSink,
    EventStream,
)
from .dispatcher import Dispatcher, DispatchState
from .watcher import FileSystemWatcher


__all__ = [
    # Models
    "EventKind",
    "KeyState",
    "ChangeEvent",
    "PathWatchEvent",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "WatcherStateError",
    "WatcherNotRunningError",
    "WatcherAlreadyRunningError",
    "DetectorNotCreatedError",
    "RegistrationError",
    "DetectorError",
    "DetectorClosedError",
    "QueueError",
    "QueueClosedError",
    # Components
    "WatchKey",
    "Registry",
    "SignalQueue",
    "Detector",
    "NativeDetector",
    "PollingDetector",
    "FSEventHandler",
    "WatchService",
    "RegistrationTree",
    "EventSink",
    "CallbackSink",
    "PathWatcherListener",
    "ListenerSink",
    "EventStream",
    "Dispatcher",
    "DispatchState",
    # Main entry point
    "FileSystemWatcher",
]

__version__ = "0.1.0"
