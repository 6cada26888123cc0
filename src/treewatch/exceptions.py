"""Custom exceptions for the treewatch package."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class WatcherStateError(WatcherError):
    """Operation called in a lifecycle state that does not allow it."""
    pass


class WatcherNotRunningError(WatcherStateError):
    """Watcher is not running."""
    pass


class WatcherAlreadyRunningError(WatcherStateError):
    """Watcher is already running."""
    pass


class DetectorNotCreatedError(WatcherStateError):
    """No detector has been created for the watcher yet."""
    pass


class RegistrationError(WatcherError):
    """A directory could not be registered with the detector."""

    def __init__(self, path, message: str = ""):
        self.path = path
        super().__init__(message or f"Failed to register path {path}")


class DetectorError(WatcherError):
    """Error raised by a change detector."""
    pass


class DetectorClosedError(DetectorError):
    """Detector has been closed."""
    pass


class QueueError(WatcherError):
    """Error related to the signal queue."""
    pass


class QueueClosedError(QueueError):
    """Signal queue has been closed."""
    pass
