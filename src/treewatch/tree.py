"""Recursive and ancestor registration of directory trees."""

import logging
import os
from pathlib import Path
from typing import Callable, List, Optional

from .config import WatcherConfig
from .exceptions import WatcherError
from .service import WatchService
from .watch_key import WatchKey

logger = logging.getLogger(__name__)


class RegistrationTree:
    """
    Registers directories, whole subtrees and ancestor chains.

    Used for the initial setup by the caller and by the dispatch loop when a
    new directory appears under a recursively watched one. Walks are best
    effort: a directory that cannot be registered is logged and skipped.
    """

    def __init__(
        self,
        service: WatchService,
        config: Optional[WatcherConfig] = None,
        on_registered: Optional[Callable[[Path], None]] = None,
    ):
        """
        Initialize the tree manager.

        Args:
            service: Service owning the registry
            config: Watcher configuration
            on_registered: Called with the path of every newly registered
                directory
        """
        self.service = service
        self.config = config or WatcherConfig()
        self.on_registered = on_registered

    @staticmethod
    def normalize(path) -> Path:
        """Return the absolute, normalized form of a path."""
        return Path(path).expanduser().resolve()

    def register_path(
        self,
        path,
        recursive_children: bool = False,
        all_parents: bool = False,
    ) -> bool:
        """
        Register a path for watching.

        If a path to anything other than a directory is given, its parent
        directory is registered instead because only directories can be
        watched. Ignored directories are skipped.

        Args:
            path: File or directory path
            recursive_children: Register every directory below the path too
            all_parents: Register every ancestor up to the filesystem root

        Returns:
            False if the path does not exist, True otherwise

        Raises:
            RegistrationError: If neither flag is set and the directory
                cannot be registered
        """
        path = self.normalize(path)

        if not path.exists():
            logger.debug(f"Not registering missing path: {path}")
            return False
        if not path.is_dir():
            # Regular files, fifos, sockets and devices live in their parent.
            path = path.parent

        if not recursive_children and not all_parents:
            if self.config.should_ignore(path):
                logger.debug(f"Not registering ignored path: {path}")
            else:
                self.register(path, False)
            return True

        if recursive_children:
            self.register_children(path)
        if all_parents:
            self.register_parents(path, include_self=not recursive_children)
        return True

    def register(self, path: Path, recursive: bool = False) -> WatchKey:
        """
        Register a single directory.

        Registering an already registered directory refreshes its recursive
        flag and returns the existing key.

        Raises:
            RegistrationError: If the detector cannot watch the directory
        """
        path = self.normalize(path)
        previous = self.service.get_key(path)
        key = self.service.register(path, recursive)
        if key is not previous and self.on_registered is not None:
            self.on_registered(path)
        return key

    def register_children(self, path: Path) -> List[WatchKey]:
        """
        Register a directory and all directories below it, each recursive.

        Returns:
            Keys registered by this walk
        """
        path = self.normalize(path)
        keys = []

        def on_walk_error(error: OSError):
            logger.warning(f"Failed to list {error.filename} while registering children of {path}: {error}")

        for dirpath, dirnames, _ in os.walk(
            path, onerror=on_walk_error, followlinks=self.config.follow_symlinks
        ):
            directory = Path(dirpath)
            if self.config.should_ignore(directory):
                dirnames[:] = []
                continue
            try:
                keys.append(self.register(directory, True))
            except WatcherError as e:
                logger.warning(f"Failed to recursively register child path {directory}: {e}")

        return keys

    def register_parents(self, path: Path, include_self: bool = True) -> List[WatchKey]:
        """
        Register every ancestor of a directory, each non-recursive.

        Args:
            path: Directory to start from
            include_self: Register the directory itself as well

        Returns:
            Keys registered by this walk
        """
        current = self.normalize(path)
        keys = []
        if not include_self:
            if current.parent == current:
                return keys
            current = current.parent

        while True:
            try:
                keys.append(self.register(current, False))
            except WatcherError as e:
                logger.warning(f"Failed to register parent path {current}: {e}")
            parent = current.parent
            if parent == current:
                break
            current = parent

        return keys

    def clear_all(self) -> int:
        """
        Unregister every directory.

        Returns:
            Number of directories unregistered
        """
        return self.service.clear_all()
