"""Thread-safe mapping of watched directories to their watch keys."""

import threading
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from .watch_key import WatchKey


class Registry:
    """
    Thread-safe registry of watch keys by directory path.

    Provides methods to add/remove keys and to find the keys an arbitrary
    changed path must be reported to. The lock is reentrant and exposed so
    that the owning service can group registry and queue bookkeeping into
    one critical section.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._keys: Dict[Path, WatchKey] = {}
        self.lock = threading.RLock()

    def add(self, key: WatchKey) -> None:
        """
        Insert a fully initialized key.

        Args:
            key: The key to insert; replaces any key for the same path
        """
        with self.lock:
            self._keys[key.path] = key

    def get(self, path: Path) -> Optional[WatchKey]:
        """
        Get the key registered for a directory.

        Args:
            path: Absolute directory path

        Returns:
            The key, or None if the path is not registered
        """
        with self.lock:
            return self._keys.get(path)

    def remove(self, key: WatchKey) -> bool:
        """
        Remove a key.

        Args:
            key: Key to remove

        Returns:
            True if the key was registered, False otherwise
        """
        with self.lock:
            if self._keys.get(key.path) is key:
                del self._keys[key.path]
                return True
            return False

    def candidates(self, path: Path) -> List[WatchKey]:
        """
        Find the keys a change at the given path is reported to.

        A change is reported to the key registered at the path itself (the
        directory's own identity changed) and to the key registered at its
        parent (an entry inside the watched directory changed).

        Args:
            path: Absolute path of the changed entry

        Returns:
            Matching keys, the path's own key first
        """
        with self.lock:
            matches = []
            own = self._keys.get(path)
            if own is not None:
                matches.append(own)
            parent = path.parent
            if parent != path:
                parent_key = self._keys.get(parent)
                if parent_key is not None:
                    matches.append(parent_key)
            return matches

    def keys(self) -> List[WatchKey]:
        """
        Get a snapshot of all registered keys.

        Returns:
            List of keys in registration order
        """
        with self.lock:
            return list(self._keys.values())

    def paths(self) -> FrozenSet[Path]:
        """
        Get the current set of watched directories.

        Returns:
            Frozen set of directory paths
        """
        with self.lock:
            return frozenset(self._keys)

    def clear(self) -> List[WatchKey]:
        """
        Remove all keys.

        Returns:
            The keys that were removed
        """
        with self.lock:
            removed = list(self._keys.values())
            self._keys.clear()
            return removed

    def __len__(self) -> int:
        """Return the number of registered directories."""
        with self.lock:
            return len(self._keys)

    def __contains__(self, path: Path) -> bool:
        """Check if a directory is registered."""
        with self.lock:
            return path in self._keys
