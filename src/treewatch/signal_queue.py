"""FIFO queue of watch keys with pending events."""

import threading
import time
from collections import deque
from typing import Deque, Optional

from .exceptions import QueueClosedError
from .watch_key import WatchKey


class SignalQueue:
    """
    Thread-safe FIFO of signalled watch keys.

    Features:
    - Blocking take, non-blocking poll and timed poll
    - A key is held at most once at any time
    - Closing wakes up every blocked consumer
    """

    def __init__(self):
        """Initialize an empty, open queue."""
        self._keys: Deque[WatchKey] = deque()
        self._members = set()
        self._cond = threading.Condition(threading.Lock())
        self._closed = False

    def put(self, key: WatchKey) -> bool:
        """
        Add a key to the tail of the queue.

        Args:
            key: Key to enqueue

        Returns:
            True if the key was added, False if it was already queued

        Raises:
            QueueClosedError: If the queue is closed
        """
        with self._cond:
            if self._closed:
                raise QueueClosedError("Signal queue is closed")
            if id(key) in self._members:
                return False
            self._keys.append(key)
            self._members.add(id(key))
            self._cond.notify()
            return True

    def take(self) -> WatchKey:
        """
        Remove and return the head key, blocking until one is available.

        Raises:
            QueueClosedError: If the queue is closed before a key arrives
        """
        key = self.poll(timeout=None, block=True)
        assert key is not None
        return key

    def poll(self, timeout: Optional[float] = 0, block: bool = True) -> Optional[WatchKey]:
        """
        Remove and return the head key.

        Args:
            timeout: Seconds to wait for a key; 0 returns immediately,
                None waits until a key arrives or the queue is closed
            block: If False, never wait regardless of timeout

        Returns:
            The head key, or None if none arrived in time

        Raises:
            QueueClosedError: If the queue is closed
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while True:
                if self._closed:
                    raise QueueClosedError("Signal queue is closed")
                if self._keys:
                    key = self._keys.popleft()
                    self._members.discard(id(key))
                    return key
                if not block:
                    return None
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def remove(self, key: WatchKey) -> bool:
        """
        Remove a key wherever it is in the queue.

        Returns:
            True if the key was queued
        """
        with self._cond:
            if id(key) not in self._members:
                return False
            self._members.discard(id(key))
            self._keys.remove(key)
            return True

    def clear(self) -> int:
        """
        Remove all keys.

        Returns:
            Number of keys removed
        """
        with self._cond:
            count = len(self._keys)
            self._keys.clear()
            self._members.clear()
            return count

    def close(self) -> None:
        """Close the queue and wake up all waiting consumers."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._keys.clear()
            self._members.clear()
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def __contains__(self, key: WatchKey) -> bool:
        with self._cond:
            return id(key) in self._members

    def __len__(self) -> int:
        with self._cond:
            return len(self._keys)
