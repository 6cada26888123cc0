"""Tests for watch keys and the signal queue."""

import pytest
import threading
import time

from src.treewatch.exceptions import QueueClosedError
from src.treewatch.models import ChangeEvent, EventKind, KeyState
from src.treewatch.signal_queue import SignalQueue
from src.treewatch.watch_key import WatchKey


def make_key(path, canceller=None):
    return WatchKey(path, ("handle", path), canceller=canceller)


class TestWatchKey:
    """Tests for WatchKey class."""

    def test_new_key_is_ready(self, root):
        key = make_key(root)

        assert key.path == root
        assert key.state == KeyState.READY
        assert key.watch_children_recursively is False
        assert key.is_valid() is True

    def test_poll_events_drains_buffer(self, root):
        key = make_key(root)
        key.append(ChangeEvent(root / "a", EventKind.CREATE))
        key.append(ChangeEvent(root / "a", EventKind.MODIFY))

        events = key.poll_events()

        assert [e.kind for e in events] == [EventKind.CREATE, EventKind.MODIFY]
        assert key.has_pending() is False
        assert key.poll_events() == []

    def test_snapshot_not_affected_by_later_appends(self, root):
        key = make_key(root)
        key.append(ChangeEvent(root / "a", EventKind.CREATE))
        events = key.poll_events()
        key.append(ChangeEvent(root / "b", EventKind.CREATE))

        assert len(events) == 1
        assert key.pending_count() == 1

    def test_invalid_when_directory_removed(self, root):
        key = make_key(root)
        root.rmdir()
        assert key.is_valid() is False

    def test_invalid_when_detector_drops_handle(self, root):
        live = {("handle", root)}
        key = WatchKey(root, ("handle", root), validator=lambda handle: handle in live)

        assert key.is_valid() is True
        live.clear()
        assert key.is_valid() is False

    def test_cancel_calls_canceller_once(self, root):
        cancelled = []
        key = make_key(root, canceller=cancelled.append)
        key.append(ChangeEvent(root / "a", EventKind.CREATE))

        key.cancel()
        key.cancel()

        assert cancelled == [("handle", root)]
        assert key.cancelled is True
        assert key.state == KeyState.INVALID
        assert key.has_pending() is False
        assert key.is_valid() is False


class TestSignalQueue:
    """Tests for SignalQueue class."""

    def test_fifo_order(self, tmp_path):
        queue = SignalQueue()
        keys = [make_key(tmp_path / str(i)) for i in range(3)]
        for key in keys:
            queue.put(key)

        assert [queue.poll() for _ in range(3)] == keys
        assert queue.poll() is None

    def test_key_held_at_most_once(self, tmp_path):
        queue = SignalQueue()
        key = make_key(tmp_path)

        assert queue.put(key) is True
        assert queue.put(key) is False
        assert len(queue) == 1
        assert key in queue

    def test_key_can_be_requeued_after_take(self, tmp_path):
        queue = SignalQueue()
        key = make_key(tmp_path)
        queue.put(key)
        assert queue.take() is key

        assert queue.put(key) is True

    def test_poll_timeout_returns_none(self):
        queue = SignalQueue()
        start = time.monotonic()

        assert queue.poll(timeout=0.1) is None
        assert time.monotonic() - start >= 0.09

    def test_non_blocking_poll(self):
        assert SignalQueue().poll(timeout=10, block=False) is None

    def test_take_blocks_until_put(self, tmp_path):
        queue = SignalQueue()
        key = make_key(tmp_path)
        result = []

        consumer = threading.Thread(target=lambda: result.append(queue.take()))
        consumer.start()
        time.sleep(0.05)
        queue.put(key)
        consumer.join(timeout=2)

        assert result == [key]

    def test_close_wakes_blocked_take(self):
        queue = SignalQueue()
        errors = []

        def consume():
            try:
                queue.take()
            except QueueClosedError as e:
                errors.append(e)

        consumer = threading.Thread(target=consume)
        consumer.start()
        time.sleep(0.05)
        queue.close()
        consumer.join(timeout=2)

        assert not consumer.is_alive()
        assert len(errors) == 1

    def test_closed_queue_rejects_operations(self, tmp_path):
        queue = SignalQueue()
        queue.put(make_key(tmp_path))
        queue.close()

        assert queue.closed is True
        assert len(queue) == 0
        with pytest.raises(QueueClosedError):
            queue.put(make_key(tmp_path))
        with pytest.raises(QueueClosedError):
            queue.poll()

    def test_remove_and_clear(self, tmp_path):
        queue = SignalQueue()
        a = make_key(tmp_path / "a")
        b = make_key(tmp_path / "b")
        queue.put(a)
        queue.put(b)

        assert queue.remove(a) is True
        assert queue.remove(a) is False
        assert queue.clear() == 1
        assert len(queue) == 0
