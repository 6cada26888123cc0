"""Tests for registry module."""

import threading

from src.treewatch.registry import Registry
from src.treewatch.watch_key import WatchKey


def make_key(path):
    return WatchKey(path, ("handle", path))


class TestRegistry:
    """Tests for Registry class."""

    def test_create_empty_registry(self):
        registry = Registry()
        assert len(registry) == 0
        assert registry.paths() == frozenset()

    def test_add_and_get(self, tmp_path):
        registry = Registry()
        key = make_key(tmp_path)
        registry.add(key)

        assert registry.get(tmp_path) is key
        assert tmp_path in registry
        assert registry.paths() == frozenset({tmp_path})

    def test_get_unknown_returns_none(self, tmp_path):
        assert Registry().get(tmp_path) is None

    def test_remove_requires_same_key(self, tmp_path):
        registry = Registry()
        old = make_key(tmp_path)
        new = make_key(tmp_path)
        registry.add(old)
        registry.add(new)

        assert registry.remove(old) is False
        assert registry.get(tmp_path) is new
        assert registry.remove(new) is True
        assert len(registry) == 0

    def test_candidates_own_key_then_parent(self, tmp_path):
        registry = Registry()
        child = tmp_path / "child"
        parent_key = make_key(tmp_path)
        child_key = make_key(child)
        registry.add(parent_key)
        registry.add(child_key)

        assert registry.candidates(child) == [child_key, parent_key]
        assert registry.candidates(child / "file.txt") == [child_key]
        assert registry.candidates(tmp_path / "other.txt") == [parent_key]

    def test_candidates_for_unwatched_path(self, tmp_path):
        registry = Registry()
        registry.add(make_key(tmp_path / "a"))

        assert registry.candidates(tmp_path / "b" / "c") == []

    def test_clear_returns_removed_keys(self, tmp_path):
        registry = Registry()
        keys = [make_key(tmp_path / str(i)) for i in range(3)]
        for key in keys:
            registry.add(key)

        assert registry.clear() == keys
        assert len(registry) == 0

    def test_concurrent_adds(self, tmp_path):
        registry = Registry()

        def add_many(prefix):
            for i in range(100):
                registry.add(make_key(tmp_path / f"{prefix}-{i}"))

        threads = [threading.Thread(target=add_many, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 400
