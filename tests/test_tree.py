"""Tests for the registration tree manager."""

import logging
import os
import pytest
from pathlib import Path

from src.treewatch.config import WatcherConfig
from src.treewatch.exceptions import RegistrationError
from src.treewatch.service import WatchService
from src.treewatch.tree import RegistrationTree


@pytest.fixture
def nested(root):
    """root/a/b/c plus root/d, with a file in root/a."""
    (root / "a" / "b" / "c").mkdir(parents=True)
    (root / "d").mkdir()
    (root / "a" / "file.txt").write_text("content")
    return root


def flags(service):
    return {key.path: key.watch_children_recursively for key in service.keys()}


class TestRegisterPath:
    """Tests for RegistrationTree.register_path."""

    def test_register_single_directory(self, tree, service, nested):
        assert tree.register_path(nested) is True
        assert flags(service) == {nested: False}

    def test_register_file_registers_parent(self, tree, service, nested):
        assert tree.register_path(nested / "a" / "file.txt") is True
        assert flags(service) == {nested / "a": False}

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="fifos not supported")
    def test_register_fifo_registers_parent(self, tree, service, nested):
        fifo = nested / "a" / "pipe"
        os.mkfifo(fifo)

        assert tree.register_path(fifo) is True
        assert flags(service) == {nested / "a": False}

    def test_register_ignored_directory(self, make_detector, nested):
        config = WatcherConfig(ignore_patterns=["d"])
        service = WatchService(make_detector(config=config))
        tree = RegistrationTree(service, config)

        assert tree.register_path(nested / "d") is True
        assert service.watched_paths() == frozenset()

    def test_register_missing_path(self, tree, service, nested):
        assert tree.register_path(nested / "missing") is False
        assert service.watched_paths() == frozenset()

    def test_register_single_failure_raises(self, make_detector, root):
        tree = RegistrationTree(WatchService(make_detector(fail_paths=[root])))
        with pytest.raises(RegistrationError):
            tree.register_path(root)

    def test_recursive_children(self, tree, service, nested):
        tree.register_path(nested, recursive_children=True)

        assert flags(service) == {
            nested: True,
            nested / "a": True,
            nested / "a" / "b": True,
            nested / "a" / "b" / "c": True,
            nested / "d": True,
        }

    def test_all_parents(self, tree, service, nested):
        start = nested / "a" / "b"
        tree.register_path(start, all_parents=True)

        expected = {start: False}
        expected.update({parent: False for parent in start.parents})
        assert flags(service) == expected

    def test_children_and_parents(self, tree, service, nested):
        start = nested / "a"
        tree.register_path(start, recursive_children=True, all_parents=True)

        result = flags(service)
        assert result[start] is True
        assert result[start / "b"] is True
        assert result[start / "b" / "c"] is True
        assert result[nested] is False
        assert result[Path(start.anchor)] is False
        assert nested / "d" not in result

    def test_relative_path_is_normalized(self, tree, service, nested, monkeypatch):
        monkeypatch.chdir(nested)
        tree.register_path("a/../d")
        assert service.watched_paths() == frozenset({nested / "d"})

    def test_reregister_updates_flag(self, tree, service, nested):
        tree.register_path(nested, recursive_children=True)
        tree.register_path(nested)
        assert flags(service)[nested] is False


class TestRegisterChildren:
    """Tests for recursive walks."""

    def test_ignored_directories_are_pruned(self, make_detector, nested):
        config = WatcherConfig(ignore_patterns=["a"])
        service = WatchService(make_detector(config=config))
        tree = RegistrationTree(service, config)

        tree.register_children(nested)

        assert service.watched_paths() == frozenset({nested, nested / "d"})

    def test_failing_child_is_skipped(self, make_detector, nested, caplog):
        service = WatchService(make_detector(fail_paths=[nested / "a" / "b"]))
        tree = RegistrationTree(service)

        with caplog.at_level(logging.WARNING):
            keys = tree.register_children(nested)

        assert nested / "a" / "b" not in service.watched_paths()
        assert nested / "a" / "b" / "c" in service.watched_paths()
        assert len(keys) == 4
        assert "Failed to recursively register child path" in caplog.text

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
    def test_symlinked_directories_not_followed(self, tree, service, nested, tmp_path):
        outside = tmp_path / "outside"
        (outside / "inner").mkdir(parents=True)
        (nested / "link").symlink_to(outside, target_is_directory=True)

        tree.register_children(nested)

        assert outside.resolve() / "inner" not in service.watched_paths()
        assert outside.resolve() not in service.watched_paths()

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
    def test_symlinked_directories_followed_when_enabled(self, make_detector, nested, tmp_path):
        outside = tmp_path / "outside"
        (outside / "inner").mkdir(parents=True)
        (nested / "link").symlink_to(outside, target_is_directory=True)
        config = WatcherConfig(follow_symlinks=True)
        service = WatchService(make_detector(config=config))
        tree = RegistrationTree(service, config)

        tree.register_children(nested)

        # Symlinked directories are registered under their resolved path.
        assert outside.resolve() / "inner" in service.watched_paths()


class TestCallbacks:
    """Tests for the on_registered hook."""

    def test_called_once_per_new_directory(self, service, nested):
        seen = []
        tree = RegistrationTree(service, on_registered=seen.append)

        tree.register_path(nested, recursive_children=True)
        tree.register_path(nested, recursive_children=True)

        assert sorted(seen) == sorted(service.watched_paths())
        assert len(seen) == 5

    def test_called_again_for_replaced_registration(self, service, detector, nested):
        seen = []
        tree = RegistrationTree(service, on_registered=seen.append)

        tree.register(nested)
        tree.register(nested)
        detector.kill(nested)
        tree.register(nested)

        assert seen == [nested, nested]

    def test_clear_all(self, tree, service, nested):
        tree.register_path(nested, recursive_children=True)
        assert tree.clear_all() == 5
        assert service.watched_paths() == frozenset()
