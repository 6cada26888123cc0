#!/usr/bin/env python3
"""
Directory tree watcher demo.

This example demonstrates:
1. A listener receiving created/deleted/modified callbacks
2. A consumer thread iterating over an event stream
3. New subdirectories being picked up automatically

Usage:
    python examples/tree_demo.py [--poll MS]

The demo will:
- Create a temporary directory structure
- Watch it recursively
- Create nested directories and files, modify and delete them
- Show the events being received
- Stop the watcher and clean up
"""

import argparse
import shutil
import sys
import tempfile
import threading
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from treewatch import FileSystemWatcher, PathWatcherListener, WatcherConfig


class PrintingListener(PathWatcherListener):
    """Prints every callback it receives."""

    def new_path_watched(self, path):
        print(f"[LISTENER] watching   {path}")

    def directory_created(self, path, created):
        print(f"[LISTENER] created    {created}")

    def directory_deleted(self, path, deleted):
        print(f"[LISTENER] deleted    {deleted}")

    def directory_modified(self, path, modified):
        print(f"[LISTENER] modified   {modified}")

    def path_changed(self, path, context, overflow):
        if overflow:
            print(f"[LISTENER] overflow in {path}, rescan needed")


def consume(stream):
    """Count stream events until the watcher stops."""
    count = 0
    for event in stream:
        count += 1
    print(f"[CONSUMER] stream ended after {count} event(s)")


def main():
    parser = argparse.ArgumentParser(description="Directory tree watcher demo")
    parser.add_argument("--poll", type=int, default=0, help="Polling interval in ms (0 = native)")
    args = parser.parse_args()

    base = Path(tempfile.mkdtemp(prefix="treewatch_demo_")).resolve()
    (base / "docs").mkdir()
    print(f"[MAIN] Demo directory: {base}")

    config = WatcherConfig(poll_interval_ms=args.poll, dispatch_poll_interval_ms=50)

    try:
        with FileSystemWatcher(config=config) as watcher:
            watcher.create()
            watcher.add_listener(PrintingListener())
            stream = watcher.stream()
            consumer = threading.Thread(target=consume, args=(stream,))
            consumer.start()

            watcher.register_path(base, recursive_children=True)
            watcher.start()
            time.sleep(0.5)

            print("\n[MAIN] Creating nested directories...")
            (base / "projects" / "alpha").mkdir(parents=True)
            time.sleep(1.0)

            print("\n[MAIN] Creating files...")
            (base / "docs" / "readme.txt").write_text("hello")
            (base / "projects" / "alpha" / "notes.md").write_text("# Notes")
            time.sleep(1.0)

            print("\n[MAIN] Modifying a file...")
            (base / "docs" / "readme.txt").write_text("hello again")
            time.sleep(1.0)

            print("\n[MAIN] Deleting a directory...")
            shutil.rmtree(base / "projects" / "alpha")
            time.sleep(1.0)

            print(f"\n[MAIN] Watched paths: {len(watcher.watched_paths())}")
            watcher.stop(timeout=config.stop_timeout_s)
            consumer.join(timeout=5)
    finally:
        shutil.rmtree(base, ignore_errors=True)
        print("[MAIN] Cleaned up")


if __name__ == "__main__":
    main()
