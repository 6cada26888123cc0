#!/usr/bin/env python3
"""
CLI for watching directory trees.

Usage:
    python -m treewatch watch /path/to/dir --recursive
    python -m treewatch watch /path/to/dir --poll 500 --json
    python -m treewatch tree /path/to/dir --recursive --parents
"""

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import WatcherConfig
from .exceptions import WatcherError
from .models import PathWatchEvent
from .watcher import FileSystemWatcher


logger = logging.getLogger("treewatch.cli")


def setup_logging(verbose: bool = False) -> None:
    """Configure console logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.stop_requested = threading.Event()
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.stop_requested.set()


def build_config(args) -> WatcherConfig:
    """Merge environment configuration with command line options."""
    config = WatcherConfig.from_env()
    if args.poll is not None:
        config.poll_interval_ms = args.poll
    if args.ignore:
        config.ignore_patterns.extend(args.ignore)
    if args.follow_symlinks:
        config.follow_symlinks = True
    return config


def format_event(event: PathWatchEvent, as_json: bool = False) -> str:
    """Render an event as one output line."""
    if as_json:
        return json.dumps(event.to_dict())
    if event.overflow:
        return f"OVERFLOW {event.registered_path}"
    return f"{event.kind.value.upper():<8} {event.path}  [{event.registered_path}]"


def register_all(watcher: FileSystemWatcher, paths: List[str], args) -> int:
    """Register the given paths; returns the number that could not be found."""
    missing = 0
    for raw in paths:
        if not watcher.register_path(Path(raw), args.recursive, args.parents):
            logger.error(f"Path does not exist: {raw}")
            missing += 1
    return missing


def cmd_watch(args) -> int:
    """Watch paths and print every event until interrupted."""
    config = build_config(args)
    shutdown = GracefulShutdown()

    with FileSystemWatcher(config=config) as watcher:
        watcher.create()
        watcher.add_callback(lambda event: print(format_event(event, args.json), flush=True))

        if register_all(watcher, args.paths, args) == len(args.paths):
            return 1

        watcher.start()
        logger.info(f"Watching {len(watcher.watched_paths())} path(s), press Ctrl+C to stop")
        for path in sorted(watcher.watched_paths()):
            logger.debug(f"  - {path}")

        while not shutdown.stop_requested.wait(timeout=1.0):
            pass
        watcher.stop(timeout=config.stop_timeout_s)

    logger.info("Watcher stopped")
    return 0


def cmd_tree(args) -> int:
    """Print the directories a registration would watch, then exit."""
    config = build_config(args)

    with FileSystemWatcher(config=config) as watcher:
        watcher.create()
        missing = register_all(watcher, args.paths, args)
        for path in sorted(watcher.watched_paths()):
            key = watcher.get_key(path)
            flag = "recursive" if key is not None and key.watch_children_recursively else "single"
            print(f"{path}  ({flag})")

    return 1 if missing else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Watch directory trees for create, delete and modify events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  TREEWATCH_* variables (also read from a .env file) provide defaults,
  for example TREEWATCH_POLL_INTERVAL_MS=500.

Examples:
  # Watch a tree with native notifications
  python -m treewatch watch ./documents --recursive

  # Poll every 500 ms and print JSON lines
  python -m treewatch watch ./documents --recursive --poll 500 --json
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub):
        sub.add_argument("paths", nargs="+", help="Files or directories to watch")
        sub.add_argument("-r", "--recursive", action="store_true", help="Watch all child directories")
        sub.add_argument("-p", "--parents", action="store_true", help="Watch all parent directories")
        sub.add_argument("--poll", type=int, default=None, help="Use polling with this interval in ms")
        sub.add_argument("--ignore", action="append", default=[], help="Glob pattern to ignore (repeatable)")
        sub.add_argument("--follow-symlinks", action="store_true", help="Descend into symlinked directories")

    watch_parser = subparsers.add_parser("watch", help="Watch paths and print events")
    add_common(watch_parser)
    watch_parser.add_argument("--json", action="store_true", help="Print events as JSON lines")
    watch_parser.set_defaults(func=cmd_watch)

    tree_parser = subparsers.add_parser("tree", help="List the directories a registration would watch")
    add_common(tree_parser)
    tree_parser.set_defaults(func=cmd_tree)

    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging(args.verbose)

    try:
        return args.func(args)
    except WatcherError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
