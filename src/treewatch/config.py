"""Configuration for the treewatch package."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

ENV_PREFIX = "TREEWATCH_"


@dataclass
class WatcherConfig:
    """
    Configuration options for the file system watcher.

    Attributes:
        poll_interval_ms: Polling interval of the directory-diff detector;
            0 selects the native (push) detector
        dispatch_poll_interval_ms: How often the dispatch loop re-checks its
            stop flag while no key is signalled
        stop_timeout_s: Join timeout used when stopping from a context manager
        clear_on_exit: Whether the dispatch loop clears all registrations
            when it exits
        follow_symlinks: Whether recursive walks descend into symlinked
            directories
        ignore_patterns: Glob patterns for paths to ignore
        thread_name: Name of the dispatch thread
    """
    poll_interval_ms: int = 0
    dispatch_poll_interval_ms: int = 200
    stop_timeout_s: float = 5.0
    clear_on_exit: bool = True
    follow_symlinks: bool = False
    ignore_patterns: List[str] = field(default_factory=list)
    thread_name: str = "treewatch-dispatch"

    def __post_init__(self):
        if self.poll_interval_ms < 0:
            raise ValueError(f"poll_interval_ms must be >= 0: {self.poll_interval_ms}")
        if self.dispatch_poll_interval_ms <= 0:
            raise ValueError(
                f"dispatch_poll_interval_ms must be > 0: {self.dispatch_poll_interval_ms}"
            )

    @property
    def use_polling(self) -> bool:
        return self.poll_interval_ms > 0

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        path_str = str(path)
        name = path.name

        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                return True
            if fnmatch.fnmatch(path_str, f"*/{pattern}"):
                return True
            if fnmatch.fnmatch(path_str, pattern):
                return True

        return False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WatcherConfig":
        """
        Build a configuration from TREEWATCH_* environment variables.

        Recognized variables: TREEWATCH_POLL_INTERVAL_MS,
        TREEWATCH_DISPATCH_POLL_INTERVAL_MS, TREEWATCH_STOP_TIMEOUT_S,
        TREEWATCH_CLEAR_ON_EXIT, TREEWATCH_FOLLOW_SYMLINKS and
        TREEWATCH_IGNORE_PATTERNS (comma-separated).

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Configuration with defaults for unset variables

        Raises:
            ValueError: If a variable has an invalid value
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value is not None and value.strip() else None

        def get_bool(name: str, default: bool) -> bool:
            value = get(name)
            if value is None:
                return default
            return value.lower() in ("1", "true", "yes", "on")

        patterns = get("IGNORE_PATTERNS")

        return cls(
            poll_interval_ms=int(get("POLL_INTERVAL_MS") or defaults.poll_interval_ms),
            dispatch_poll_interval_ms=int(
                get("DISPATCH_POLL_INTERVAL_MS") or defaults.dispatch_poll_interval_ms
            ),
            stop_timeout_s=float(get("STOP_TIMEOUT_S") or defaults.stop_timeout_s),
            clear_on_exit=get_bool("CLEAR_ON_EXIT", defaults.clear_on_exit),
            follow_symlinks=get_bool("FOLLOW_SYMLINKS", defaults.follow_symlinks),
            ignore_patterns=[p.strip() for p in patterns.split(",") if p.strip()] if patterns else [],
        )
