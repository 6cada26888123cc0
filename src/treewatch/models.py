"""Data models for the treewatch package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
import time


class EventKind(Enum):
    """Kinds of raw change notifications."""
    CREATE = "create"
    DELETE = "delete"
    MODIFY = "modify"
    OVERFLOW = "overflow"


class KeyState(Enum):
    """States of a watch key."""
    READY = "ready"
    SIGNALLED = "signalled"
    INVALID = "invalid"


@dataclass(frozen=True)
class ChangeEvent:
    """
    A raw change notification as delivered by a detector.

    Attributes:
        path: Absolute path of the changed entry (None for OVERFLOW)
        kind: The kind of change
        count: Number of identical notifications coalesced into this one
    """
    path: Optional[Path]
    kind: EventKind
    count: int = 1

    def __post_init__(self):
        if self.count < 1:
            raise ValueError(f"count must be >= 1: {self.count}")
        if self.path is None and self.kind != EventKind.OVERFLOW:
            raise ValueError(f"path is required for {self.kind.value} events")
        if self.path is not None and not self.path.is_absolute():
            raise ValueError(f"path must be absolute: {self.path}")

    @property
    def is_overflow(self) -> bool:
        return self.kind == EventKind.OVERFLOW


@dataclass(frozen=True)
class PathWatchEvent:
    """
    An event delivered to sinks by the dispatch loop.

    Attributes:
        registered_path: The watched directory the event was reported for
        path: The created, deleted or modified path, the same as
            registered_path or inside it; None when overflow is set
        kind: The kind of change
        overflow: True if events for registered_path may have been lost
        count: Number of coalesced notifications
        timestamp: Unix timestamp when the event was dispatched
    """
    registered_path: Path
    path: Optional[Path]
    kind: EventKind
    overflow: bool = False
    count: int = 1
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_change(cls, registered_path: Path, change: ChangeEvent) -> "PathWatchEvent":
        """Build the outward event for a buffered change."""
        return cls(
            registered_path=registered_path,
            path=change.path,
            kind=change.kind,
            overflow=change.is_overflow,
            count=change.count,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "registered_path": str(self.registered_path),
            "path": str(self.path) if self.path else None,
            "kind": self.kind.value,
            "overflow": self.overflow,
            "count": self.count,
            "timestamp": self.timestamp,
        }
