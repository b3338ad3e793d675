"""Shared types and dataclasses for sync orchestration.

This module provides:
- SyncDirectory: A registered (local, remote) pair
- DirectoryStatus: Read-only snapshot of one directory's state
- SyncOperation: A pending queue entry
- RecoveryAction, SyncOutcome: Result of one executor run
- OrchestratorState, OrchestratorStatus: Orchestrator lifecycle and status
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto

from bisyncd.core.types import SyncState


@dataclass
class SyncDirectory:
    """A directory pair kept in sync.

    Attributes:
        local_path: Canonical absolute local path (registry key).
        remote_path: rclone remote path, e.g. ``gdrive:Documents``.
        needs_initial_sync: True until the first successful sync after
            registration, or after a full-resync order.
    """

    local_path: str
    remote_path: str
    needs_initial_sync: bool = True


@dataclass(frozen=True)
class DirectoryStatus:
    """Snapshot of a directory's sync state."""

    local_path: str
    remote_path: str
    state: SyncState
    needs_initial_sync: bool
    last_sync_time: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, str | bool | None]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "local_path": self.local_path,
            "remote_path": self.remote_path,
            "state": self.state.value,
            "needs_initial_sync": self.needs_initial_sync,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "last_error": self.last_error,
        }


@dataclass(order=True)
class SyncOperation:
    """A pending sync request for one directory.

    Ordered by enqueue time so the oldest request sorts first.
    """

    enqueue_time: float
    directory: str = field(compare=False)
    retry_count: int = field(default=0, compare=False)

    @classmethod
    def create(cls, directory: str) -> SyncOperation:
        """Create an operation stamped with the current time."""
        return cls(enqueue_time=time.monotonic(), directory=directory)

    def __repr__(self) -> str:
        return f"SyncOperation({self.directory}, enqueued={self.enqueue_time:.3f})"


class RecoveryAction(Enum):
    """Recovery step that turned a failed bisync into a success."""

    CLEARED_LOCK = "cleared_lock"
    CREATED_REMOTE = "created_remote"
    RESYNCED = "resynced"


@dataclass
class SyncOutcome:
    """Result of one executor run for a directory.

    Attributes:
        directory: Local path of the directory.
        success: Whether the directory ended idle.
        attempts: Number of bisync invocations made.
        resync: Whether the final invocation carried --resync.
        recovered_by: Recovery step that led to success, if any.
        error: Trimmed error text when the run failed.
    """

    directory: str
    success: bool
    attempts: int = 0
    resync: bool = False
    recovered_by: RecoveryAction | None = None
    error: str | None = None


class OrchestratorState(Enum):
    """Lifecycle state of the orchestrator."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


@dataclass
class OrchestratorStatus:
    """Status report for the operator."""

    running: bool
    remote_name: str
    sync_interval: float
    queue_interval: float
    queue_size: int
    active_syncs: int
    directories: list[DirectoryStatus] = field(default_factory=list)

    @property
    def syncing(self) -> list[str]:
        """Paths currently syncing."""
        return [d.local_path for d in self.directories if d.state == SyncState.SYNCING]

    @property
    def failed(self) -> list[str]:
        """Paths whose last sync failed."""
        return [d.local_path for d in self.directories if d.state == SyncState.ERROR]
