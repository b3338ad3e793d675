"""Directory sync orchestration on top of rclone bisync.

Architecture:
    Triggers → SyncQueue → queue processor → SyncExecutor → DirectoryRegistry

Components:
- **SyncCoordinator**: Lifecycle, trigger sources and the queue processor
- **SyncQueue**: Deduplicating set of pending directories, oldest first
- **DirectoryRegistry**: Registered directories, per-directory state and gate
- **SyncExecutor**: One bisync run with bounded automatic recovery
- **LockJanitor**: Removes rclone lock and listing files
- **Rclone**: rclone command adapter
- **ChangeWatcher**: Optional local-change trigger
"""

from bisyncd.sync.classify import FailureKind, classify, error_tail
from bisyncd.sync.coordinator import SyncCoordinator
from bisyncd.sync.excludes import DEFAULT_EXCLUDE_PATTERNS, ExcludeRules
from bisyncd.sync.executor import SyncExecutor
from bisyncd.sync.janitor import LockJanitor, bisync_workdir, session_name
from bisyncd.sync.queue import SyncQueue
from bisyncd.sync.rclone import BisyncOptions, Rclone
from bisyncd.sync.registry import DirectoryRegistry, canonical_path, default_directories
from bisyncd.sync.shell import CommandResult, run_command
from bisyncd.sync.types import (
    DirectoryStatus,
    OrchestratorState,
    OrchestratorStatus,
    RecoveryAction,
    SyncDirectory,
    SyncOperation,
    SyncOutcome,
)
from bisyncd.sync.watcher import ChangeWatcher

__all__ = [
    # Orchestration
    "SyncCoordinator",
    "SyncExecutor",
    "SyncQueue",
    "DirectoryRegistry",
    "ChangeWatcher",
    # rclone
    "BisyncOptions",
    "Rclone",
    "LockJanitor",
    "bisync_workdir",
    "session_name",
    "CommandResult",
    "run_command",
    "FailureKind",
    "classify",
    "error_tail",
    # Excludes
    "DEFAULT_EXCLUDE_PATTERNS",
    "ExcludeRules",
    # Helpers
    "canonical_path",
    "default_directories",
    # Types
    "DirectoryStatus",
    "OrchestratorState",
    "OrchestratorStatus",
    "RecoveryAction",
    "SyncDirectory",
    "SyncOperation",
    "SyncOutcome",
]
