"""Classification of rclone bisync failures.

The markers below follow rclone's message format and must be kept in sync
with the rclone version in use; this module is the only place that inspects
rclone's text output for control flow.
"""

from __future__ import annotations

from enum import Enum

from bisyncd.sync.shell import CommandResult

LOCK_MARKERS = (
    "prior lock file found",
    "lock file found",
)

REMOTE_MISSING_MARKER = "directory not found"
REMOTE_ROOT_MARKERS = (
    "error reading source root directory",
    "error reading destination root directory",
)

CACHE_MISSING_MARKERS = (
    "Failed loading prior Path",
    "cannot find prior Path1 or Path2 listings",
    "path1.lst",
    "path2.lst",
    "Bisync aborted. Please try again",
    "Must run --resync",
    "no such file or directory",
)

ERROR_LINE_MARKERS = ("ERROR", "NOTICE", "Failed")
ERROR_TAIL_LINES = 5


class FailureKind(Enum):
    """Outcome category of one bisync invocation, in handling priority order."""

    NONE = "none"
    STALE_LOCK = "stale_lock"
    REMOTE_MISSING = "remote_missing"
    CACHE_MISSING = "cache_missing"
    UNCLASSIFIED = "unclassified"


def is_stale_lock(result: CommandResult) -> bool:
    """rclone refused to run because a previous run's lock file exists."""
    text = result.combined
    return any(marker in text for marker in LOCK_MARKERS)


def is_remote_missing(result: CommandResult) -> bool:
    """The remote root could not be read because it does not exist."""
    text = result.combined
    return REMOTE_MISSING_MARKER in text and any(m in text for m in REMOTE_ROOT_MARKERS)


def is_cache_missing(result: CommandResult) -> bool:
    """The prior-run listings are missing or corrupt and a resync is required."""
    text = result.combined
    return any(marker in text for marker in CACHE_MISSING_MARKERS)


def classify(result: CommandResult) -> FailureKind:
    """Classify a bisync result.

    Timeouts and cancellations are never recoverable by retrying.
    """
    if result.ok:
        return FailureKind.NONE
    if result.timed_out or result.cancelled:
        return FailureKind.UNCLASSIFIED
    if is_stale_lock(result):
        return FailureKind.STALE_LOCK
    if is_remote_missing(result):
        return FailureKind.REMOTE_MISSING
    if is_cache_missing(result):
        return FailureKind.CACHE_MISSING
    return FailureKind.UNCLASSIFIED


def error_tail(result: CommandResult, limit: int = ERROR_TAIL_LINES) -> str:
    """Summarize a failed result for status reporting.

    Returns:
        The last ``limit`` error-level lines, or a generic message naming
        the exit code when rclone printed none.
    """
    if result.cancelled:
        return "sync cancelled during shutdown"
    if result.timed_out:
        return "sync timed out"

    lines = [
        line.strip()
        for line in result.output.splitlines()
        if any(marker in line for marker in ERROR_LINE_MARKERS)
    ]
    if lines:
        return "\n".join(lines[-limit:])
    return f"sync failed with exit code {result.exit_code}, check logs for details"
