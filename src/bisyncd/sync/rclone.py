"""rclone command adapter.

This module provides:
- BisyncOptions: The fixed, safety-oriented flag set for every bisync
- Rclone: Builds and runs bisync, one-way deletion sync, mkdir and the
  startup connectivity checks

Every bisync passes the exclude rules and requests resilient/recover mode,
newer-wins conflict resolution with the loser renamed, empty-directory
creation, symlink skipping and bounded transfer size/parallelism.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from bisyncd.core.errors import CommandError, RemoteConfigError
from bisyncd.sync.shell import CommandResult, run_command

logger = logging.getLogger(__name__)

MKDIR_TIMEOUT = 30.0
VERSION_TIMEOUT = 5.0
LISTREMOTES_TIMEOUT = 5.0
ABOUT_TIMEOUT = 15.0

PROGRESS_LOG_INTERVAL = 5.0  # seconds between INFO-level progress lines

_SYMLINK_NOISE = "Can't follow symlink"
_STDOUT_MARKERS = ("Transferred:", "Deleted:", "Deleting", "Copied", "INFO")
_STDERR_MARKERS = ("ERROR", "NOTICE", "Deleted", "Deleting")

Runner = Callable[..., CommandResult]


@dataclass
class BisyncOptions:
    """Tunable limits for rclone transfers.

    Attributes:
        max_size: Skip files larger than this.
        drive_chunk_size: Upload chunk size for Google Drive remotes.
        transfers: Parallel file transfers.
        checkers: Parallel checkers.
        stats_interval: Interval between rclone stats lines.
    """

    max_size: str = "10G"
    drive_chunk_size: str = "64M"
    transfers: int = 4
    checkers: int = 8
    stats_interval: str = "30s"

    def transfer_flags(self) -> list[str]:
        """Flags bounding transfer size and parallelism."""
        return [
            "--stats", self.stats_interval,
            "--max-size", self.max_size,
            "--drive-chunk-size", self.drive_chunk_size,
            "--transfers", str(self.transfers),
            "--checkers", str(self.checkers),
        ]

    def bisync_flags(self) -> list[str]:
        """Safety flags for every bisync invocation."""
        return [
            "--resilient",
            "--recover",
            "--conflict-resolve", "newer",
            "--conflict-loser", "num",
            "--create-empty-src-dirs",
            "--skip-links",
            *self.transfer_flags(),
        ]


class OutputLogger:
    """Forwards rclone output lines to the logger.

    Important lines (transfers, deletions, errors, notices) are logged at
    INFO; other stdout lines are promoted to INFO at most every few seconds
    so long transfers still show progress. Symlink warnings are dropped.
    """

    def __init__(self, label: str) -> None:
        self._label = label
        self._last_progress = time.monotonic()

    def on_stdout(self, line: str) -> None:
        if not line.strip() or _SYMLINK_NOISE in line:
            return
        now = time.monotonic()
        if any(m in line for m in _STDOUT_MARKERS) or now - self._last_progress > PROGRESS_LOG_INTERVAL:
            logger.info("  [%s] %s", self._label, line)
            self._last_progress = now
        else:
            logger.debug("  [%s] %s", self._label, line)

    def on_stderr(self, line: str) -> None:
        if not line.strip() or _SYMLINK_NOISE in line:
            return
        if any(m in line for m in _STDERR_MARKERS):
            logger.info("  [%s] %s", self._label, line)
        else:
            logger.debug("  [%s] %s", self._label, line)


class Rclone:
    """Thin wrapper over the rclone CLI.

    Usage:
        rclone = Rclone()
        rclone.check_remote("gdrive")
        result = rclone.bisync("/home/me/Documents", "gdrive:Documents", excludes, resync=True)
        if not result.ok:
            ...
    """

    def __init__(
        self,
        binary: str = "rclone",
        options: BisyncOptions | None = None,
        runner: Runner = run_command,
    ) -> None:
        """Initialize the adapter.

        Args:
            binary: rclone executable name or path.
            options: Transfer limits (defaults to BisyncOptions()).
            runner: Command runner, replaceable for testing.
        """
        self._binary = binary
        self._options = options or BisyncOptions()
        self._runner = runner

    @property
    def options(self) -> BisyncOptions:
        return self._options

    def bisync_args(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
        resync: bool = False,
    ) -> list[str]:
        """Build the argv for a bidirectional sync."""
        args = [self._binary, "bisync", local_path, remote_path]
        args.extend(excludes)
        args.extend(self._options.bisync_flags())
        if resync:
            args.append("--resync")
        return args

    def sync_deletions_args(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
    ) -> list[str]:
        """Build the argv for a one-way local-to-remote sync that propagates deletions."""
        args = [self._binary, "sync", local_path, remote_path, "--delete-after"]
        args.extend(self._options.transfer_flags())
        args.extend(excludes)
        return args

    def _run(self, args: list[str], label: str, **kwargs: Any) -> CommandResult:
        output = OutputLogger(label)
        return self._runner(
            args,
            on_stdout=output.on_stdout,
            on_stderr=output.on_stderr,
            **kwargs,
        )

    def bisync(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
        resync: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """Run ``rclone bisync``.

        No timeout is applied: initial syncs of large trees run for hours.

        Args:
            local_path: Local directory.
            remote_path: Remote directory.
            excludes: ``--exclude`` arguments.
            resync: Rebuild bisync state from scratch.
            cancel_event: Terminates rclone when set.
        """
        args = self.bisync_args(local_path, remote_path, excludes, resync=resync)
        return self._run(args, local_path, timeout=None, cancel_event=cancel_event)

    def sync_deletions(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """Run a one-way ``rclone sync --delete-after`` from local to remote."""
        args = self.sync_deletions_args(local_path, remote_path, excludes)
        return self._run(args, local_path, timeout=None, cancel_event=cancel_event)

    def mkdir(self, remote_path: str) -> CommandResult:
        """Create a remote directory."""
        return self._runner([self._binary, "mkdir", remote_path], timeout=MKDIR_TIMEOUT)

    def check_remote(self, remote_name: str) -> None:
        """Verify rclone is installed, the remote is configured and reachable.

        Raises:
            RemoteConfigError: With an actionable message on any failure.
        """
        try:
            result = self._runner([self._binary, "version"], timeout=VERSION_TIMEOUT)
        except CommandError as e:
            raise RemoteConfigError(
                f"rclone is not installed or not in PATH ({e}). Install it from https://rclone.org/install/"
            ) from e
        if not result.ok:
            raise RemoteConfigError("rclone is not installed or not working: " + result.output)

        result = self._runner([self._binary, "listremotes"], timeout=LISTREMOTES_TIMEOUT)
        if not result.ok:
            raise RemoteConfigError("Failed to list rclone remotes: " + result.output)

        remotes = [line.strip() for line in result.stdout.splitlines()]
        if f"{remote_name}:" not in remotes:
            raise RemoteConfigError(
                f"rclone remote '{remote_name}' is not configured. Run 'rclone config' to set it up"
            )

        logger.info("Testing connection to %s...", remote_name)
        result = self._runner([self._binary, "about", f"{remote_name}:"], timeout=ABOUT_TIMEOUT)
        if result.timed_out:
            raise RemoteConfigError(
                f"Connection to {remote_name} timed out. Check your internet connection and authentication"
            )
        if not result.ok:
            raise RemoteConfigError(f"Failed to connect to {remote_name}: {result.output}")
        logger.info("Connection to %s verified", remote_name)
