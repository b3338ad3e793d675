"""Sync executor: runs one directory's bisync and resolves its state.

Outcome handling, in priority order:

    | rclone result         | Recovery                         | Retry             |
    |-----------------------|----------------------------------|-------------------|
    | exit 0                | -                                | -                 |
    | prior lock file found | delete lock file                 | identical, once   |
    | remote root not found | rclone mkdir REMOTE              | with --resync     |
    | prior listings broken | -                                | with --resync     |
    | anything else         | record error tail, state ERROR   | next trigger      |

A failed retry falls through to the next row using the retry's output, so
each recovery runs at most once per execution. There is no backoff here:
a directory that keeps failing is retried by the next periodic trigger.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

from bisyncd.sync.classify import FailureKind, classify, error_tail
from bisyncd.sync.types import RecoveryAction, SyncDirectory, SyncOutcome

if TYPE_CHECKING:
    from bisyncd.sync.excludes import ExcludeRules
    from bisyncd.sync.janitor import LockJanitor
    from bisyncd.sync.registry import DirectoryRegistry
    from bisyncd.sync.shell import CommandResult

logger = logging.getLogger(__name__)


class RcloneProtocol(Protocol):
    """rclone adapter interface used by the executor and coordinator."""

    def bisync(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
        resync: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult: ...

    def sync_deletions(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
        cancel_event: threading.Event | None = None,
    ) -> CommandResult: ...

    def mkdir(self, remote_path: str) -> CommandResult: ...

    def check_remote(self, remote_name: str) -> None: ...


class SyncExecutor:
    """Runs bisync for a directory with bounded automatic recovery.

    The caller must hold the directory's sync gate (state SYNCING) before
    calling execute() or force_resync(); the executor always releases it by
    recording success (IDLE) or failure (ERROR).
    """

    def __init__(
        self,
        registry: DirectoryRegistry,
        rclone: RcloneProtocol,
        janitor: LockJanitor,
        excludes: ExcludeRules,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            registry: Directory registry receiving the final state.
            rclone: rclone adapter.
            janitor: Lock/cache cleaner.
            excludes: Exclude rules passed to every invocation.
            cancel_event: When set, running rclone processes are terminated.
        """
        self._registry = registry
        self._rclone = rclone
        self._janitor = janitor
        self._excludes = excludes
        self._cancel_event = cancel_event

    def execute(self, directory: SyncDirectory) -> SyncOutcome:
        """Sync a directory and record the outcome in the registry."""
        logger.info("Syncing %s...", directory.local_path)
        initial = directory.needs_initial_sync
        try:
            if initial:
                self._janitor.clear_lock(directory.local_path, directory.remote_path)
            outcome = self._sync_with_recovery(directory, resync=initial)
        except Exception as e:
            logger.exception("Sync error: %s", directory.local_path)
            outcome = SyncOutcome(directory=directory.local_path, success=False, error=str(e))
        self._record(outcome, directory)
        return outcome

    def force_resync(self, directory: SyncDirectory) -> SyncOutcome:
        """Rebuild a directory's bisync state from scratch.

        Steps, in order: clear the lock, clear all cached listings, push local
        deletions to the remote with a one-way sync, then run a full bisync
        with --resync. A failing deletion pass is logged and the resync still
        runs.
        """
        local, remote = directory.local_path, directory.remote_path
        logger.info("Forcing resync of %s (will rebuild cache and sync deletions)...", local)
        self._registry.mark_needs_resync(local)

        try:
            self._janitor.clear_lock(local, remote)
            self._janitor.clear_cache(local, remote)
            self._push_deletions(directory)
            logger.info("Rebuilding bisync state for %s with full resync...", local)
            outcome = self._sync_with_recovery(directory, resync=True)
        except Exception as e:
            logger.exception("Resync error: %s", local)
            outcome = SyncOutcome(directory=local, success=False, resync=True, error=str(e))
        self._record(outcome, directory)
        return outcome

    def _push_deletions(self, directory: SyncDirectory) -> None:
        logger.info("Syncing deletions from %s to %s...", directory.local_path, directory.remote_path)
        try:
            result = self._rclone.sync_deletions(
                directory.local_path,
                directory.remote_path,
                self._excludes.to_args(),
                cancel_event=self._cancel_event,
            )
        except Exception as e:
            logger.warning("Deletion sync failed for %s: %s", directory.local_path, e)
            return
        if result.ok:
            logger.info("Deletions synced for %s", directory.local_path)
        else:
            logger.warning(
                "Deletion sync exited with code %d for %s: %s",
                result.exit_code,
                directory.local_path,
                error_tail(result),
            )

    def _sync_with_recovery(self, directory: SyncDirectory, resync: bool) -> SyncOutcome:
        """Run bisync and apply at most one of each recovery step."""
        local, remote = directory.local_path, directory.remote_path
        attempts = 0

        def attempt(with_resync: bool) -> CommandResult:
            nonlocal attempts
            attempts += 1
            return self._rclone.bisync(
                local,
                remote,
                self._excludes.to_args(),
                resync=with_resync,
                cancel_event=self._cancel_event,
            )

        def succeeded(recovered_by: RecoveryAction | None = None) -> SyncOutcome:
            return SyncOutcome(
                directory=local,
                success=True,
                attempts=attempts,
                resync=resync,
                recovered_by=recovered_by,
            )

        result = attempt(resync)
        kind = classify(result)
        if kind is FailureKind.NONE:
            return succeeded()

        if kind is FailureKind.STALE_LOCK:
            logger.warning("Lock file detected for %s, clearing and retrying...", local)
            self._janitor.clear_lock(local, remote)
            result = attempt(resync)
            if result.ok:
                logger.info("Sync succeeded after clearing lock file: %s", local)
                return succeeded(RecoveryAction.CLEARED_LOCK)
            kind = classify(result)

        if kind is FailureKind.REMOTE_MISSING:
            logger.warning("Remote directory %s doesn't exist, creating it...", remote)
            mkdir = self._rclone.mkdir(remote)
            if mkdir.ok:
                logger.info("Remote directory created, retrying %s with --resync...", local)
                resync = True
                result = attempt(True)
                if result.ok:
                    return succeeded(RecoveryAction.CREATED_REMOTE)
                kind = classify(result)
            else:
                logger.warning("Failed to create remote directory %s: %s", remote, mkdir.output)

        if kind is FailureKind.CACHE_MISSING and not resync:
            logger.warning(
                "Bisync state for %s missing or corrupted, performing resync to rebuild it...",
                local,
            )
            resync = True
            result = attempt(True)
            if result.ok:
                logger.info("Resync completed for %s, state rebuilt", local)
                return succeeded(RecoveryAction.RESYNCED)

        logger.error(
            "rclone bisync error (exit code %d) for %s -> %s:\nStderr: %s\nStdout: %s",
            result.exit_code,
            local,
            remote,
            result.stderr,
            result.stdout,
        )
        return SyncOutcome(
            directory=local,
            success=False,
            attempts=attempts,
            resync=resync,
            error=error_tail(result),
        )

    def _record(self, outcome: SyncOutcome, directory: SyncDirectory) -> None:
        if outcome.success:
            self._registry.mark_success(outcome.directory, directory)
            logger.info("Synced %s", outcome.directory)
        else:
            error = outcome.error or "sync failed"
            self._registry.mark_failure(outcome.directory, error)
            logger.error("Sync failed for %s: %s", outcome.directory, error)
