"""Sync coordinator: trigger sources, queue processor and lifecycle.

This module provides:
- SyncCoordinator: Owns the registry, queue, executor and scheduler

Two interval jobs run on an APScheduler BackgroundScheduler:
- queue_processor (every queue_interval): dequeue the oldest directory that
  passes the gate and hand it to a worker thread
- periodic_sync (every sync_interval): enqueue every registered directory

Operator commands and the optional change watcher enqueue from their own
threads. Every trigger goes through SyncQueue.enqueue(); only the queue
processor and resync_directory() take the per-directory gate.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bisyncd.core.config import DaemonConfig
from bisyncd.core.errors import (
    DirectoryBusyError,
    InvalidDirectoryError,
    NotRunningError,
    OrchestratorError,
)
from bisyncd.sync.excludes import ExcludeRules
from bisyncd.sync.executor import RcloneProtocol, SyncExecutor
from bisyncd.sync.janitor import LockJanitor
from bisyncd.sync.queue import SyncQueue
from bisyncd.sync.rclone import Rclone
from bisyncd.sync.registry import DirectoryRegistry, canonical_path, default_directories
from bisyncd.sync.types import (
    OrchestratorState,
    OrchestratorStatus,
    SyncDirectory,
    SyncOperation,
    SyncOutcome,
)
from bisyncd.sync.watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Keeps registered directories in sync with the remote.

    Usage:
        coordinator = SyncCoordinator(load_daemon_config())
        coordinator.start()          # raises RemoteConfigError if unusable
        coordinator.sync_all()
        print(coordinator.status())
        coordinator.stop()
    """

    def __init__(
        self,
        config: DaemonConfig,
        registry: DirectoryRegistry | None = None,
        rclone: RcloneProtocol | None = None,
        janitor: LockJanitor | None = None,
        excludes: ExcludeRules | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            config: Daemon settings.
            registry: Directory registry (new one if None).
            rclone: rclone adapter (built from config if None).
            janitor: Lock/cache cleaner (default work directory if None).
            excludes: Exclude rules (defaults plus configured extras if None).
        """
        self._config = config
        self._registry = registry if registry is not None else DirectoryRegistry()
        self._rclone = rclone if rclone is not None else Rclone(binary=config.rclone_binary)
        self._janitor = janitor if janitor is not None else LockJanitor()
        if excludes is None:
            excludes = ExcludeRules(config.excludes)
            if config.exclude_file is not None:
                excludes.load_from_file(config.exclude_file)
        self._excludes = excludes

        self._queue = SyncQueue()
        self._queue.close()
        self._cancel_event = threading.Event()
        self._executor = SyncExecutor(
            self._registry,
            self._rclone,
            self._janitor,
            self._excludes,
            cancel_event=self._cancel_event,
        )

        self._watcher: ChangeWatcher | None = None
        if config.watch_changes:
            self._watcher = ChangeWatcher(
                self.enqueue, self._excludes, debounce_delay=config.debounce_delay
            )

        self._state = OrchestratorState.STOPPED
        self._lifecycle_lock = threading.Lock()
        self._scheduler: BackgroundScheduler | None = None

        self._workers_lock = threading.Lock()
        self._workers: dict[str, threading.Thread] = {}

    # --- Properties ---

    @property
    def config(self) -> DaemonConfig:
        return self._config

    @property
    def registry(self) -> DirectoryRegistry:
        return self._registry

    @property
    def queue(self) -> SyncQueue:
        return self._queue

    @property
    def excludes(self) -> ExcludeRules:
        return self._excludes

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is OrchestratorState.RUNNING

    def _require_running(self) -> None:
        if not self.is_running:
            raise NotRunningError()

    # --- Registration ---

    def register_directory(self, local_path: str | Path, remote_path: str | None = None) -> SyncDirectory:
        """Register a local directory for syncing.

        Args:
            local_path: Existing local directory (``~`` allowed).
            remote_path: rclone remote path (default ``REMOTE:<basename>``).

        Returns:
            The registered directory.

        Raises:
            InvalidDirectoryError: If the local path is not a directory.
        """
        path = canonical_path(local_path)
        if not Path(path).is_dir():
            raise InvalidDirectoryError(f"Not a directory: {local_path}")

        directory = self._registry.register(path, remote_path or self._config.remote_for(path))
        logger.info("Added directory: %s -> %s", directory.local_path, directory.remote_path)

        if self._watcher is not None:
            self._watcher.watch(directory.local_path)
        if self.is_running:
            self._queue.enqueue(directory.local_path)
        return directory

    def _register_configured(self) -> None:
        """Register configured directories, or the existing default ones."""
        if self._config.directories:
            for entry in self._config.directories:
                try:
                    self.register_directory(entry.local, entry.remote)
                except InvalidDirectoryError as e:
                    logger.warning("Skipping configured directory: %s", e)
            return

        for local, remote in default_directories(self._config.remote_name):
            if Path(local).is_dir():
                self.register_directory(local, remote)
            else:
                logger.debug("Default directory %s does not exist, skipping", local)

    # --- Lifecycle ---

    def start(self) -> None:
        """Verify the remote, register directories and start scheduling.

        Raises:
            OrchestratorError: If already running.
            RemoteConfigError: If rclone or the remote is unusable; nothing is
                registered or scheduled in that case.
        """
        with self._lifecycle_lock:
            if self._state is not OrchestratorState.STOPPED:
                raise OrchestratorError("Sync is already running")

            logger.info("Checking rclone remote %s...", self._config.remote_name)
            self._rclone.check_remote(self._config.remote_name)

            self._register_configured()
            if not len(self._registry):
                logger.warning("No directories to sync")

            self._cancel_event.clear()
            self._queue.reopen()

            self._scheduler = BackgroundScheduler()
            self._scheduler.add_job(
                self.process_queue,
                trigger=IntervalTrigger(seconds=self._config.queue_interval),
                id="queue_processor",
                name="Sync queue processor",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self._scheduler.add_job(
                self.enqueue_all,
                trigger=IntervalTrigger(seconds=self._config.sync_interval),
                id="periodic_sync",
                name="Periodic sync of all directories",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self._scheduler.start()
            self._state = OrchestratorState.RUNNING

            queued = self.enqueue_all()
            if self._watcher is not None:
                self._watcher.start()

        logger.info(
            "Sync started: %d directories queued, periodic sync every %gs",
            queued,
            self._config.sync_interval,
        )

    def stop(self, timeout: float | None = None, force: bool = False) -> bool:
        """Stop scheduling and wait for in-flight syncs.

        Pending queue entries are dropped. Running rclone processes are left
        to finish unless force is set, in which case they are terminated.

        Args:
            timeout: Seconds to wait for in-flight syncs (default from config).
            force: Terminate running rclone processes.

        Returns:
            True if no sync is still running.
        """
        with self._lifecycle_lock:
            if self._state is OrchestratorState.STOPPED:
                return True
            self._state = OrchestratorState.STOPPING
            logger.info("Stopping sync...")

            self._queue.close()
            self._queue.clear()

            if self._scheduler is not None:
                self._scheduler.shutdown(wait=False)
                self._scheduler = None

            if self._watcher is not None:
                self._watcher.stop()

            if force:
                logger.warning("Forced stop: terminating running syncs")
                self._cancel_event.set()

            wait = self._config.shutdown_timeout if timeout is None else timeout
            finished = self.join_active(wait)
            if not finished:
                logger.warning(
                    "%d sync(s) still running after %gs; they will finish in the background",
                    len(self.active_workers()),
                    wait,
                )

            self._state = OrchestratorState.STOPPED
        logger.info("Sync stopped")
        return finished

    def join_active(self, timeout: float | None = None) -> bool:
        """Wait for worker threads to finish.

        Returns:
            True if every worker finished within the timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._workers_lock:
                threads = list(self._workers.values())
            if not threads:
                return True
            for thread in threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                thread.join(remaining)
            if deadline is not None and time.monotonic() >= deadline:
                with self._workers_lock:
                    return not self._workers

    def active_workers(self) -> list[str]:
        """Directories with a running worker thread."""
        with self._workers_lock:
            return list(self._workers)

    # --- Triggers ---

    def enqueue(self, path: str | Path) -> bool:
        """Queue a registered directory for sync.

        Raises:
            DirectoryNotFoundError: If the path is not registered.
        """
        directory = self._registry.get(path)
        return self._queue.enqueue(directory.local_path)

    def enqueue_all(self) -> int:
        """Queue every registered directory.

        Returns:
            Number of directories queued.
        """
        queued = 0
        for path in self._registry.paths():
            if self._queue.enqueue(path):
                queued += 1
        if queued:
            logger.debug("Queued %d directories for sync", queued)
        return queued

    def sync_all(self) -> int:
        """Operator trigger: queue every directory now.

        Raises:
            NotRunningError: If the coordinator is not running.
        """
        self._require_running()
        logger.info("Manual sync of all directories requested")
        return self.enqueue_all()

    def sync_directory(self, path: str | Path) -> SyncDirectory:
        """Operator trigger: queue one directory now.

        Raises:
            NotRunningError: If the coordinator is not running.
            DirectoryNotFoundError: If the path is not registered.
        """
        self._require_running()
        directory = self._registry.get(path)
        self._queue.enqueue(directory.local_path)
        logger.info("Manual sync requested for %s", directory.local_path)
        return directory

    # --- Queue processing ---

    def _can_dispatch(self) -> bool:
        cap = self._config.max_concurrent
        if cap is None:
            return True
        with self._workers_lock:
            return len(self._workers) < cap

    def process_queue(self) -> SyncOperation | None:
        """Run one queue-processor tick.

        Dequeues the oldest directory that is not syncing, claims its gate and
        starts a worker thread for it. Directories that are syncing stay
        queued for a later tick.

        Returns:
            The dispatched operation, or None if nothing was ready.
        """
        if not self.is_running or not self._can_dispatch():
            return None

        operation = self._queue.pop_next(self._registry.try_begin_sync)
        if operation is None:
            return None

        path = operation.directory
        thread = threading.Thread(
            target=self._run_worker,
            args=(path,),
            name=f"sync-{Path(path).name or path}",
            daemon=True,
        )
        with self._workers_lock:
            self._workers[path] = thread
        thread.start()
        return operation

    def _run_worker(self, path: str) -> None:
        try:
            directory = self._registry.get(path)
            self._executor.execute(directory)
        except Exception as e:
            logger.exception("Sync worker failed for %s", path)
            self._registry.mark_failure(path, str(e))
        finally:
            self._release_worker(path)

    def _release_worker(self, path: str) -> None:
        """Drop the calling thread's worker entry, unless a newer worker owns it."""
        with self._workers_lock:
            if self._workers.get(path) is threading.current_thread():
                del self._workers[path]

    # --- Operator commands ---

    def resync_directory(self, path: str | Path) -> SyncOutcome:
        """Force a full resync of one directory in the calling thread.

        Raises:
            NotRunningError: If the coordinator is not running.
            DirectoryNotFoundError: If the path is not registered.
            DirectoryBusyError: If the directory is currently syncing.
        """
        self._require_running()
        directory = self._registry.get(path)
        if not self._registry.try_begin_sync(directory.local_path):
            raise DirectoryBusyError(directory.local_path)

        with self._workers_lock:
            self._workers[directory.local_path] = threading.current_thread()
        try:
            return self._executor.force_resync(directory)
        finally:
            self._release_worker(directory.local_path)

    def status(self) -> OrchestratorStatus:
        """Get a status snapshot."""
        return OrchestratorStatus(
            running=self.is_running,
            remote_name=self._config.remote_name,
            sync_interval=self._config.sync_interval,
            queue_interval=self._config.queue_interval,
            queue_size=len(self._queue),
            active_syncs=self._registry.active_count(),
            directories=self._registry.statuses(),
        )

    def exclude_patterns(self) -> list[str]:
        return self._excludes.patterns()

    def add_exclude(self, pattern: str) -> bool:
        """Add an exclude pattern, applied from the next sync on.

        Raises:
            OperatorError: If the pattern is empty.
        """
        return self._excludes.add(pattern)

    def remove_exclude(self, pattern: str) -> None:
        """Remove an exclude pattern.

        Raises:
            UnknownPatternError: If the pattern is not in the set.
        """
        self._excludes.remove(pattern)
