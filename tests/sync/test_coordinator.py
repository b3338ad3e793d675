"""Tests for the sync coordinator: triggers, queue processor and lifecycle."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from bisyncd.core.config import DaemonConfig
from bisyncd.core.errors import (
    DirectoryBusyError,
    DirectoryNotFoundError,
    InvalidDirectoryError,
    NotRunningError,
    OrchestratorError,
    RemoteConfigError,
    UnknownPatternError,
)
from bisyncd.core.types import SyncState
from bisyncd.sync.coordinator import SyncCoordinator
from bisyncd.sync.excludes import ExcludeRules
from bisyncd.sync.registry import DirectoryRegistry
from bisyncd.sync.types import OrchestratorState


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll until predicate is true or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_coordinator(
    rclone: Any,
    janitor: Any,
    registry: DirectoryRegistry,
    excludes: ExcludeRules,
) -> Generator[Callable[[DaemonConfig], SyncCoordinator], None, None]:
    created: list[SyncCoordinator] = []

    def factory(config: DaemonConfig) -> SyncCoordinator:
        coordinator = SyncCoordinator(
            config, registry=registry, rclone=rclone, janitor=janitor, excludes=excludes
        )
        created.append(coordinator)
        return coordinator

    yield factory

    for event in rclone.blockers.values():
        event.set()
    for coordinator in created:
        coordinator.stop(timeout=5, force=True)


@pytest.fixture
def coordinator(
    make_coordinator: Callable[[DaemonConfig], SyncCoordinator], config: DaemonConfig
) -> SyncCoordinator:
    return make_coordinator(config)


@pytest.fixture
def d1(sync_dirs: tuple[Path, Path]) -> str:
    return str(sync_dirs[0].resolve())


@pytest.fixture
def d2(sync_dirs: tuple[Path, Path]) -> str:
    return str(sync_dirs[1].resolve())


class TestLifecycle:
    """Tests for start/stop."""

    def test_start_registers_and_enqueues(
        self, coordinator: SyncCoordinator, rclone: Any, d1: str, d2: str
    ) -> None:
        """Start should verify the remote, register directories and queue them."""
        coordinator.start()

        assert coordinator.state is OrchestratorState.RUNNING
        assert rclone.calls[0] == ("check_remote", "gdrive", False)
        assert coordinator.registry.paths() == [d1, d2]
        assert coordinator.registry.get(d1).remote_path == "gdrive:D1"
        assert coordinator.registry.get(d2).remote_path == "gdrive:Backup/D2"
        assert [op.directory for op in coordinator.queue.snapshot()] == [d1, d2]

    def test_remote_error_aborts_start(
        self, coordinator: SyncCoordinator, rclone: Any
    ) -> None:
        """A remote configuration error should leave nothing registered or running."""
        rclone.check_error = RemoteConfigError("rclone remote 'gdrive' is not configured")

        with pytest.raises(RemoteConfigError):
            coordinator.start()

        assert coordinator.state is OrchestratorState.STOPPED
        assert len(coordinator.registry) == 0
        assert len(coordinator.queue) == 0

    def test_uses_injected_collaborators(
        self,
        coordinator: SyncCoordinator,
        registry: DirectoryRegistry,
        rclone: Any,
        d1: str,
    ) -> None:
        """An empty injected registry should be kept, not replaced."""
        assert coordinator.registry is registry

        coordinator.start()

        assert registry.paths() == coordinator.registry.paths()
        assert d1 in registry
        assert rclone.calls[0][0] == "check_remote"

    def test_start_twice_raises(self, coordinator: SyncCoordinator) -> None:
        coordinator.start()
        with pytest.raises(OrchestratorError):
            coordinator.start()

    def test_missing_configured_directory_skipped(
        self,
        make_coordinator: Callable[[DaemonConfig], SyncCoordinator],
        tmp_path: Path,
        d1: str,
    ) -> None:
        """Configured directories that do not exist should be skipped."""
        config = DaemonConfig.from_dict(
            {
                "sync_interval": 3600,
                "queue_interval": 3600,
                "directories": [d1, str(tmp_path / "missing")],
            }
        )
        coordinator = make_coordinator(config)

        coordinator.start()

        assert coordinator.registry.paths() == [d1]

    def test_defaults_used_when_unconfigured(
        self,
        make_coordinator: Callable[[DaemonConfig], SyncCoordinator],
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Without configured directories, existing default directories are used."""
        home = tmp_path / "home"
        (home / "Documents").mkdir(parents=True)
        (home / ".config").mkdir()
        monkeypatch.setattr(Path, "home", lambda: home)
        coordinator = make_coordinator(
            DaemonConfig(sync_interval=3600, queue_interval=3600)
        )

        coordinator.start()

        remotes = sorted(d.remote_path for d in coordinator.registry.all_directories())
        assert remotes == ["gdrive:.config", "gdrive:Documents"]

    def test_stop_closes_queue(self, coordinator: SyncCoordinator, d1: str) -> None:
        """After stop, triggers should no longer queue anything."""
        coordinator.start()
        assert coordinator.stop() is True

        assert coordinator.state is OrchestratorState.STOPPED
        assert len(coordinator.queue) == 0
        assert coordinator.enqueue(d1) is False
        assert coordinator.process_queue() is None

    def test_stop_waits_for_running_sync(
        self, coordinator: SyncCoordinator, rclone: Any, d1: str
    ) -> None:
        """Stop should report a sync that outlives the timeout."""
        rclone.blockers[d1] = threading.Event()
        coordinator.start()
        coordinator.process_queue()

        assert coordinator.stop(timeout=0.1) is False
        rclone.blockers[d1].set()
        assert coordinator.join_active(5) is True
        assert coordinator.registry.status_of(d1).state == SyncState.IDLE

    def test_restart_after_stop(self, coordinator: SyncCoordinator, d1: str, d2: str) -> None:
        coordinator.start()
        coordinator.stop()
        coordinator.start()

        assert coordinator.is_running
        assert len(coordinator.queue) == 2


class TestQueueProcessing:
    """Tests for process_queue() and the per-directory gate."""

    def test_oldest_first(self, coordinator: SyncCoordinator, d1: str, d2: str) -> None:
        coordinator.start()

        first = coordinator.process_queue()
        second = coordinator.process_queue()

        assert first is not None and first.directory == d1
        assert second is not None and second.directory == d2

    def test_queue_idempotence(self, coordinator: SyncCoordinator, d1: str) -> None:
        """Re-enqueuing a queued directory should not duplicate it."""
        coordinator.start()
        for _ in range(10):
            coordinator.enqueue(d1)
        coordinator.sync_all()

        directories = [op.directory for op in coordinator.queue.snapshot()]
        assert directories.count(d1) == 1
        assert len(directories) == 2

    def test_exclusivity_under_enqueue_flood(
        self, coordinator: SyncCoordinator, rclone: Any, d1: str, d2: str
    ) -> None:
        """A syncing directory should never be dispatched twice."""
        rclone.blockers[d1] = threading.Event()
        coordinator.start()

        assert coordinator.process_queue().directory == d1  # type: ignore[union-attr]
        assert wait_until(lambda: len(rclone.bisync_calls(d1)) == 1)

        for _ in range(20):
            coordinator.enqueue(d1)
            coordinator.enqueue_all()
        dispatched = [coordinator.process_queue() for _ in range(5)]

        assert [op.directory for op in dispatched if op is not None] == [d2]
        assert coordinator.queue.contains(d1)
        assert coordinator.registry.is_syncing(d1)

        rclone.blockers[d1].set()
        assert wait_until(lambda: not coordinator.registry.is_syncing(d1))
        assert wait_until(lambda: d1 not in coordinator.active_workers())

        again = coordinator.process_queue()
        assert again is not None and again.directory == d1
        assert coordinator.join_active(5)
        assert rclone.max_overlap[d1] == 1

    def test_unclassified_failure_does_not_block_others(
        self,
        coordinator: SyncCoordinator,
        rclone: Any,
        d1: str,
        d2: str,
        result_factory: Any,
        stderr_samples: dict[str, str],
    ) -> None:
        """D1 failing should not stop D2 from syncing on the next tick."""
        rclone.script(d1, result_factory(7, stderr_samples["other"]))
        coordinator.start()

        coordinator.process_queue()
        assert wait_until(lambda: coordinator.registry.status_of(d1).state == SyncState.ERROR)
        coordinator.process_queue()
        assert wait_until(lambda: coordinator.registry.status_of(d2).state == SyncState.IDLE)

        assert coordinator.registry.status_of(d2).last_sync_time is not None
        assert coordinator.registry.status_of(d1).last_error == stderr_samples["other"]

    def test_finished_worker_keeps_newer_worker_entry(
        self,
        coordinator: SyncCoordinator,
        registry: DirectoryRegistry,
        rclone: Any,
        monkeypatch: pytest.MonkeyPatch,
        d1: str,
    ) -> None:
        """A tick between mark_success and worker exit should stay tracked."""
        mark_success = registry.mark_success
        first_worker: list[threading.Thread] = []

        def mark_success_then_tick(path: str, synced: Any = None) -> None:
            mark_success(path, synced)
            if first_worker:
                return
            first_worker.append(threading.current_thread())
            rclone.blockers[d1] = threading.Event()
            coordinator.queue.clear()
            coordinator.enqueue(d1)
            assert coordinator.process_queue() is not None

        monkeypatch.setattr(registry, "mark_success", mark_success_then_tick)
        coordinator.start()

        coordinator.process_queue()
        assert wait_until(lambda: bool(first_worker) and not first_worker[0].is_alive())
        assert wait_until(lambda: len(rclone.bisync_calls(d1)) == 2)

        assert registry.is_syncing(d1)
        assert coordinator.active_workers() == [d1]
        assert coordinator.join_active(0.1) is False

        rclone.blockers[d1].set()
        assert coordinator.join_active(5) is True
        assert coordinator.active_workers() == []

    def test_resync_flag_propagation(
        self, coordinator: SyncCoordinator, rclone: Any, d1: str
    ) -> None:
        """First sync passes --resync; the next periodic sync does not."""
        coordinator.start()
        coordinator.process_queue()
        assert coordinator.join_active(5)

        coordinator.queue.clear()
        coordinator.enqueue_all()
        coordinator.process_queue()
        assert coordinator.join_active(5)

        assert [c[2] for c in rclone.bisync_calls(d1)] == [True, False]

    def test_concurrency_cap(
        self,
        make_coordinator: Callable[[DaemonConfig], SyncCoordinator],
        config: DaemonConfig,
        rclone: Any,
        d1: str,
        d2: str,
    ) -> None:
        """With max_concurrent=1 a second directory should wait."""
        config.max_concurrent = 1
        coordinator = make_coordinator(config)
        rclone.blockers[d1] = threading.Event()
        coordinator.start()

        assert coordinator.process_queue() is not None
        assert coordinator.process_queue() is None
        assert coordinator.queue.contains(d2)

        rclone.blockers[d1].set()
        assert wait_until(lambda: not coordinator.active_workers())
        op = coordinator.process_queue()
        assert op is not None and op.directory == d2

    def test_scenario_two_directories(
        self, coordinator: SyncCoordinator, rclone: Any, d1: str, d2: str
    ) -> None:
        """D1 blocks for five ticks while D2 completes on tick 2."""
        rclone.blockers[d1] = threading.Event()
        coordinator.start()
        registry = coordinator.registry

        for tick in range(1, 6):
            coordinator.process_queue()
            if tick == 2:
                assert wait_until(lambda: registry.status_of(d2).state == SyncState.IDLE)
                assert registry.status_of(d2).last_sync_time is not None
            if tick == 3:
                coordinator.enqueue(d1)
                coordinator.enqueue(d1)
            assert registry.status_of(d1).state == SyncState.SYNCING

        assert [op.directory for op in coordinator.queue.snapshot()].count(d1) == 1
        assert len(rclone.bisync_calls(d1)) == 1

        rclone.blockers[d1].set()
        assert wait_until(lambda: registry.status_of(d1).state == SyncState.IDLE)


class TestOperatorCommands:
    """Tests for operator-facing commands."""

    def test_register_directory_default_remote(
        self, coordinator: SyncCoordinator, tmp_path: Path
    ) -> None:
        photos = tmp_path / "Photos"
        photos.mkdir()

        directory = coordinator.register_directory(photos)

        assert directory.remote_path == "gdrive:Photos"
        assert directory.needs_initial_sync is True

    def test_register_directory_when_running_enqueues(
        self, coordinator: SyncCoordinator, tmp_path: Path
    ) -> None:
        coordinator.start()
        coordinator.queue.clear()
        photos = tmp_path / "Photos"
        photos.mkdir()

        directory = coordinator.register_directory(photos, "gdrive:Pics")

        assert coordinator.queue.contains(directory.local_path)

    def test_register_invalid_directory(
        self, coordinator: SyncCoordinator, tmp_path: Path
    ) -> None:
        a_file = tmp_path / "notes.txt"
        a_file.write_text("x")

        with pytest.raises(InvalidDirectoryError):
            coordinator.register_directory(a_file)
        with pytest.raises(InvalidDirectoryError):
            coordinator.register_directory(tmp_path / "missing")
        assert len(coordinator.registry) == 0

    def test_sync_requires_running(self, coordinator: SyncCoordinator, d1: str) -> None:
        with pytest.raises(NotRunningError):
            coordinator.sync_all()
        with pytest.raises(NotRunningError):
            coordinator.sync_directory(d1)
        with pytest.raises(NotRunningError):
            coordinator.resync_directory(d1)

    def test_sync_unknown_directory(self, coordinator: SyncCoordinator, tmp_path: Path) -> None:
        coordinator.start()
        with pytest.raises(DirectoryNotFoundError):
            coordinator.sync_directory(tmp_path / "unknown")

    def test_sync_directory_enqueues(self, coordinator: SyncCoordinator, d2: str) -> None:
        coordinator.start()
        coordinator.queue.clear()

        coordinator.sync_directory(d2)

        assert [op.directory for op in coordinator.queue.snapshot()] == [d2]

    def test_resync_directory(
        self, coordinator: SyncCoordinator, rclone: Any, janitor: Any, d1: str
    ) -> None:
        coordinator.start()

        outcome = coordinator.resync_directory(d1)

        assert outcome.success is True
        assert janitor.cache_clears == [d1]
        assert ("sync_deletions", d1, False) in rclone.calls
        assert coordinator.registry.status_of(d1).state == SyncState.IDLE

    def test_resync_busy_directory(
        self, coordinator: SyncCoordinator, rclone: Any, d1: str
    ) -> None:
        """Resync should be refused while the directory is syncing."""
        rclone.blockers[d1] = threading.Event()
        coordinator.start()
        coordinator.process_queue()

        with pytest.raises(DirectoryBusyError):
            coordinator.resync_directory(d1)

    def test_status(self, coordinator: SyncCoordinator, d1: str, d2: str) -> None:
        coordinator.start()

        status = coordinator.status()

        assert status.running is True
        assert status.remote_name == "gdrive"
        assert status.queue_size == 2
        assert status.active_syncs == 0
        assert [d.local_path for d in status.directories] == [d1, d2]
        assert status.failed == []

    def test_excludes(self, coordinator: SyncCoordinator) -> None:
        assert coordinator.add_exclude("*.iso") is True
        assert coordinator.add_exclude("*.iso") is False
        assert "*.iso" in coordinator.exclude_patterns()

        coordinator.remove_exclude("*.iso")
        assert "*.iso" not in coordinator.exclude_patterns()
        with pytest.raises(UnknownPatternError):
            coordinator.remove_exclude("*.iso")
