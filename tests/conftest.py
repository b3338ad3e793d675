"""Shared fixtures for bisyncd tests.

FakeRclone scripts rclone results per directory so the executor and the
coordinator run without the real binary.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from bisyncd.core.config import DaemonConfig
from bisyncd.sync.excludes import ExcludeRules
from bisyncd.sync.janitor import LockJanitor
from bisyncd.sync.registry import DirectoryRegistry
from bisyncd.sync.shell import CommandResult

LOCK_STDERR = (
    "2025/01/01 10:00:00 ERROR : Bisync critical error: prior lock file found: "
    "/home/me/.cache/rclone/bisync/local__home_me_Documents..gdrive_Documents.lck"
)
REMOTE_MISSING_STDERR = (
    "2025/01/01 10:00:00 ERROR : error reading destination root directory: directory not found"
)
CACHE_MISSING_STDERR = (
    "2025/01/01 10:00:00 ERROR : Bisync critical error: cannot find prior Path1 or Path2 "
    "listings, likely due to critical error on prior run\n"
    "2025/01/01 10:00:00 ERROR : Bisync aborted. Must run --resync to recover."
)
QUOTA_STDERR = "2025/01/01 10:00:00 ERROR : googleapi: Error 403: quota exceeded"


def make_result(exit_code: int = 0, stderr: str = "", stdout: str = "") -> CommandResult:
    return CommandResult(command="rclone", exit_code=exit_code, stdout=stdout, stderr=stderr)


class FakeRclone:
    """Stand-in for the rclone adapter with scripted results."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, bool]] = []
        self.results: dict[str, list[CommandResult]] = {}
        self.mkdir_results: list[CommandResult] = []
        self.deletions_result: CommandResult | Exception = make_result()
        self.blockers: dict[str, threading.Event] = {}
        self.check_error: Exception | None = None
        self.events: list[str] | None = None

        self._lock = threading.Lock()
        self._running: dict[str, int] = {}
        self.max_overlap: dict[str, int] = {}

    def script(self, local: str, *results: CommandResult) -> None:
        self.results.setdefault(local, []).extend(results)

    def bisync_calls(self, local: str | None = None) -> list[tuple[str, str, bool]]:
        return [c for c in self.calls if c[0] == "bisync" and (local is None or c[1] == local)]

    def _record(self, entry: tuple[str, str, bool]) -> None:
        with self._lock:
            self.calls.append(entry)
        if self.events is not None:
            self.events.append(entry[0])

    def bisync(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
        resync: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        self._record(("bisync", local_path, resync))
        with self._lock:
            self._running[local_path] = self._running.get(local_path, 0) + 1
            self.max_overlap[local_path] = max(
                self.max_overlap.get(local_path, 0), self._running[local_path]
            )
        try:
            blocker = self.blockers.get(local_path)
            if blocker is not None:
                blocker.wait(10)
            with self._lock:
                scripted = self.results.get(local_path)
                if scripted:
                    return scripted.pop(0)
            return make_result()
        finally:
            with self._lock:
                self._running[local_path] -= 1

    def sync_deletions(
        self,
        local_path: str,
        remote_path: str,
        excludes: list[str],
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        self._record(("sync_deletions", local_path, False))
        if isinstance(self.deletions_result, Exception):
            raise self.deletions_result
        return self.deletions_result

    def mkdir(self, remote_path: str) -> CommandResult:
        self._record(("mkdir", remote_path, False))
        if self.mkdir_results:
            return self.mkdir_results.pop(0)
        return make_result()

    def check_remote(self, remote_name: str) -> None:
        self._record(("check_remote", remote_name, False))
        if self.check_error is not None:
            raise self.check_error


class RecordingJanitor(LockJanitor):
    """LockJanitor that records calls and optionally an event log."""

    def __init__(self, workdir: Path, events: list[str] | None = None) -> None:
        super().__init__(workdir)
        self.lock_clears: list[str] = []
        self.cache_clears: list[str] = []
        self.events = events

    def clear_lock(self, local_path: str, remote_path: str) -> bool:
        self.lock_clears.append(local_path)
        if self.events is not None:
            self.events.append("clear_lock")
        return super().clear_lock(local_path, remote_path)

    def clear_cache(self, local_path: str, remote_path: str) -> int:
        self.cache_clears.append(local_path)
        if self.events is not None:
            self.events.append("clear_cache")
        return super().clear_cache(local_path, remote_path)


@pytest.fixture
def rclone() -> FakeRclone:
    return FakeRclone()


@pytest.fixture
def janitor(tmp_path: Path) -> RecordingJanitor:
    workdir = tmp_path / "bisync"
    workdir.mkdir()
    return RecordingJanitor(workdir)


@pytest.fixture
def registry() -> DirectoryRegistry:
    return DirectoryRegistry()


@pytest.fixture
def excludes() -> ExcludeRules:
    return ExcludeRules(["secret/**"], include_defaults=False)


@pytest.fixture
def sync_dirs(tmp_path: Path) -> tuple[Path, Path]:
    """Two existing local directories D1 and D2."""
    d1 = tmp_path / "home" / "D1"
    d2 = tmp_path / "home" / "D2"
    d1.mkdir(parents=True)
    d2.mkdir(parents=True)
    return d1, d2


@pytest.fixture
def config(sync_dirs: tuple[Path, Path]) -> DaemonConfig:
    """Config with long intervals so tests drive ticks by hand."""
    d1, d2 = sync_dirs
    return DaemonConfig.from_dict(
        {
            "remote_name": "gdrive",
            "sync_interval": 3600,
            "queue_interval": 3600,
            "directories": [str(d1), f"{d2}=gdrive:Backup/D2"],
            "shutdown_timeout": 5,
        }
    )


@pytest.fixture
def result_factory() -> Callable[..., CommandResult]:
    return make_result


@pytest.fixture
def stderr_samples() -> dict[str, str]:
    return {
        "lock": LOCK_STDERR,
        "remote": REMOTE_MISSING_STDERR,
        "cache": CACHE_MISSING_STDERR,
        "other": QUOTA_STDERR,
    }

