"""Registry of synced directories and their per-directory status.

One RLock guards both the directory map and the status fields, so the queue
processor's gate check and the executors' status updates never race.
Directories are add-only for the life of the process.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path

from bisyncd.core.errors import DirectoryNotFoundError
from bisyncd.core.types import SyncState
from bisyncd.sync.types import DirectoryStatus, SyncDirectory

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORY_NAMES = (
    "Documents",
    "Downloads",
    "Pictures",
    "Desktop",
    "Music",
    "Source",
    ".config",
)


def canonical_path(path: str | Path) -> str:
    """Canonicalize a local path: expand ``~``, make absolute, resolve links."""
    return str(Path(path).expanduser().resolve())


def default_directories(remote_name: str, home: Path | None = None) -> list[tuple[str, str]]:
    """Well-known user directories mapped onto the remote.

    Args:
        remote_name: rclone remote name.
        home: Home directory (default Path.home()).

    Returns:
        List of (local_path, remote_path) pairs.
    """
    home = home or Path.home()
    return [(str(home / name), f"{remote_name}:{name}") for name in DEFAULT_DIRECTORY_NAMES]


class _Entry:
    """Mutable per-directory record; only touched under the registry lock."""

    __slots__ = ("directory", "state", "last_sync_time", "last_error")

    def __init__(self, directory: SyncDirectory) -> None:
        self.directory = directory
        self.state = SyncState.IDLE
        self.last_sync_time: datetime | None = None
        self.last_error: str | None = None

    def snapshot(self) -> DirectoryStatus:
        return DirectoryStatus(
            local_path=self.directory.local_path,
            remote_path=self.directory.remote_path,
            state=self.state,
            needs_initial_sync=self.directory.needs_initial_sync,
            last_sync_time=self.last_sync_time,
            last_error=self.last_error,
        )


class DirectoryRegistry:
    """Thread-safe set of registered directories and their sync state."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def register(self, local_path: str | Path, remote_path: str) -> SyncDirectory:
        """Register a directory pair.

        Registering the same pair again is a no-op. Registering a known local
        path with a different remote replaces the remote and schedules a full
        resync; the current state is kept.

        Args:
            local_path: Local directory (``~`` allowed).
            remote_path: rclone remote path.

        Returns:
            The registered SyncDirectory.
        """
        key = canonical_path(local_path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                directory = SyncDirectory(local_path=key, remote_path=remote_path)
                self._entries[key] = _Entry(directory)
                logger.debug("Added directory: %s -> %s", key, remote_path)
                return directory

            if entry.directory.remote_path == remote_path:
                return entry.directory

            logger.info(
                "Re-registered %s: %s -> %s",
                key,
                entry.directory.remote_path,
                remote_path,
            )
            entry.directory = SyncDirectory(local_path=key, remote_path=remote_path)
            return entry.directory

    def _entry(self, path: str | Path) -> _Entry:
        key = canonical_path(path)
        entry = self._entries.get(key)
        if entry is None:
            raise DirectoryNotFoundError(str(path))
        return entry

    def get(self, path: str | Path) -> SyncDirectory:
        """Get a registered directory.

        Raises:
            DirectoryNotFoundError: If the path is not registered.
        """
        with self._lock:
            return self._entry(path).directory

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        with self._lock:
            return canonical_path(path) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def paths(self) -> list[str]:
        """Get all registered local paths in registration order."""
        with self._lock:
            return list(self._entries)

    def all_directories(self) -> list[SyncDirectory]:
        with self._lock:
            return [entry.directory for entry in self._entries.values()]

    def status_of(self, path: str | Path) -> DirectoryStatus:
        """Get a status snapshot for one directory.

        Raises:
            DirectoryNotFoundError: If the path is not registered.
        """
        with self._lock:
            return self._entry(path).snapshot()

    def statuses(self) -> list[DirectoryStatus]:
        with self._lock:
            return [entry.snapshot() for entry in self._entries.values()]

    def is_syncing(self, path: str | Path) -> bool:
        with self._lock:
            entry = self._entries.get(canonical_path(path))
            return entry is not None and entry.state == SyncState.SYNCING

    def active_count(self) -> int:
        """Number of directories currently syncing."""
        with self._lock:
            return sum(1 for e in self._entries.values() if e.state == SyncState.SYNCING)

    def try_begin_sync(self, path: str | Path) -> bool:
        """Atomically move a directory to SYNCING.

        This is the exclusivity gate: it fails when the directory is already
        syncing or is not registered.

        Returns:
            True if the caller now owns the directory's sync.
        """
        with self._lock:
            entry = self._entries.get(canonical_path(path))
            if entry is None or entry.state == SyncState.SYNCING:
                return False
            entry.state = SyncState.SYNCING
            return True

    def mark_success(self, path: str | Path, synced: SyncDirectory | None = None) -> None:
        """Record a successful sync: idle, timestamped, error cleared.

        Args:
            path: Local directory path.
            synced: The pair that was synced. If the directory was re-registered
                to another remote meanwhile, its initial-sync flag is kept.
        """
        with self._lock:
            entry = self._entry(path)
            if synced is None or entry.directory is synced:
                entry.directory.needs_initial_sync = False
            entry.state = SyncState.IDLE
            entry.last_sync_time = datetime.now()
            entry.last_error = None

    def mark_failure(self, path: str | Path, error: str) -> None:
        """Record a failed sync; needs_initial_sync is left unchanged."""
        with self._lock:
            entry = self._entry(path)
            entry.state = SyncState.ERROR
            entry.last_error = error

    def mark_needs_resync(self, path: str | Path) -> None:
        """Force the next sync of a directory to rebuild state from scratch."""
        with self._lock:
            self._entry(path).directory.needs_initial_sync = True
