"""Lock and cache cleanup for rclone bisync state files.

rclone keeps a lock file and prior-run listings per (local, remote) pair in
its bisync work directory, named after a sanitized session name:

    ~/.cache/rclone/bisync/local__home_me_Documents..gdrive_Documents.lck
    ~/.cache/rclone/bisync/local__home_me_Documents..gdrive_Documents.path1.lst
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lck"


def bisync_workdir() -> Path:
    """Get rclone's bisync work directory.

    Returns:
        $XDG_CACHE_HOME/rclone/bisync, or ~/.cache/rclone/bisync.
    """
    cache_home = os.environ.get("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    return base / "rclone" / "bisync"


def session_name(local_path: str, remote_path: str) -> str:
    """Derive rclone's session name for a directory pair."""
    sanitized_local = local_path.replace("/", "_")
    sanitized_remote = remote_path.replace(":", "_").replace("/", "_")
    return f"local_{sanitized_local}..{sanitized_remote}"


class LockJanitor:
    """Removes rclone bisync lock and cache artifacts for a directory pair."""

    def __init__(self, workdir: Path | None = None) -> None:
        """Initialize the janitor.

        Args:
            workdir: bisync work directory (default: bisync_workdir()).
        """
        self._workdir = workdir

    @property
    def workdir(self) -> Path:
        return self._workdir or bisync_workdir()

    def lock_path(self, local_path: str, remote_path: str) -> Path:
        return self.workdir / (session_name(local_path, remote_path) + LOCK_SUFFIX)

    def cache_prefix(self, local_path: str, remote_path: str) -> str:
        return session_name(local_path, remote_path)

    def clear_lock(self, local_path: str, remote_path: str) -> bool:
        """Delete the lock file for a pair if present.

        Returns:
            True if a lock file was removed, False if there was none.
        """
        lock_file = self.lock_path(local_path, remote_path)
        try:
            lock_file.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not clear lock file %s: %s", lock_file, e)
            return False
        logger.info("Cleaned up stale lock file for %s", local_path)
        return True

    def clear_cache(self, local_path: str, remote_path: str) -> int:
        """Delete every bisync state file for a pair.

        Returns:
            Number of files removed.
        """
        workdir = self.workdir
        if not workdir.is_dir():
            return 0

        prefix = self.cache_prefix(local_path, remote_path)
        cleared = 0
        for entry in workdir.iterdir():
            if not entry.name.startswith(prefix) or not entry.is_file():
                continue
            try:
                entry.unlink()
            except OSError as e:
                logger.debug("Could not remove cache file %s: %s", entry, e)
                continue
            cleared += 1
            logger.debug("Removed cache file: %s", entry.name)

        if cleared:
            logger.info("Cleared %d bisync cache file(s) for %s", cleared, local_path)
        return cleared
