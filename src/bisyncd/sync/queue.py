"""Deduplicating sync queue.

This module provides:
- SyncQueue: Thread-safe set of pending sync requests keyed by directory

There is at most one pending SyncOperation per directory. Re-enqueuing a
queued directory refreshes its timestamp instead of adding a duplicate.
Enqueuing is allowed while the directory is syncing: the entry stays queued
and is processed after the in-flight sync finishes, so no trigger is lost.

Entries are dequeued oldest first, skipping directories the caller reports
as not ready (currently syncing).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from bisyncd.sync.types import SyncOperation

logger = logging.getLogger(__name__)


class SyncQueue:
    """Thread-safe, timestamp-ordered set of pending sync operations."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._operations: dict[str, SyncOperation] = {}  # directory -> operation
        self._closed = False

    def enqueue(self, directory: str) -> bool:
        """Add a directory, or refresh its timestamp if already queued.

        Args:
            directory: Canonical local path.

        Returns:
            True if the directory is now queued, False if the queue is closed.
        """
        with self._lock:
            if self._closed:
                logger.debug("Queue closed, ignoring sync request for %s", directory)
                return False

            existing = self._operations.get(directory)
            if existing is not None:
                existing.enqueue_time = time.monotonic()
                logger.debug("Refreshed queued sync for %s", directory)
            else:
                self._operations[directory] = SyncOperation.create(directory)
                logger.debug(
                    "Queued sync for %s (queue size: %d)", directory, len(self._operations)
                )
            return True

    def pop_next(self, is_ready: Callable[[str], bool] | None = None) -> SyncOperation | None:
        """Remove and return the oldest operation whose directory is ready.

        The readiness check runs under the queue lock, so a caller can use it
        to claim the directory atomically with the dequeue.

        Args:
            is_ready: Predicate on the directory path; entries it rejects stay
                queued. None accepts every entry.

        Returns:
            The dequeued operation, or None if nothing is ready.
        """
        with self._lock:
            for operation in sorted(self._operations.values()):
                if is_ready is None or is_ready(operation.directory):
                    del self._operations[operation.directory]
                    logger.debug(
                        "Dequeued %s (queue size: %d)", operation, len(self._operations)
                    )
                    return operation
            return None

    def remove(self, directory: str) -> SyncOperation | None:
        """Remove the pending operation for a directory, if any."""
        with self._lock:
            return self._operations.pop(directory, None)

    def contains(self, directory: str) -> bool:
        with self._lock:
            return directory in self._operations

    def snapshot(self) -> list[SyncOperation]:
        """Pending operations, oldest first (not removed)."""
        with self._lock:
            return sorted(self._operations.values())

    def clear(self) -> int:
        """Remove all pending operations.

        Returns:
            Number of operations removed.
        """
        with self._lock:
            count = len(self._operations)
            self._operations.clear()
            if count:
                logger.info("Cleared %d pending syncs", count)
            return count

    def close(self) -> None:
        """Stop accepting new operations. Pending ones are kept."""
        with self._lock:
            self._closed = True
            logger.debug("Sync queue closed")

    def reopen(self) -> None:
        """Accept new operations again."""
        with self._lock:
            self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def __bool__(self) -> bool:
        with self._lock:
            return bool(self._operations)
