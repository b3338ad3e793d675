"""File system watcher that enqueues directories on local changes.

This module provides:
- DebouncedChangeHandler: Coalesces events under one sync root
- ChangeWatcher: One watchdog observer watching every registered directory

A burst of changes under a directory produces a single enqueue once the
directory has been quiet for the debounce delay. The watcher only enqueues;
the queue processor still applies the per-directory gate.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver, ObservedWatch

    from bisyncd.sync.excludes import ExcludeRules

logger = logging.getLogger(__name__)


class DebouncedChangeHandler(FileSystemEventHandler):
    """Event handler that reports a sync root once changes settle."""

    def __init__(
        self,
        base_path: Path,
        on_change: Callable[[str], object],
        excludes: ExcludeRules | None = None,
        debounce_delay: float = 2.0,
    ) -> None:
        """Initialize the debounced handler.

        Args:
            base_path: Sync root being watched.
            on_change: Called with the sync root path after the quiet period.
            excludes: Rules for paths whose changes are ignored.
            debounce_delay: Quiet period in seconds.
        """
        super().__init__()
        self._base_path = base_path
        self._on_change = on_change
        self._excludes = excludes
        self._debounce_delay = debounce_delay

        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def pending(self) -> bool:
        """Check if a change is waiting for the quiet period to end."""
        with self._lock:
            return self._timer is not None

    def _is_excluded(self, path: Path) -> bool:
        if self._excludes is None:
            return False
        try:
            rel_path = path.relative_to(self._base_path)
        except ValueError:
            return True
        return self._excludes.matches(str(rel_path))

    def _schedule_flush(self) -> None:
        """Restart the quiet-period timer. Caller holds the lock."""
        if self._timer:
            self._timer.cancel()

        self._timer = threading.Timer(self._debounce_delay, self._flush)
        self._timer.daemon = True
        self._timer.start()

    def _flush(self) -> None:
        with self._lock:
            if self._timer is None:
                return
            self._timer = None

        logger.debug("Change detected in %s", self._base_path)
        try:
            self._on_change(str(self._base_path))
        except Exception:
            logger.exception("Failed to handle change in %s", self._base_path)

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle any created/modified/deleted/moved event."""
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return

        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)

        for raw in paths:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="replace")
            if not self._is_excluded(Path(raw)):
                break
        else:
            return

        with self._lock:
            self._schedule_flush()

    def stop(self) -> None:
        """Cancel a pending flush."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None


class ChangeWatcher:
    """Watches registered directories and enqueues them on change.

    Usage:
        watcher = ChangeWatcher(queue.enqueue, excludes, debounce_delay=2.0)
        watcher.watch("/home/me/Documents")
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        on_change: Callable[[str], object],
        excludes: ExcludeRules | None = None,
        debounce_delay: float = 2.0,
    ) -> None:
        """Initialize the watcher.

        Args:
            on_change: Called with a directory path after it changed.
            excludes: Rules for paths whose changes are ignored.
            debounce_delay: Quiet period in seconds.
        """
        self._on_change = on_change
        self._excludes = excludes
        self._debounce_delay = debounce_delay

        self._lock = threading.Lock()
        self._handlers: dict[str, DebouncedChangeHandler] = {}
        self._watches: dict[str, ObservedWatch] = {}
        self._observer: BaseObserver | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def watched_paths(self) -> list[str]:
        with self._lock:
            return list(self._handlers)

    def watch(self, directory: str) -> None:
        """Add a directory. Watching starts now if the watcher is running."""
        with self._lock:
            if directory in self._handlers:
                return
            self._handlers[directory] = DebouncedChangeHandler(
                base_path=Path(directory),
                on_change=self._on_change,
                excludes=self._excludes,
                debounce_delay=self._debounce_delay,
            )
            if self._observer is not None:
                self._schedule(directory)

    def _schedule(self, directory: str) -> None:
        """Attach a directory to the observer. Caller holds the lock."""
        assert self._observer is not None
        try:
            self._watches[directory] = self._observer.schedule(
                self._handlers[directory], directory, recursive=True
            )
        except OSError as e:
            logger.warning("Cannot watch %s: %s", directory, e)

    def start(self) -> None:
        """Start watching every added directory."""
        with self._lock:
            if self._observer is not None:
                return
            self._observer = Observer()
            for directory in self._handlers:
                self._schedule(directory)
            self._observer.start()
        logger.info("Watching %d directories for changes", len(self._handlers))

    def stop(self) -> None:
        """Stop watching and drop pending changes."""
        with self._lock:
            observer = self._observer
            self._observer = None
            self._watches.clear()
            for handler in self._handlers.values():
                handler.stop()
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5.0)
        logger.info("Change watcher stopped")

    def __enter__(self) -> ChangeWatcher:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
