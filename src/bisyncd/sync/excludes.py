"""Exclude rules passed to every rclone invocation.

This module provides:
- DEFAULT_EXCLUDE_PATTERNS: rclone filter globs excluded from every sync
- ExcludeRules: Thread-safe ordered set of patterns
"""

from __future__ import annotations

import fnmatch
import logging
import threading
from pathlib import Path

from bisyncd.core.errors import OperatorError, UnknownPatternError

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATTERNS = [
    # Node.js / JavaScript / TypeScript
    "**/node_modules/**",
    "**/.npm/**",
    "**/.yarn/**",
    "**/.pnpm/**",
    "**/bower_components/**",
    "**/.turbo/**",
    "**/.vercel/**",
    "**/dist/**",
    "**/build/**",
    "**/.next/**",
    "**/.nuxt/**",
    "**/out/**",
    "**/.output/**",
    "**/.cache/**",
    "**/.parcel-cache/**",
    "**/coverage/**",
    "**/.nyc_output/**",
    # Python
    "**/.venv/**",
    "**/venv/**",
    "**/__pycache__/**",
    "**/*.pyc",
    "**/*.pyo",
    "**/*.pyd",
    "**/.pytest_cache/**",
    "**/.mypy_cache/**",
    "**/.tox/**",
    "**/htmlcov/**",
    # Rust / Go / Java
    "**/target/**",
    "**/*.rs.bk",
    "**/vendor/**",
    "**/.gradle/**",
    # Ruby
    "**/.bundle/**",
    # Version control
    "**/.git/**",
    "**/.svn/**",
    "**/.hg/**",
    # Editors
    "**/.vscode/**",
    "**/.idea/**",
    "**/*.swp",
    "**/*.swo",
    "**/*~",
    # OS files
    "**/.DS_Store",
    "**/Thumbs.db",
    "**/.Trash-*/**",
    ".local/share/Trash/**",
    # Temporary files
    "**/*.tmp",
    "**/*.temp",
    "**/*.log",
    "**/tmp/**",
    "**/temp/**",
    # Browser caches
    ".mozilla/firefox/*/cache2/**",
    ".cache/google-chrome/**",
    ".cache/chromium/**",
    ".cache/mozilla/**",
    # Environment and secrets
    "**/.env",
    "**/.env.local",
    "**/.env.*.local",
    # Databases
    "**/*.sqlite",
    "**/*.db",
    # Large game caches
    ".local/share/Steam/**",
    ".steam/**",
    # System cache
    ".cache/**",
]


class ExcludeRules:
    """Ordered, duplicate-free set of rclone exclude globs."""

    def __init__(self, patterns: list[str] | None = None, include_defaults: bool = True) -> None:
        """Initialize with patterns.

        Args:
            patterns: Extra patterns appended after the defaults.
            include_defaults: Start from DEFAULT_EXCLUDE_PATTERNS.
        """
        self._lock = threading.Lock()
        self._patterns: list[str] = []
        for pattern in (DEFAULT_EXCLUDE_PATTERNS if include_defaults else []) + (patterns or []):
            if pattern not in self._patterns:
                self._patterns.append(pattern)

    def patterns(self) -> list[str]:
        """Get a copy of the current patterns."""
        with self._lock:
            return list(self._patterns)

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)

    def __contains__(self, pattern: object) -> bool:
        with self._lock:
            return pattern in self._patterns

    def add(self, pattern: str) -> bool:
        """Add an exclude pattern.

        Returns:
            True if added, False if it was already present.

        Raises:
            OperatorError: If the pattern is empty.
        """
        pattern = pattern.strip()
        if not pattern:
            raise OperatorError("Exclude pattern must not be empty")
        with self._lock:
            if pattern in self._patterns:
                return False
            self._patterns.append(pattern)
        logger.info("Added exclude pattern: %s", pattern)
        return True

    def remove(self, pattern: str) -> None:
        """Remove an exclude pattern.

        Raises:
            UnknownPatternError: If the pattern is not in the set.
        """
        with self._lock:
            if pattern not in self._patterns:
                raise UnknownPatternError(pattern)
            self._patterns.remove(pattern)
        logger.info("Removed exclude pattern: %s", pattern)

    def load_from_file(self, path: Path) -> int:
        """Load patterns from a file with one pattern per line.

        Blank lines and ``#`` comments are skipped.

        Returns:
            Number of patterns added.
        """
        added = 0
        if not path.exists():
            logger.debug("Exclude file %s does not exist", path)
            return added
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and self.add(line):
                    added += 1
        return added

    def to_args(self) -> list[str]:
        """Build rclone ``--exclude`` arguments."""
        args: list[str] = []
        for pattern in self.patterns():
            args.extend(["--exclude", pattern])
        return args

    def matches(self, rel_path: str) -> bool:
        """Check whether a path relative to a sync root is excluded.

        Approximates rclone glob semantics with fnmatch: a leading ``**/``
        also matches at the root.
        """
        rel_path = rel_path.replace("\\", "/").lstrip("/")
        for pattern in self.patterns():
            if fnmatch.fnmatch(rel_path, pattern):
                return True
            if pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:]):
                return True
        return False
