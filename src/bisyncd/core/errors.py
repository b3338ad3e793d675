"""Exception hierarchy for bisyncd.

Errors fall into four groups:
- Recoverable sync failures (stale lock, missing remote, missing cache) never
  leave the executor and have no exception type.
- Persistent sync failures are recorded per directory, not raised.
- Configuration/connectivity errors (ConfigError, RemoteConfigError) abort
  orchestrator startup.
- Operator errors (OperatorError and subclasses) reject a command without
  mutating any state.
"""

from __future__ import annotations


class BisyncdError(Exception):
    """Base exception for bisyncd."""


class ConfigError(BisyncdError):
    """Invalid daemon configuration."""


class SyncError(BisyncdError):
    """Base exception for sync errors."""


class CommandError(SyncError):
    """An external command could not be started."""

    def __init__(self, command: str, message: str) -> None:
        self.command = command
        super().__init__(f"{command}: {message}")


class RemoteConfigError(SyncError):
    """rclone is missing, or the remote is not configured or unreachable."""


class OrchestratorError(BisyncdError):
    """Invalid orchestrator lifecycle operation."""


class NotRunningError(OrchestratorError):
    """Operation requires a running orchestrator."""

    def __init__(self) -> None:
        super().__init__("Sync is not running. Start it first.")


class OperatorError(BisyncdError):
    """A command issued by the operator was rejected."""


class DirectoryNotFoundError(OperatorError):
    """The directory is not registered."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Directory not found: {path}")


class InvalidDirectoryError(OperatorError):
    """The local path cannot be registered."""


class DirectoryBusyError(OperatorError):
    """The directory is currently syncing."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Directory is already syncing: {path}")


class UnknownPatternError(OperatorError):
    """The exclude pattern is not in the rule set."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        super().__init__(f"Exclude pattern not found: {pattern}")
