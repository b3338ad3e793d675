"""Core module - Shared configuration, errors, and types."""

from bisyncd.core.config import (
    DaemonConfig,
    DirectoryConfig,
    get_config_dir,
    get_config_file,
    load_config,
    load_daemon_config,
    save_config,
)
from bisyncd.core.errors import (
    BisyncdError,
    CommandError,
    ConfigError,
    DirectoryBusyError,
    DirectoryNotFoundError,
    InvalidDirectoryError,
    NotRunningError,
    OperatorError,
    OrchestratorError,
    RemoteConfigError,
    SyncError,
    UnknownPatternError,
)
from bisyncd.core.types import SyncState

__all__ = [
    # Config
    "DaemonConfig",
    "DirectoryConfig",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "load_daemon_config",
    "save_config",
    # Errors
    "BisyncdError",
    "CommandError",
    "ConfigError",
    "DirectoryBusyError",
    "DirectoryNotFoundError",
    "InvalidDirectoryError",
    "NotRunningError",
    "OperatorError",
    "OrchestratorError",
    "RemoteConfigError",
    "SyncError",
    "UnknownPatternError",
    # Types
    "SyncState",
]
