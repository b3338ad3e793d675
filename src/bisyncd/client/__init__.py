"""HTTP client for a running bisyncd daemon."""

from bisyncd.client.api import (
    APIError,
    ConflictError,
    ControlClient,
    DaemonStatus,
    DaemonUnavailableError,
    DirectoryInfo,
    NotFoundError,
    ResyncResult,
)

__all__ = [
    "APIError",
    "ConflictError",
    "ControlClient",
    "DaemonStatus",
    "DaemonUnavailableError",
    "DirectoryInfo",
    "NotFoundError",
    "ResyncResult",
]
