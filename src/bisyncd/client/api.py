"""HTTP client for the bisyncd control API.

This module provides:
- ControlClient: One method per control API endpoint
- DaemonStatus, DirectoryInfo, ResyncResult: Parsed responses
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8765"


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DaemonUnavailableError(APIError):
    """The daemon is not reachable."""


class ConflictError(APIError):
    """The directory is busy, or the daemon is in the wrong lifecycle state."""


class NotFoundError(APIError):
    """Unknown directory or exclude pattern."""


@dataclass
class DirectoryInfo:
    """Directory state from the daemon."""

    local_path: str
    remote_path: str
    state: str
    needs_initial_sync: bool
    last_sync_time: datetime | None = None
    last_error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirectoryInfo:
        """Create from API response dictionary."""
        return cls(
            local_path=data["local_path"],
            remote_path=data["remote_path"],
            state=data["state"],
            needs_initial_sync=data["needs_initial_sync"],
            last_sync_time=(
                datetime.fromisoformat(data["last_sync_time"])
                if data.get("last_sync_time")
                else None
            ),
            last_error=data.get("last_error"),
        )


@dataclass
class DaemonStatus:
    """Orchestrator status from the daemon."""

    running: bool
    remote_name: str
    sync_interval: float
    queue_interval: float
    queue_size: int
    active_syncs: int
    directories: list[DirectoryInfo] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DaemonStatus:
        """Create from API response dictionary."""
        return cls(
            running=data["running"],
            remote_name=data["remote_name"],
            sync_interval=data["sync_interval"],
            queue_interval=data["queue_interval"],
            queue_size=data["queue_size"],
            active_syncs=data["active_syncs"],
            directories=[DirectoryInfo.from_dict(d) for d in data.get("directories", [])],
        )


@dataclass
class ResyncResult:
    """Result of a forced resync."""

    directory: str
    success: bool
    attempts: int
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResyncResult:
        return cls(
            directory=data["directory"],
            success=data["success"],
            attempts=data["attempts"],
            error=data.get("error"),
        )


class ControlClient:
    """HTTP client for a running bisyncd daemon."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the control client.

        Args:
            base_url: Base URL of the control API.
            timeout: Request timeout in seconds (resync waits without one).
        """
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self._base_url, timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> ControlClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise DaemonUnavailableError(
                f"Cannot reach bisyncd at {self._base_url}: {e}. Is the daemon running?"
            ) from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response
        try:
            detail = response.json().get("detail", "Unknown error")
        except ValueError:
            detail = response.text or "Unknown error"
        if response.status_code == 404:
            raise NotFoundError(detail, 404)
        if response.status_code == 409:
            raise ConflictError(detail, 409)
        raise APIError(detail, response.status_code)

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the daemon is reachable and healthy."""
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Status and lifecycle ===

    def status(self) -> DaemonStatus:
        """Get the orchestrator status."""
        response = self._request("GET", "/api/status")
        return DaemonStatus.from_dict(response.json())

    def start(self) -> str:
        """Start syncing.

        Raises:
            ConflictError: If already running.
            APIError: With status 503 if the remote is unusable.
        """
        response = self._request("POST", "/api/start")
        message: str = response.json()["message"]
        return message

    def stop(self, force: bool = False) -> str:
        """Stop syncing; force terminates running transfers."""
        response = self._request("POST", "/api/stop", json={"force": force}, timeout=None)
        message: str = response.json()["message"]
        return message

    # === Directories ===

    def list_directories(self) -> list[DirectoryInfo]:
        response = self._request("GET", "/api/directories")
        return [DirectoryInfo.from_dict(d) for d in response.json()]

    def add_directory(self, local_path: str, remote_path: str | None = None) -> DirectoryInfo:
        """Register a local directory with the daemon."""
        response = self._request(
            "POST",
            "/api/directories",
            json={"local_path": local_path, "remote_path": remote_path},
        )
        return DirectoryInfo.from_dict(response.json())

    def sync(self, path: str | None = None) -> int:
        """Queue one directory (or all) for sync.

        Returns:
            Number of directories queued.
        """
        response = self._request("POST", "/api/sync", json={"path": path})
        queued: int = response.json()["queued"]
        return queued

    def resync(self, path: str) -> ResyncResult:
        """Force a full resync of a directory and wait for it to finish."""
        response = self._request("POST", "/api/resync", json={"path": path}, timeout=None)
        return ResyncResult.from_dict(response.json())

    # === Excludes ===

    def list_excludes(self) -> list[str]:
        response = self._request("GET", "/api/excludes")
        patterns: list[str] = response.json()["patterns"]
        return patterns

    def add_exclude(self, pattern: str) -> list[str]:
        response = self._request("POST", "/api/excludes", json={"pattern": pattern})
        patterns: list[str] = response.json()["patterns"]
        return patterns

    def remove_exclude(self, pattern: str) -> list[str]:
        response = self._request("POST", "/api/excludes/remove", json={"pattern": pattern})
        patterns: list[str] = response.json()["patterns"]
        return patterns
