"""Pydantic schemas for control API request/response models."""

from __future__ import annotations

from pydantic import BaseModel

from bisyncd.sync.types import DirectoryStatus, OrchestratorStatus, SyncOutcome

# === Status schemas ===


class DirectoryResponse(BaseModel):
    """One directory's state in responses."""

    local_path: str
    remote_path: str
    state: str
    needs_initial_sync: bool
    last_sync_time: str | None
    last_error: str | None


class StatusResponse(BaseModel):
    """Orchestrator status."""

    running: bool
    remote_name: str
    sync_interval: float
    queue_interval: float
    queue_size: int
    active_syncs: int
    directories: list[DirectoryResponse]


# === Lifecycle schemas ===


class StopRequest(BaseModel):
    """Request body for stopping the orchestrator."""

    force: bool = False


class LifecycleResponse(BaseModel):
    """Response for start/stop."""

    running: bool
    message: str


# === Directory schemas ===


class DirectoryAddRequest(BaseModel):
    """Request body for registering a directory."""

    local_path: str
    remote_path: str | None = None


class SyncRequest(BaseModel):
    """Request body for a manual sync; no path means every directory."""

    path: str | None = None


class SyncResponse(BaseModel):
    """Response for a manual sync."""

    queued: int
    queue_size: int


class ResyncRequest(BaseModel):
    """Request body for a forced resync."""

    path: str


class ResyncResponse(BaseModel):
    """Result of a forced resync."""

    directory: str
    success: bool
    attempts: int
    error: str | None


# === Exclude schemas ===


class ExcludeRequest(BaseModel):
    """Request body for adding or removing an exclude pattern."""

    pattern: str


class ExcludesResponse(BaseModel):
    """Current exclude patterns."""

    patterns: list[str]


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def directory_to_response(status: DirectoryStatus) -> DirectoryResponse:
    """Convert a DirectoryStatus snapshot to its response model."""
    return DirectoryResponse(**status.to_dict())


def status_to_response(status: OrchestratorStatus) -> StatusResponse:
    """Convert an OrchestratorStatus to its response model."""
    return StatusResponse(
        running=status.running,
        remote_name=status.remote_name,
        sync_interval=status.sync_interval,
        queue_interval=status.queue_interval,
        queue_size=status.queue_size,
        active_syncs=status.active_syncs,
        directories=[directory_to_response(d) for d in status.directories],
    )


def outcome_to_response(outcome: SyncOutcome) -> ResyncResponse:
    return ResyncResponse(
        directory=outcome.directory,
        success=outcome.success,
        attempts=outcome.attempts,
        error=outcome.error,
    )
