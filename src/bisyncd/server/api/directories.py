"""Directory registration and manual sync API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from bisyncd.core.errors import BisyncdError
from bisyncd.server.api.deps import get_coordinator, http_error
from bisyncd.server.schemas import (
    DirectoryAddRequest,
    DirectoryResponse,
    ResyncRequest,
    ResyncResponse,
    SyncRequest,
    SyncResponse,
    directory_to_response,
    outcome_to_response,
)
from bisyncd.sync.coordinator import SyncCoordinator

router = APIRouter(prefix="/api", tags=["directories"])


@router.get("/directories", response_model=list[DirectoryResponse])
def list_directories(
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> list[DirectoryResponse]:
    """List registered directories."""
    return [directory_to_response(d) for d in coordinator.registry.statuses()]


@router.post(
    "/directories",
    response_model=DirectoryResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_directory(
    request: DirectoryAddRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> DirectoryResponse:
    """Register a local directory."""
    try:
        directory = coordinator.register_directory(request.local_path, request.remote_path)
    except BisyncdError as e:
        raise http_error(e) from e
    return directory_to_response(coordinator.registry.status_of(directory.local_path))


@router.post("/sync", response_model=SyncResponse)
def sync(
    request: SyncRequest | None = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> SyncResponse:
    """Queue one directory, or every directory, for sync now."""
    try:
        if request is not None and request.path:
            coordinator.sync_directory(request.path)
            queued = 1
        else:
            queued = coordinator.sync_all()
    except BisyncdError as e:
        raise http_error(e) from e
    return SyncResponse(queued=queued, queue_size=len(coordinator.queue))


@router.post("/resync", response_model=ResyncResponse)
def resync(
    request: ResyncRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> ResyncResponse:
    """Rebuild a directory's sync state from scratch (blocks until done)."""
    try:
        outcome = coordinator.resync_directory(request.path)
    except BisyncdError as e:
        raise http_error(e) from e
    return outcome_to_response(outcome)
