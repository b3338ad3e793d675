"""Status and lifecycle API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from bisyncd.core.errors import BisyncdError
from bisyncd.server.api.deps import get_coordinator, http_error
from bisyncd.server.schemas import (
    LifecycleResponse,
    StatusResponse,
    StopRequest,
    status_to_response,
)
from bisyncd.sync.coordinator import SyncCoordinator

router = APIRouter(prefix="/api", tags=["status"])


@router.get("/status", response_model=StatusResponse)
def get_status(coordinator: SyncCoordinator = Depends(get_coordinator)) -> StatusResponse:
    """Get per-directory sync state and the queue size."""
    return status_to_response(coordinator.status())


@router.post("/start", response_model=LifecycleResponse)
def start_sync(coordinator: SyncCoordinator = Depends(get_coordinator)) -> LifecycleResponse:
    """Start syncing."""
    try:
        coordinator.start()
    except BisyncdError as e:
        raise http_error(e) from e
    return LifecycleResponse(running=True, message="Sync started")


@router.post("/stop", response_model=LifecycleResponse)
def stop_sync(
    request: StopRequest | None = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> LifecycleResponse:
    """Stop syncing, optionally terminating running rclone processes."""
    force = request.force if request else False
    finished = coordinator.stop(force=force)
    message = "Sync stopped" if finished else "Sync stopped; some transfers are still finishing"
    return LifecycleResponse(running=False, message=message)
