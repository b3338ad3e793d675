"""Exclude pattern API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from bisyncd.core.errors import BisyncdError
from bisyncd.server.api.deps import get_coordinator, http_error
from bisyncd.server.schemas import ExcludeRequest, ExcludesResponse
from bisyncd.sync.coordinator import SyncCoordinator

router = APIRouter(prefix="/api/excludes", tags=["excludes"])


@router.get("", response_model=ExcludesResponse)
def list_excludes(coordinator: SyncCoordinator = Depends(get_coordinator)) -> ExcludesResponse:
    """List exclude patterns."""
    return ExcludesResponse(patterns=coordinator.exclude_patterns())


@router.post("", response_model=ExcludesResponse)
def add_exclude(
    request: ExcludeRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> ExcludesResponse:
    """Add an exclude pattern."""
    try:
        coordinator.add_exclude(request.pattern)
    except BisyncdError as e:
        raise http_error(e) from e
    return ExcludesResponse(patterns=coordinator.exclude_patterns())


@router.post("/remove", response_model=ExcludesResponse)
def remove_exclude(
    request: ExcludeRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> ExcludesResponse:
    """Remove an exclude pattern."""
    try:
        coordinator.remove_exclude(request.pattern)
    except BisyncdError as e:
        raise http_error(e) from e
    return ExcludesResponse(patterns=coordinator.exclude_patterns())
