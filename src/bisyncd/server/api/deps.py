"""FastAPI dependencies and error mapping for API routes."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from bisyncd.core.errors import (
    BisyncdError,
    DirectoryBusyError,
    DirectoryNotFoundError,
    OperatorError,
    OrchestratorError,
    RemoteConfigError,
    UnknownPatternError,
)
from bisyncd.sync.coordinator import SyncCoordinator


def get_coordinator(request: Request) -> SyncCoordinator:
    """Get the sync coordinator from app state."""
    coordinator: SyncCoordinator = request.app.state.coordinator
    return coordinator


def http_error(error: BisyncdError) -> HTTPException:
    """Map a daemon error to an HTTP error.

    Unknown directories/patterns are 404, busy directories and lifecycle
    conflicts are 409, other operator errors are 400 and an unusable remote
    is 503.
    """
    if isinstance(error, (DirectoryNotFoundError, UnknownPatternError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (DirectoryBusyError, OrchestratorError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, OperatorError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, RemoteConfigError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))
