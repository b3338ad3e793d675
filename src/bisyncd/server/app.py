"""FastAPI application for the bisyncd control API.

This module creates and configures the FastAPI application serving the
operator commands (status, start/stop, directories, manual sync, resync,
exclude patterns) for one SyncCoordinator.

Usage:
    bisyncd run
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from bisyncd import __version__
from bisyncd.server.api.router import router as api_router
from bisyncd.sync.coordinator import SyncCoordinator

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure logging to stdout and, optionally, a file.

    Args:
        level: Logging level name for the bisyncd loggers.
        log_file: Optional path to a log file.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    # Root logger for bisyncd
    root_logger = logging.getLogger("bisyncd")
    root_logger.setLevel(level)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_file is None:
        return

    # File handler
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


def create_app(coordinator: SyncCoordinator) -> FastAPI:
    """Create the FastAPI application for a coordinator.

    Args:
        coordinator: Coordinator the routes operate on.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        config = coordinator.config
        logger.info("=" * 60)
        logger.info("bisyncd control API starting")
        logger.info("=" * 60)
        logger.info("  Remote:      %s", config.remote_name)
        logger.info("  Directories: %d", len(coordinator.registry))
        logger.info("  Interval:    %gs", config.sync_interval)
        logger.info("=" * 60)

        yield

        logger.info("bisyncd control API shutting down")

    application = FastAPI(
        title="bisyncd",
        description="Control API for the rclone bisync daemon",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.coordinator = coordinator

    application.include_router(api_router)

    return application
