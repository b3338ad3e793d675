"""Shared types for bisyncd.

This module defines types and enums used by the orchestrator, the control
API and the CLI.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """Sync state of a registered directory.

    Transition to SYNCING is the exclusive gate that keeps two sync
    invocations for the same directory from overlapping.
    """

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
