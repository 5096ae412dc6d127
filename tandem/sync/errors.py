"""Exceptions raised by the sync engine."""

from __future__ import annotations

from typing import Optional


class SyncError(RuntimeError):
    """Base class for synchronization failures."""


class TransportError(SyncError):
    """Raised by transport callbacks when patches cannot be sent or received."""


class PatchApplicationError(SyncError):
    """Raised when a patch's operations cannot be applied to an entity."""

    def __init__(self, message: str, patch_id: Optional[str] = None):
        super().__init__(message)
        self.patch_id = patch_id


class SyncInProgressError(SyncError):
    """Raised when perform_sync is entered while another run is in flight."""


class MergeUnavailableError(SyncError):
    """Raised when a merge resolution has no merge function to delegate to."""


__all__ = [
    "SyncError",
    "TransportError",
    "PatchApplicationError",
    "SyncInProgressError",
    "MergeUnavailableError",
]
