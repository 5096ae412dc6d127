"""Entity state synchronization for tandem."""

from __future__ import annotations

from .models import (
    PatchSource,
    Resolution,
    SyncableState,
    SyncConflict,
    SyncEvent,
    SyncMetrics,
    SyncPatch,
    SyncPriority,
    SyncResult,
    SyncStrategy,
    entity_key,
)
from .errors import (
    MergeUnavailableError,
    PatchApplicationError,
    SyncError,
    SyncInProgressError,
    TransportError,
)
from .patching import apply_sync_patch, compute_checksum, diff
from .engine import DEFAULT_PRIORITIES, SyncEngine
from .settings import SyncSettings
from .conflict import ConflictOutcome, ConflictResolver, ConflictStrategy
from .report import render_sync_report

__all__ = [
    # Models
    "PatchSource",
    "Resolution",
    "SyncableState",
    "SyncConflict",
    "SyncEvent",
    "SyncMetrics",
    "SyncPatch",
    "SyncPriority",
    "SyncResult",
    "SyncStrategy",
    "entity_key",
    # Errors
    "MergeUnavailableError",
    "PatchApplicationError",
    "SyncError",
    "SyncInProgressError",
    "TransportError",
    # Patching
    "apply_sync_patch",
    "compute_checksum",
    "diff",
    # Engine
    "DEFAULT_PRIORITIES",
    "SyncEngine",
    "SyncSettings",
    # Conflict
    "ConflictOutcome",
    "ConflictResolver",
    "ConflictStrategy",
    # Reporting
    "render_sync_report",
]
