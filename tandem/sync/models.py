"""Sync data structures shared by the engine, resolver and adapters."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncStrategy(str, Enum):
    """How urgently pending changes of an entity type should be pushed."""
    IMMEDIATE = "immediate"
    BATCH = "batch"
    LAZY = "lazy"


class PatchSource(str, Enum):
    """Which replica produced a patch."""
    LOCAL = "local"
    REMOTE = "remote"


class Resolution(str, Enum):
    """Ways a recorded conflict can be settled."""
    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"


class SyncEvent(str, Enum):
    """Notifications emitted by the sync engine."""
    SYNC_NEEDED = "sync:needed"
    SYNC_BEHIND = "sync:behind"
    SYNC_COMPLETE = "sync:complete"
    SYNC_ERROR = "sync:error"
    CONFLICT_DETECTED = "conflict:detected"
    CONFLICT_RESOLVED = "conflict:resolved"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, ISO-8601 strings or epoch milliseconds."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def entity_key(entity_type: str, entity_id: str) -> str:
    """Key under which the engine stores state for one entity."""
    return f"{entity_type}:{entity_id}"


def new_patch_id() -> str:
    return f"patch-{uuid.uuid4().hex[:12]}"


@dataclass
class SyncableState:
    """One entity's current snapshot as known to its owner."""

    id: str
    type: str
    version: int
    data: Any = field(default_factory=dict)
    last_modified: datetime = field(default_factory=utcnow)
    checksum: Optional[str] = None

    @property
    def key(self) -> str:
        return entity_key(self.type, self.id)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "type": self.type,
            "version": self.version,
            "lastModified": format_timestamp(self.last_modified),
            "data": self.data,
        }
        if self.checksum:
            result["checksum"] = self.checksum
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncableState":
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            version=int(data["version"]),
            data=data.get("data", {}),
            last_modified=parse_timestamp(data["lastModified"]) if data.get("lastModified") else utcnow(),
            checksum=data.get("checksum"),
        )


@dataclass
class SyncPatch:
    """Ordered RFC 6902 operations moving an entity between two versions."""

    entity_id: str
    entity_type: str
    from_version: int
    to_version: int
    operations: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)
    source: PatchSource = PatchSource.LOCAL
    id: str = field(default_factory=new_patch_id)
    checksum: Optional[str] = None  # checksum of the resulting data

    @property
    def key(self) -> str:
        return entity_key(self.entity_type, self.entity_id)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "entityId": self.entity_id,
            "entityType": self.entity_type,
            "fromVersion": self.from_version,
            "toVersion": self.to_version,
            "operations": self.operations,
            "timestamp": format_timestamp(self.timestamp),
            "source": self.source.value,
        }
        if self.checksum:
            result["checksum"] = self.checksum
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncPatch":
        return cls(
            id=str(data.get("id") or new_patch_id()),
            entity_id=str(data["entityId"]),
            entity_type=str(data["entityType"]),
            from_version=int(data["fromVersion"]),
            to_version=int(data["toVersion"]),
            operations=list(data.get("operations", [])),
            timestamp=parse_timestamp(data["timestamp"]) if data.get("timestamp") else utcnow(),
            source=PatchSource(data.get("source", PatchSource.REMOTE.value)),
            checksum=data.get("checksum"),
        )


@dataclass
class SyncConflict:
    """A detected fork between the local replica and an inbound patch."""

    entity_id: str
    entity_type: str
    local_version: int
    remote_version: int
    remote_patch: SyncPatch
    local_patch: Optional[SyncPatch] = None
    resolution: Optional[Resolution] = None

    @property
    def key(self) -> str:
        return entity_key(self.entity_type, self.entity_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entityId": self.entity_id,
            "entityType": self.entity_type,
            "localVersion": self.local_version,
            "remoteVersion": self.remote_version,
            "localPatch": self.local_patch.to_dict() if self.local_patch else None,
            "remotePatch": self.remote_patch.to_dict(),
            "resolution": self.resolution.value if self.resolution else None,
        }


@dataclass
class SyncPriority:
    """Scheduling policy for one entity type."""

    type: str
    priority: int = 0
    strategy: SyncStrategy = SyncStrategy.BATCH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "priority": self.priority,
            "strategy": self.strategy.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncPriority":
        return cls(
            type=str(data["type"]),
            priority=int(data.get("priority", 0)),
            strategy=SyncStrategy(data.get("strategy", SyncStrategy.BATCH.value)),
        )


@dataclass
class SyncMetrics:
    """Running counters for sync transactions."""

    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    conflicts_resolved: int = 0
    data_transferred: int = 0  # bytes of serialized patches
    last_sync_time: Optional[datetime] = None
    average_sync_duration: float = 0.0  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSyncs": self.total_syncs,
            "successfulSyncs": self.successful_syncs,
            "failedSyncs": self.failed_syncs,
            "conflictsResolved": self.conflicts_resolved,
            "dataTransferred": self.data_transferred,
            "lastSyncTime": format_timestamp(self.last_sync_time),
            "averageSyncDuration": self.average_sync_duration,
        }


@dataclass
class SyncResult:
    """Outcome of one perform_sync transaction."""

    sent: int = 0
    received: int = 0
    conflicts: List[SyncConflict] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sent": self.sent,
            "received": self.received,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


__all__ = [
    "SyncStrategy",
    "PatchSource",
    "Resolution",
    "SyncEvent",
    "SyncableState",
    "SyncPatch",
    "SyncConflict",
    "SyncPriority",
    "SyncMetrics",
    "SyncResult",
    "entity_key",
    "format_timestamp",
    "parse_timestamp",
    "utcnow",
]
