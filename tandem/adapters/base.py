"""Shared contract for entity adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..sync.models import SyncableState, utcnow

Clock = Callable[[], datetime]


class VersionCounter:
    """Per-entity version numbers handed out by an adapter.

    Owned by whoever constructs the adapter; pass the same counter to several
    adapters to share numbering, or a fresh one per test.
    """

    def __init__(self) -> None:
        self._versions: Dict[str, int] = {}

    def next(self, entity_id: str) -> int:
        version = self._versions.get(entity_id, 0) + 1
        self._versions[entity_id] = version
        return version

    def observe(self, entity_id: str, version: int) -> None:
        """Record a version seen from elsewhere so the next bump moves past it."""
        if version > self._versions.get(entity_id, 0):
            self._versions[entity_id] = version

    def current(self, entity_id: str) -> int:
        return self._versions.get(entity_id, 0)

    def reset(self, entity_id: Optional[str] = None) -> None:
        if entity_id is None:
            self._versions.clear()
        else:
            self._versions.pop(entity_id, None)


class SyncAdapter(ABC):
    """Translate a domain object to and from the engine envelope."""

    entity_type: str = ""

    def __init__(self, versions: Optional[VersionCounter] = None, clock: Clock = utcnow):
        self.versions = versions if versions is not None else VersionCounter()
        self.clock = clock

    @abstractmethod
    def entity_id(self, obj: Any) -> str:
        """Return the id the engine should key ``obj`` under."""
        pass

    @abstractmethod
    def to_data(self, obj: Any) -> Dict[str, Any]:
        """Serialize ``obj`` to a JSON-compatible payload."""
        pass

    @abstractmethod
    def from_data(self, data: Dict[str, Any]) -> Any:
        """Rebuild a domain object from its payload."""
        pass

    @abstractmethod
    def merge(self, local: Any, remote: Any) -> Any:
        """Combine two diverged copies of the same entity."""
        pass

    def summary(self, obj: Any) -> Dict[str, Any]:
        """Cheap description of ``obj`` used to estimate sync cost."""
        return {}

    def to_syncable(self, obj: Any) -> SyncableState:
        entity_id = self.entity_id(obj)
        return SyncableState(
            id=entity_id,
            type=self.entity_type,
            version=self.versions.next(entity_id),
            data=self.to_data(obj),
            last_modified=self.clock(),
        )

    def from_syncable(self, state: SyncableState) -> Any:
        self.versions.observe(state.id, state.version)
        return self.from_data(state.data)

    def merge_data(self, local_data: Dict[str, Any], remote_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge raw payloads by round-tripping through the domain model."""
        merged = self.merge(self.from_data(local_data), self.from_data(remote_data))
        return self.to_data(merged)


__all__ = ["Clock", "SyncAdapter", "VersionCounter"]
