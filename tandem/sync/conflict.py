"""Conflict resolution strategies for entity synchronization."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from .errors import MergeUnavailableError, PatchApplicationError
from .models import Resolution, SyncConflict

if TYPE_CHECKING:
    from .engine import SyncEngine
    from .settings import SyncSettings

logger = logging.getLogger("tandem.sync.conflict")


class ConflictStrategy(str, Enum):
    """Strategies for resolving sync conflicts."""
    MANUAL = "manual"
    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    NEWEST_WINS = "newest_wins"
    MERGE = "merge"


@dataclass
class ConflictOutcome:
    """Result of applying a strategy to one conflict."""

    conflict: SyncConflict
    action: Optional[Resolution]  # None when left for the user
    message: str = ""

    @property
    def pending(self) -> bool:
        return self.action is None


class ConflictResolver:
    """Resolves engine conflicts according to a configured strategy."""

    def __init__(
        self,
        strategy: ConflictStrategy = ConflictStrategy.MANUAL,
        adapters: Optional[Mapping[str, Any]] = None,
    ):
        self.strategy = ConflictStrategy(strategy)
        self.adapters: Dict[str, Any] = dict(adapters or {})

    @classmethod
    def from_settings(
        cls,
        settings: "SyncSettings",
        adapters: Optional[Mapping[str, Any]] = None,
    ) -> "ConflictResolver":
        return cls(strategy=ConflictStrategy(settings.conflict_strategy), adapters=adapters)

    def resolve(self, engine: "SyncEngine", conflict: SyncConflict) -> ConflictOutcome:
        """Resolve a single conflict based on the configured strategy."""
        if self.strategy == ConflictStrategy.LOCAL_WINS:
            return self._apply(engine, conflict, Resolution.LOCAL, "Local wins strategy")
        elif self.strategy == ConflictStrategy.REMOTE_WINS:
            return self._apply(engine, conflict, Resolution.REMOTE, "Remote wins strategy")
        elif self.strategy == ConflictStrategy.NEWEST_WINS:
            return self._resolve_newest_wins(engine, conflict)
        elif self.strategy == ConflictStrategy.MERGE:
            return self._resolve_merge(engine, conflict)
        else:  # MANUAL
            return ConflictOutcome(
                conflict=conflict,
                action=None,
                message="Marked for manual resolution",
            )

    def _resolve_newest_wins(self, engine: "SyncEngine", conflict: SyncConflict) -> ConflictOutcome:
        """Use whichever side changed most recently."""
        local = engine.get_state(conflict.entity_type, conflict.entity_id)
        remote_time = conflict.remote_patch.timestamp
        if local is None or local.last_modified >= remote_time:
            return self._apply(
                engine,
                conflict,
                Resolution.LOCAL,
                f"Local is newer ({local.last_modified if local else 'missing'} >= {remote_time})",
            )
        return self._apply(
            engine,
            conflict,
            Resolution.REMOTE,
            f"Remote is newer ({remote_time} > {local.last_modified})",
        )

    def _resolve_merge(self, engine: "SyncEngine", conflict: SyncConflict) -> ConflictOutcome:
        """Delegate to the entity's adapter; leave pending if that is impossible."""
        adapter = self.adapters.get(conflict.entity_type)
        merge = adapter.merge_data if adapter is not None else None
        try:
            engine.resolve_conflict(
                conflict.entity_id,
                conflict.entity_type,
                Resolution.MERGE,
                merge=merge,
            )
        except (MergeUnavailableError, PatchApplicationError) as exc:
            logger.warning("Merge failed for %s: %s", conflict.key, exc)
            return ConflictOutcome(conflict=conflict, action=None, message=str(exc))
        return ConflictOutcome(
            conflict=conflict,
            action=Resolution.MERGE,
            message=f"Merged via {type(adapter).__name__ if adapter else 'registered adapter'}",
        )

    def _apply(
        self,
        engine: "SyncEngine",
        conflict: SyncConflict,
        resolution: Resolution,
        message: str,
    ) -> ConflictOutcome:
        engine.resolve_conflict(conflict.entity_id, conflict.entity_type, resolution)
        logger.info("Resolved %s as %s: %s", conflict.key, resolution.value, message)
        return ConflictOutcome(conflict=conflict, action=resolution, message=message)

    def resolve_all(self, engine: "SyncEngine", conflicts: List[SyncConflict]) -> List[ConflictOutcome]:
        """Resolve multiple conflicts."""
        return [self.resolve(engine, c) for c in conflicts]


__all__ = ["ConflictStrategy", "ConflictOutcome", "ConflictResolver"]
