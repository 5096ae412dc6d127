"""Typed view over the ``sync`` configuration section."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .models import SyncPriority

logger = logging.getLogger("tandem.sync.settings")


def _default_priorities() -> List[SyncPriority]:
    from .engine import DEFAULT_PRIORITIES

    return [SyncPriority(p.type, p.priority, p.strategy) for p in DEFAULT_PRIORITIES]


@dataclass
class SyncSettings:
    """Settings for a sync engine and its conflict policy."""

    conflict_strategy: str = "manual"
    verify_checksums: bool = False
    history_limit: int = 100
    priorities: List[SyncPriority] = field(default_factory=_default_priorities)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SyncSettings":
        raw = config.get("sync", {}) if config else {}
        priorities = _default_priorities()
        raw_priorities = raw.get("priorities")
        if raw_priorities:
            priorities = []
            for entry in raw_priorities:
                try:
                    priorities.append(SyncPriority.from_dict(entry))
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Ignoring invalid sync priority %r: %s", entry, exc)
        return cls(
            conflict_strategy=str(raw.get("conflict_strategy", "manual")),
            verify_checksums=bool(raw.get("verify_checksums", False)),
            history_limit=int(raw.get("history_limit", 100)),
            priorities=priorities,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflict_strategy": self.conflict_strategy,
            "verify_checksums": self.verify_checksums,
            "history_limit": self.history_limit,
            "priorities": [p.to_dict() for p in self.priorities],
        }


__all__ = ["SyncSettings"]
