"""In-memory sync engine: patch generation, remote application, conflicts."""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import replace
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Union,
)

from . import patching
from .errors import MergeUnavailableError, PatchApplicationError, SyncError, SyncInProgressError
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
    utcnow,
)

if TYPE_CHECKING:
    from .settings import SyncSettings

logger = logging.getLogger("tandem.sync.engine")

SendPatches = Callable[[List[SyncPatch]], Awaitable[None]]
ReceivePatches = Callable[[], Awaitable[List[SyncPatch]]]
Merger = Callable[[Any, Any], Any]
EventHandler = Callable[[Any], None]

DEFAULT_PRIORITIES: List[SyncPriority] = [
    SyncPriority("conversation", 100, SyncStrategy.IMMEDIATE),
    SyncPriority("editor.activeFile", 95, SyncStrategy.IMMEDIATE),
    SyncPriority("tasks.board", 80, SyncStrategy.BATCH),
    SyncPriority("tasks.update", 80, SyncStrategy.BATCH),
    SyncPriority("knowledge.entry", 70, SyncStrategy.BATCH),
    SyncPriority("git.status", 60, SyncStrategy.BATCH),
    SyncPriority("workspace", 50, SyncStrategy.BATCH),
    SyncPriority("layout.config", 40, SyncStrategy.LAZY),
    SyncPriority("settings.preference", 30, SyncStrategy.LAZY),
]


class SyncEngine:
    """Holds the authoritative snapshot of every tracked entity.

    All methods except :meth:`perform_sync` are synchronous and mutate shared
    maps without locking; call them from one logical control flow. The engine
    is owned by its caller (one per session or workspace) and should be
    :meth:`reset` on teardown.
    """

    def __init__(
        self,
        priorities: Optional[Iterable[SyncPriority]] = None,
        verify_checksums: bool = False,
    ) -> None:
        self.verify_checksums = verify_checksums
        self._states: Dict[str, SyncableState] = {}
        self._pending: Dict[str, List[SyncPatch]] = {}
        self._priorities: Dict[str, SyncPriority] = {}
        self._conflicts: Dict[str, SyncConflict] = {}
        self._mergers: Dict[str, Merger] = {}
        self._listeners: Dict[SyncEvent, List[EventHandler]] = {}
        self._metrics = SyncMetrics()
        self._sync_in_progress = False

        for entry in DEFAULT_PRIORITIES if priorities is None else priorities:
            self.register_entity_type(entry.type, entry.priority, entry.strategy)

    @classmethod
    def from_settings(cls, settings: "SyncSettings") -> "SyncEngine":
        return cls(
            priorities=settings.priorities,
            verify_checksums=settings.verify_checksums,
        )

    # ------------------------------------------------------------------
    # Registration and events

    def register_entity_type(
        self,
        entity_type: str,
        priority: int,
        strategy: Union[SyncStrategy, str] = SyncStrategy.BATCH,
    ) -> None:
        """Insert or replace the scheduling policy for ``entity_type``."""
        if not entity_type:
            raise ValueError("entity_type is required")
        self._priorities[entity_type] = SyncPriority(
            type=entity_type,
            priority=int(priority),
            strategy=SyncStrategy(strategy),
        )

    def register_adapter(self, entity_type: str, adapter: Any) -> None:
        """Use ``adapter.merge_data`` for merge resolutions of ``entity_type``."""
        self._mergers[entity_type] = adapter.merge_data

    def get_priority(self, entity_type: str) -> Optional[SyncPriority]:
        return self._priorities.get(entity_type)

    def on(self, event: Union[SyncEvent, str], handler: EventHandler) -> None:
        self._listeners.setdefault(SyncEvent(event), []).append(handler)

    def off(self, event: Union[SyncEvent, str], handler: EventHandler) -> None:
        handlers = self._listeners.get(SyncEvent(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def _emit(self, event: SyncEvent, payload: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("Listener for %s failed", event.value)

    # ------------------------------------------------------------------
    # Local changes

    def track_state(self, entity: SyncableState) -> Optional[SyncPatch]:
        """Record a new local snapshot, queueing a patch if the data changed.

        Returns the queued patch, or ``None`` for a first sighting or an
        unchanged payload. Raises ``ValueError`` when a snapshot does not move
        past the stored version; re-tracking the stored snapshot is a no-op.
        """
        key = entity.key
        existing = self._states.get(key)
        patch: Optional[SyncPatch] = None

        if existing is not None:
            operations = patching.diff(existing.data, entity.data)
            if entity.version <= existing.version:
                if entity.version == existing.version and not operations:
                    return None
                raise ValueError(
                    f"Version of {key} must increase past v{existing.version} "
                    f"(got v{entity.version})"
                )
            if operations:
                checksum = entity.checksum
                if checksum is None and self.verify_checksums:
                    checksum = patching.compute_checksum(entity.data)
                patch = SyncPatch(
                    entity_id=entity.id,
                    entity_type=entity.type,
                    from_version=existing.version,
                    to_version=entity.version,
                    operations=operations,
                    source=PatchSource.LOCAL,
                    checksum=checksum,
                )
                self._pending.setdefault(key, []).append(patch)
                logger.debug(
                    "Queued patch %s for %s (%d ops, v%d -> v%d)",
                    patch.id,
                    key,
                    len(operations),
                    patch.from_version,
                    patch.to_version,
                )

        # The baseline is a private copy so later in-place edits by the
        # caller still show up in the next diff.
        self._states[key] = replace(entity, data=copy.deepcopy(entity.data))

        if patch is not None:
            priority = self._priorities.get(entity.type)
            if priority is not None and priority.strategy is SyncStrategy.IMMEDIATE:
                self._emit(SyncEvent.SYNC_NEEDED, entity.type)
        return patch

    def get_pending_patches(self, types: Optional[Sequence[str]] = None) -> List[SyncPatch]:
        """Queued patches, highest entity-type priority first."""
        if isinstance(types, str):
            types = (types,)
        entries = [
            (key, queue)
            for key, queue in self._pending.items()
            if queue and (types is None or queue[0].entity_type in types)
        ]
        entries.sort(key=lambda item: -self._priority_of(item[1][0].entity_type))

        patches: List[SyncPatch] = []
        for _, queue in entries:
            patches.extend(queue)
        return patches

    def _priority_of(self, entity_type: str) -> int:
        entry = self._priorities.get(entity_type)
        return entry.priority if entry else 0

    # ------------------------------------------------------------------
    # Remote changes

    def apply_remote_patches(self, patches: Iterable[SyncPatch]) -> List[SyncConflict]:
        """Apply inbound patches; return the conflicts detected in this batch."""
        detected: Dict[str, SyncConflict] = {}

        for patch in patches:
            key = patch.key
            local = self._states.get(key)
            try:
                if local is None:
                    self._materialize(patch)
                elif local.version < patch.from_version:
                    logger.info(
                        "Local %s is behind (v%d < v%d); resync required",
                        key,
                        local.version,
                        patch.from_version,
                    )
                    self._emit(SyncEvent.SYNC_BEHIND, {"state": local, "patch": patch})
                elif local.version > patch.from_version:
                    queue = self._pending.get(key) or []
                    conflict = SyncConflict(
                        entity_id=patch.entity_id,
                        entity_type=patch.entity_type,
                        local_version=local.version,
                        remote_version=patch.to_version,
                        local_patch=queue[-1] if queue else None,
                        remote_patch=patch,
                    )
                    self._conflicts[key] = conflict
                    detected[key] = conflict
                    logger.warning(
                        "Conflict on %s: local v%d, remote v%d -> v%d",
                        key,
                        local.version,
                        patch.from_version,
                        patch.to_version,
                    )
                    self._emit(SyncEvent.CONFLICT_DETECTED, conflict)
                else:
                    self._apply_clean(local, patch)
            except PatchApplicationError as exc:
                logger.error("Skipping remote patch for %s: %s", key, exc)

        return list(detected.values())

    def _materialize(self, patch: SyncPatch) -> None:
        data = patching.apply_sync_patch({}, patch, verify_checksum=self.verify_checksums)
        self._states[patch.key] = SyncableState(
            id=patch.entity_id,
            type=patch.entity_type,
            version=patch.to_version,
            data=data,
            last_modified=patch.timestamp,
            checksum=patch.checksum,
        )
        logger.debug("Materialized %s at v%d from remote", patch.key, patch.to_version)

    def _apply_clean(self, local: SyncableState, patch: SyncPatch) -> None:
        data = patching.apply_sync_patch(local.data, patch, verify_checksum=self.verify_checksums)
        self._states[patch.key] = self._rebase(local, data, patch.to_version, patch)
        # Unsent local deltas were computed against the old baseline.
        self._pending.pop(patch.key, None)
        if self._conflicts.pop(patch.key, None) is not None:
            logger.info("Conflict on %s superseded by remote v%d", patch.key, patch.to_version)
        logger.debug("Applied remote patch %s to %s (now v%d)", patch.id, patch.key, patch.to_version)

    def _rebase(self, local: SyncableState, data: Any, version: int, patch: SyncPatch) -> SyncableState:
        checksum = local.checksum
        if checksum is not None or patch.checksum is not None:
            checksum = patching.compute_checksum(data)
        return replace(
            local,
            data=data,
            version=version,
            last_modified=patch.timestamp,
            checksum=checksum,
        )

    # ------------------------------------------------------------------
    # Conflicts

    def resolve_conflict(
        self,
        entity_id: str,
        entity_type: str,
        resolution: Union[Resolution, str],
        merge: Optional[Merger] = None,
    ) -> Optional[SyncConflict]:
        """Settle the recorded conflict for one entity.

        ``merge`` receives ``(local_data, remote_data)`` and returns the merged
        payload; without it, the adapter registered for ``entity_type`` is
        used. Returns the resolved conflict, or ``None`` if none was recorded.
        """
        resolution = Resolution(resolution)
        key = entity_key(entity_type, entity_id)
        conflict = self._conflicts.get(key)
        if conflict is None:
            logger.debug("No conflict recorded for %s", key)
            return None

        if resolution is Resolution.REMOTE:
            self._adopt_remote(key, conflict)
        elif resolution is Resolution.MERGE:
            self._merge(key, conflict, merge or self._mergers.get(entity_type))
        else:
            logger.info("Keeping local %s; pending patches stay queued", key)

        conflict.resolution = resolution
        del self._conflicts[key]
        self._metrics.conflicts_resolved += 1
        self._emit(SyncEvent.CONFLICT_RESOLVED, conflict)
        return conflict

    def _adopt_remote(self, key: str, conflict: SyncConflict) -> None:
        local = self._states.get(key)
        remote = conflict.remote_patch
        if local is None:
            logger.error("Cannot adopt remote %s: no local state", key)
            return
        try:
            data = patching.apply(local.data, remote.operations, patch_id=remote.id)
        except PatchApplicationError as exc:
            logger.error("Failed to apply remote patch while resolving %s: %s", key, exc)
            return
        self._states[key] = self._rebase(local, data, remote.to_version, remote)
        self._pending.pop(key, None)
        logger.info("Adopted remote %s at v%d", key, remote.to_version)

    def _merge(self, key: str, conflict: SyncConflict, merger: Optional[Merger]) -> None:
        if merger is None:
            raise MergeUnavailableError(
                f"No merge function or adapter registered for {conflict.entity_type}"
            )
        local = self._states.get(key)
        if local is None:
            raise SyncError(f"Cannot merge {key}: no local state")

        remote = conflict.remote_patch
        remote_data = patching.apply(local.data, remote.operations, patch_id=remote.id)
        merged = merger(copy.deepcopy(local.data), remote_data)
        version = max(local.version, remote.to_version) + 1

        checksum = patching.compute_checksum(merged) if local.checksum or self.verify_checksums else None
        self._states[key] = replace(
            local,
            data=copy.deepcopy(merged),
            version=version,
            last_modified=utcnow(),
            checksum=checksum,
        )
        # One patch that carries the peer from its own version to the merge.
        self._pending[key] = [
            SyncPatch(
                entity_id=conflict.entity_id,
                entity_type=conflict.entity_type,
                from_version=remote.to_version,
                to_version=version,
                operations=patching.diff(remote_data, merged),
                source=PatchSource.LOCAL,
                checksum=checksum,
            )
        ]
        logger.info("Merged %s into v%d", key, version)

    # ------------------------------------------------------------------
    # Transactions

    async def perform_sync(
        self,
        send_patches: SendPatches,
        receive_patches: ReceivePatches,
    ) -> SyncResult:
        """Push pending patches, pull remote ones and apply them.

        Only one transaction may run at a time. Errors from either callback
        leave the outgoing queues intact and are re-raised.
        """
        if self._sync_in_progress:
            raise SyncInProgressError("Sync already in progress")

        self._sync_in_progress = True
        started = time.monotonic()
        try:
            self._metrics.total_syncs += 1

            outgoing = self.get_pending_patches()
            if outgoing:
                await send_patches(outgoing)
                self._metrics.data_transferred += patching.serialized_size(outgoing)
                self._clear_sent(outgoing)

            incoming = list(await receive_patches() or [])
            self._metrics.data_transferred += patching.serialized_size(incoming)

            conflicts = self.apply_remote_patches(incoming)

            duration_ms = (time.monotonic() - started) * 1000.0
            self._metrics.successful_syncs += 1
            self._metrics.last_sync_time = utcnow()
            count = self._metrics.successful_syncs
            self._metrics.average_sync_duration = (
                self._metrics.average_sync_duration * (count - 1) + duration_ms
            ) / count

            result = SyncResult(sent=len(outgoing), received=len(incoming), conflicts=conflicts)
            logger.info(
                "Sync complete: sent=%d received=%d conflicts=%d (%.1f ms)",
                result.sent,
                result.received,
                len(conflicts),
                duration_ms,
            )
            self._emit(
                SyncEvent.SYNC_COMPLETE,
                {
                    "sent": result.sent,
                    "received": result.received,
                    "conflicts": len(conflicts),
                    "duration": duration_ms,
                },
            )
            return result
        except Exception as exc:
            self._metrics.failed_syncs += 1
            logger.error("Sync failed: %s", exc)
            self._emit(SyncEvent.SYNC_ERROR, exc)
            raise
        finally:
            self._sync_in_progress = False

    def _clear_sent(self, sent: List[SyncPatch]) -> None:
        sent_ids = {patch.id for patch in sent}
        for key in {patch.key for patch in sent}:
            remaining = [p for p in self._pending.get(key, []) if p.id not in sent_ids]
            if remaining:
                self._pending[key] = remaining
            else:
                self._pending.pop(key, None)

    # ------------------------------------------------------------------
    # Accessors

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    def get_metrics(self) -> SyncMetrics:
        return replace(self._metrics)

    def get_conflicts(self) -> List[SyncConflict]:
        return list(self._conflicts.values())

    def get_state(self, entity_type: str, entity_id: str) -> Optional[SyncableState]:
        return self._states.get(entity_key(entity_type, entity_id))

    def needs_sync(self, entity_type: str, entity_id: str) -> bool:
        return bool(self._pending.get(entity_key(entity_type, entity_id)))

    def pending_counts(self) -> Dict[str, int]:
        return {key: len(queue) for key, queue in self._pending.items() if queue}

    def reset(self) -> None:
        """Drop all entity state; registrations and listeners are kept."""
        self._states.clear()
        self._pending.clear()
        self._conflicts.clear()
        self._sync_in_progress = False


__all__ = [
    "DEFAULT_PRIORITIES",
    "SyncEngine",
    "SendPatches",
    "ReceivePatches",
    "Merger",
]
