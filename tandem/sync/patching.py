"""RFC 6902 diff/apply helpers and payload checksums."""

from __future__ import annotations

import copy
import hashlib
import json
from typing import Any, Dict, Iterable, List

import jsonpatch
import jsonpointer

from .errors import PatchApplicationError
from .models import SyncPatch

Operation = Dict[str, Any]

_APPLY_ERRORS = (
    jsonpatch.JsonPatchException,
    jsonpointer.JsonPointerException,
    TypeError,
    ValueError,
    KeyError,
    IndexError,
)


def diff(old: Any, new: Any) -> List[Operation]:
    """Return the minimal list of operations turning ``old`` into ``new``."""
    operations = jsonpatch.make_patch(old, new).patch
    # make_patch hands back references into ``new``; detach them so later
    # mutation of the tracked payload cannot rewrite a queued patch.
    return copy.deepcopy(operations)


def apply(document: Any, operations: List[Operation], patch_id: str = "") -> Any:
    """Apply operations to a copy of ``document`` and return the result.

    The input document is never modified, so a failing operation halfway
    through a patch leaves the caller's state untouched.
    """
    try:
        return jsonpatch.apply_patch(document, operations, in_place=False)
    except _APPLY_ERRORS as exc:
        raise PatchApplicationError(
            f"Failed to apply patch {patch_id or '(unnamed)'}: {exc}",
            patch_id=patch_id or None,
        ) from exc


def apply_sync_patch(document: Any, patch: SyncPatch, verify_checksum: bool = False) -> Any:
    """Apply a SyncPatch, optionally checking the result against its checksum."""
    result = apply(document, patch.operations, patch_id=patch.id)
    if verify_checksum and patch.checksum:
        actual = compute_checksum(result)
        if actual != patch.checksum:
            raise PatchApplicationError(
                f"Checksum mismatch for patch {patch.id}: "
                f"expected {patch.checksum[:12]}, got {actual[:12]}",
                patch_id=patch.id,
            )
    return result


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def compute_checksum(data: Any) -> str:
    """SHA-256 of the canonical JSON encoding of ``data``."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def serialized_size(patches: Iterable[SyncPatch]) -> int:
    """Bytes needed to put ``patches`` on the wire as JSON."""
    payload = json.dumps([patch.to_dict() for patch in patches], default=str)
    return len(payload.encode("utf-8"))


__all__ = [
    "Operation",
    "diff",
    "apply",
    "apply_sync_patch",
    "canonical_json",
    "compute_checksum",
    "serialized_size",
]
