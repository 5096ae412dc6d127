"""Conversation history adapter."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..sync.models import SyncableState, format_timestamp, parse_timestamp, utcnow
from .base import SyncAdapter

logger = logging.getLogger("tandem.adapters.conversation")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Message:
    """A single turn in a conversation."""

    role: str  # "user" or "assistant"
    content: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> Tuple[str, str, int]:
        # Peers serialize timestamps at millisecond precision.
        return (self.role, self.content, int(self.timestamp.timestamp() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "role": self.role,
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            timestamp=parse_timestamp(data["timestamp"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ConversationContext:
    """Live UI context the conversation runs in."""

    working_directory: str = ""
    open_files: List[str] = field(default_factory=list)
    active_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workingDirectory": self.working_directory,
            "openFiles": list(self.open_files),
            "activeFile": self.active_file,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationContext":
        return cls(
            working_directory=data.get("workingDirectory", ""),
            open_files=list(data.get("openFiles", [])),
            active_file=data.get("activeFile"),
        )


@dataclass
class ConversationMetadata:
    """Session bookkeeping for a conversation."""

    created_at: datetime = field(default_factory=utcnow)
    last_active_at: datetime = field(default_factory=utcnow)
    title: Optional[str] = None
    personality_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "personalityId": self.personality_id,
            "createdAt": format_timestamp(self.created_at),
            "lastActiveAt": format_timestamp(self.last_active_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMetadata":
        return cls(
            title=data.get("title"),
            personality_id=data.get("personalityId"),
            created_at=parse_timestamp(data["createdAt"]) if data.get("createdAt") else utcnow(),
            last_active_at=parse_timestamp(data["lastActiveAt"]) if data.get("lastActiveAt") else utcnow(),
        )


@dataclass
class ConversationState:
    """Full conversation as owned by one peer."""

    conversation_id: str
    instance_id: str
    messages: List[Message] = field(default_factory=list)
    context: ConversationContext = field(default_factory=ConversationContext)
    metadata: ConversationMetadata = field(default_factory=ConversationMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "instanceId": self.instance_id,
            "messages": [m.to_dict() for m in self.messages],
            "context": self.context.to_dict(),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationState":
        return cls(
            conversation_id=data["conversationId"],
            instance_id=data.get("instanceId", ""),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            context=ConversationContext.from_dict(data.get("context", {})),
            metadata=ConversationMetadata.from_dict(data.get("metadata", {})),
        )


class ConversationAdapter(SyncAdapter):
    """Syncs conversation transcripts between peers."""

    entity_type = "conversation"
    checkpoint_type = "conversation.checkpoint"

    def entity_id(self, obj: ConversationState) -> str:
        return obj.conversation_id

    def to_data(self, obj: ConversationState) -> Dict[str, Any]:
        return obj.to_dict()

    def from_data(self, data: Dict[str, Any]) -> ConversationState:
        return ConversationState.from_dict(data)

    def create_checkpoint(self, conversation: ConversationState) -> SyncableState:
        """Snapshot a conversation under its own checkpoint id."""
        checkpoint = self.to_syncable(conversation)
        stamp = int(self.clock().timestamp() * 1000)
        return replace(
            checkpoint,
            id=f"checkpoint-{conversation.conversation_id}-{stamp}",
            type=self.checkpoint_type,
        )

    def merge(self, local: ConversationState, remote: ConversationState) -> ConversationState:
        """Union the transcripts; keep local UI context and remote metadata."""
        messages = self._deduplicate(local.messages + remote.messages)
        open_files = list(dict.fromkeys(local.context.open_files + remote.context.open_files))
        logger.debug(
            "Merged conversation %s: %d local + %d remote -> %d messages",
            local.conversation_id,
            len(local.messages),
            len(remote.messages),
            len(messages),
        )
        return ConversationState(
            conversation_id=local.conversation_id,
            instance_id=local.instance_id,
            messages=messages,
            context=replace(local.context, open_files=open_files),
            metadata=replace(remote.metadata, last_active_at=self.clock()),
        )

    @staticmethod
    def _deduplicate(messages: List[Message]) -> List[Message]:
        seen = set()
        unique: List[Message] = []
        for message in sorted(messages, key=lambda m: m.timestamp):
            if message.identity in seen:
                continue
            seen.add(message.identity)
            unique.append(message)
        return unique

    def summary(self, obj: ConversationState) -> Dict[str, Any]:
        last = obj.messages[-1].timestamp if obj.messages else EPOCH
        return {
            "messageCount": len(obj.messages),
            "lastMessageTime": last,
            "contextHash": self._hash_context(obj.context),
        }

    @staticmethod
    def _hash_context(context: ConversationContext) -> str:
        payload = json.dumps(
            {
                "workingDirectory": context.working_directory,
                "openFiles": sorted(context.open_files),
                "activeFile": context.active_file,
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


__all__ = [
    "ConversationAdapter",
    "ConversationContext",
    "ConversationMetadata",
    "ConversationState",
    "Message",
]
