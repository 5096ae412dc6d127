"""Tests for the conversation adapter."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from tandem.adapters import (
    ConversationAdapter,
    ConversationContext,
    ConversationMetadata,
    ConversationState,
    Message,
    VersionCounter,
)

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
NOW = datetime(2024, 5, 2, 9, 0, tzinfo=timezone.utc)


def _conversation(instance_id: str, messages, open_files, **context) -> ConversationState:
    return ConversationState(
        conversation_id="c1",
        instance_id=instance_id,
        messages=messages,
        context=ConversationContext(open_files=open_files, **context),
        metadata=ConversationMetadata(created_at=T0, last_active_at=T0, title=f"{instance_id} title"),
    )


def test_to_syncable_bumps_version_per_conversation():
    adapter = ConversationAdapter(clock=lambda: NOW)
    convo = _conversation("desktop", [], [])

    first = adapter.to_syncable(convo)
    second = adapter.to_syncable(convo)

    assert (first.type, first.id) == ("conversation", "c1")
    assert (first.version, second.version) == (1, 2)
    assert first.last_modified == NOW
    assert first.data["conversationId"] == "c1"


def test_version_counters_are_owned_by_the_constructor():
    shared = VersionCounter()
    a = ConversationAdapter(versions=shared)
    b = ConversationAdapter(versions=shared)
    isolated = ConversationAdapter()
    convo = _conversation("desktop", [], [])

    a.to_syncable(convo)
    assert b.to_syncable(convo).version == 2
    assert isolated.to_syncable(convo).version == 1


def test_from_syncable_round_trips_and_observes_version():
    adapter = ConversationAdapter()
    convo = _conversation(
        "desktop",
        [Message(role="user", content="hi", timestamp=T0, metadata={"model": "m"})],
        ["a.py"],
        working_directory="/repo",
        active_file="a.py",
    )
    state = adapter.to_syncable(convo)
    state.version = 7

    restored = adapter.from_syncable(state)

    assert restored == convo
    assert adapter.to_syncable(convo).version == 8


def test_merge_unions_messages_and_prefers_local_context():
    adapter = ConversationAdapter(clock=lambda: NOW)
    shared = Message(role="user", content="hello", timestamp=T0)
    local = _conversation(
        "desktop",
        [shared, Message(role="assistant", content="local reply", timestamp=T0 + timedelta(minutes=2))],
        ["a.py", "b.py"],
        working_directory="/local",
        active_file="b.py",
    )
    remote = _conversation(
        "remote",
        [
            Message(role="user", content="hello", timestamp=T0 + timedelta(microseconds=300)),
            Message(role="assistant", content="remote reply", timestamp=T0 + timedelta(minutes=1)),
        ],
        ["b.py", "c.py"],
        working_directory="/remote",
        active_file="c.py",
    )

    merged = adapter.merge(local, remote)

    assert [m.content for m in merged.messages] == ["hello", "remote reply", "local reply"]
    assert merged.context.open_files == ["a.py", "b.py", "c.py"]
    assert merged.context.working_directory == "/local"
    assert merged.context.active_file == "b.py"
    assert merged.instance_id == "desktop"
    assert merged.metadata.title == "remote title"
    assert merged.metadata.last_active_at == NOW


def test_merge_data_works_on_payloads():
    adapter = ConversationAdapter(clock=lambda: NOW)
    local = _conversation("desktop", [Message(role="user", content="a", timestamp=T0)], [])
    remote = _conversation("remote", [Message(role="user", content="b", timestamp=T0)], [])

    merged = adapter.merge_data(local.to_dict(), remote.to_dict())

    assert [m["content"] for m in merged["messages"]] == ["a", "b"]


def test_checkpoint_and_summary():
    adapter = ConversationAdapter(clock=lambda: NOW)
    convo = _conversation(
        "desktop",
        [Message(role="user", content="hi", timestamp=T0)],
        ["b.py", "a.py"],
        working_directory="/repo",
    )

    checkpoint = adapter.create_checkpoint(convo)
    summary = adapter.summary(convo)
    reordered = adapter.summary(_conversation("x", [], ["a.py", "b.py"], working_directory="/repo"))

    assert checkpoint.type == "conversation.checkpoint"
    assert checkpoint.id == f"checkpoint-c1-{int(NOW.timestamp() * 1000)}"
    assert summary["messageCount"] == 1
    assert summary["lastMessageTime"] == T0
    assert summary["contextHash"] == reordered["contextHash"]
    assert adapter.summary(_conversation("x", [], []))["lastMessageTime"].year == 1970
