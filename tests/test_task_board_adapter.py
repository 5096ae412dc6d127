"""Tests for the task board adapter."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from tandem.adapters import (
    BoardMetadata,
    Column,
    Task,
    TaskBoardAdapter,
    TaskBoardState,
    TaskUpdate,
)

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=30)
NOW = datetime(2024, 5, 2, 9, 0, tzinfo=timezone.utc)


def _board(tasks, columns, version: int = 1) -> TaskBoardState:
    return TaskBoardState(
        board_id="b1",
        tasks=tasks,
        columns=columns,
        metadata=BoardMetadata(last_modified=T0, version=version),
    )


def test_newer_remote_task_wins():
    adapter = TaskBoardAdapter(clock=lambda: NOW)
    local = _board([Task(id="T1", title="Ship", status="todo", updated_at=T0)], [Column("todo", "To do", ["T1"])])
    remote = _board(
        [Task(id="T1", title="Ship", status="in-progress", updated_at=T1)],
        [Column("doing", "Doing", ["T1"])],
    )

    merged = adapter.merge(local, remote)

    assert merged.task("T1").status == "in-progress"


def test_newer_local_task_wins_and_ties_go_remote():
    adapter = TaskBoardAdapter(clock=lambda: NOW)
    local = _board(
        [
            Task(id="a", title="local newer", updated_at=T1),
            Task(id="b", title="local tie", updated_at=T0),
        ],
        [Column("todo", "To do", ["a", "b"])],
    )
    remote = _board(
        [
            Task(id="a", title="remote older", updated_at=T0),
            Task(id="b", title="remote tie", updated_at=T0),
        ],
        [Column("todo", "To do", ["a", "b"])],
    )

    merged = adapter.merge(local, remote)

    assert merged.task("a").title == "local newer"
    assert merged.task("b").title == "remote tie"


def test_columns_follow_remote_and_orphans_land_in_backlog():
    adapter = TaskBoardAdapter(clock=lambda: NOW)
    local = _board(
        [Task(id="shared", title="s", updated_at=T0), Task(id="local-only", title="l", updated_at=T0)],
        [Column("todo", "To do", ["shared", "local-only"])],
        version=4,
    )
    remote = _board(
        [Task(id="shared", title="s", updated_at=T0)],
        [
            Column("backlog", "Backlog", []),
            Column("todo", "To do", ["shared", "deleted-elsewhere"], limit=5),
        ],
        version=6,
    )

    merged = adapter.merge(local, remote)

    assert [(c.id, c.task_ids) for c in merged.columns] == [
        ("backlog", ["local-only"]),
        ("todo", ["shared"]),
    ]
    assert merged.columns[1].limit == 5
    assert merged.metadata.version == 7
    assert merged.metadata.last_modified == NOW
    assert remote.columns[0].task_ids == []


def test_orphans_without_backlog_stay_unplaced():
    adapter = TaskBoardAdapter()
    local = _board([Task(id="x", title="x", updated_at=T0)], [])
    remote = _board([], [Column("done", "Done", [])])

    merged = adapter.merge(local, remote)

    assert merged.task("x") is not None
    assert merged.columns[0].task_ids == []


def test_task_updates_use_clock_as_version():
    adapter = TaskBoardAdapter(clock=lambda: NOW)
    task = Task(id="t9", title="Single", updated_at=T0, tags=["sync"])

    state = adapter.task_to_syncable(task, "b1")
    restored = adapter.from_syncable(state)

    assert state.type == "tasks.update"
    assert state.id == "b1:t9"
    assert state.version == int(NOW.timestamp() * 1000)
    assert restored == TaskUpdate(board_id="b1", task=task)


def test_board_round_trip_and_stats():
    adapter = TaskBoardAdapter()
    board = _board(
        [
            Task(id="a", title="a", status="todo", updated_at=T0, subtasks=[Task(id="a1", title="sub", updated_at=T0)]),
            Task(id="b", title="b", status="completed", updated_at=T1, completed_at=T1),
            Task(id="c", title="c", status="todo", updated_at=T0),
        ],
        [Column("todo", "To do", ["a", "c"])],
    )

    state = adapter.to_syncable(board)
    stats = adapter.stats(board)

    assert state.type == "tasks.board"
    assert adapter.from_syncable(state) == board
    assert stats["totalTasks"] == 3
    assert stats["tasksByStatus"] == {"todo": 2, "completed": 1}
    assert stats["lastUpdate"] == T1
