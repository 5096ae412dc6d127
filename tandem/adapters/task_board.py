"""Task board (kanban) adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from ..sync.models import SyncableState, format_timestamp, parse_timestamp, utcnow
from .base import SyncAdapter

logger = logging.getLogger("tandem.adapters.task_board")

BACKLOG_COLUMN = "backlog"


def _optional_time(value: Any) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


@dataclass
class Task:
    """A card on the board."""

    id: str
    title: str
    updated_at: datetime
    description: str = ""
    status: str = "todo"  # backlog, todo, in-progress, completed
    priority: str = "medium"
    assignee: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    subtasks: List["Task"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assignee": self.assignee,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "completedAt": format_timestamp(self.completed_at),
            "tags": list(self.tags),
            "subtasks": [t.to_dict() for t in self.subtasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            status=data.get("status", "todo"),
            priority=data.get("priority", "medium"),
            assignee=data.get("assignee"),
            created_at=_optional_time(data.get("createdAt")),
            updated_at=parse_timestamp(data["updatedAt"]),
            completed_at=_optional_time(data.get("completedAt")),
            tags=list(data.get("tags", [])),
            subtasks=[Task.from_dict(t) for t in data.get("subtasks") or []],
        )


@dataclass
class Column:
    id: str
    title: str
    task_ids: List[str] = field(default_factory=list)
    limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"id": self.id, "title": self.title, "taskIds": list(self.task_ids)}
        if self.limit is not None:
            result["limit"] = self.limit
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            task_ids=list(data.get("taskIds", [])),
            limit=data.get("limit"),
        )


@dataclass
class BoardMetadata:
    last_modified: datetime = field(default_factory=utcnow)
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"lastModified": format_timestamp(self.last_modified), "version": self.version}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardMetadata":
        return cls(
            last_modified=parse_timestamp(data["lastModified"]) if data.get("lastModified") else utcnow(),
            version=int(data.get("version", 0)),
        )


@dataclass
class TaskBoardState:
    board_id: str
    tasks: List[Task] = field(default_factory=list)
    columns: List[Column] = field(default_factory=list)
    metadata: BoardMetadata = field(default_factory=BoardMetadata)

    def task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "boardId": self.board_id,
            "tasks": [t.to_dict() for t in self.tasks],
            "columns": [c.to_dict() for c in self.columns],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskBoardState":
        return cls(
            board_id=str(data["boardId"]),
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
            columns=[Column.from_dict(c) for c in data.get("columns", [])],
            metadata=BoardMetadata.from_dict(data.get("metadata", {})),
        )


@dataclass
class TaskUpdate:
    """A single task change published outside a full board sync."""

    board_id: str
    task: Task


class TaskBoardAdapter(SyncAdapter):
    """Syncs task boards; conflicts resolve per task by last write."""

    entity_type = "tasks.board"
    task_update_type = "tasks.update"

    def entity_id(self, obj: TaskBoardState) -> str:
        return obj.board_id

    def to_data(self, obj: TaskBoardState) -> Dict[str, Any]:
        return obj.to_dict()

    def from_data(self, data: Dict[str, Any]) -> TaskBoardState:
        return TaskBoardState.from_dict(data)

    def task_to_syncable(self, task: Task, board_id: str) -> SyncableState:
        """Wrap one task; the millisecond clock serves as its version."""
        now = self.clock()
        return SyncableState(
            id=f"{board_id}:{task.id}",
            type=self.task_update_type,
            version=int(now.timestamp() * 1000),
            data={"boardId": board_id, "task": task.to_dict()},
            last_modified=now,
        )

    def from_syncable(self, state: SyncableState) -> Union[TaskBoardState, TaskUpdate]:
        if state.type == self.task_update_type:
            return TaskUpdate(
                board_id=state.data["boardId"],
                task=Task.from_dict(state.data["task"]),
            )
        return super().from_syncable(state)

    def merge(self, local: TaskBoardState, remote: TaskBoardState) -> TaskBoardState:
        """Last write wins per task; column layout comes from the remote."""
        local_tasks = {t.id: t for t in local.tasks}
        remote_tasks = {t.id: t for t in remote.tasks}

        merged_tasks: List[Task] = []
        for task_id in dict.fromkeys(list(local_tasks) + list(remote_tasks)):
            local_task = local_tasks.get(task_id)
            remote_task = remote_tasks.get(task_id)
            if local_task and remote_task:
                # Ties go to the remote copy.
                merged_tasks.append(
                    local_task if local_task.updated_at > remote_task.updated_at else remote_task
                )
            else:
                merged_tasks.append(local_task or remote_task)

        surviving = {t.id for t in merged_tasks}
        columns = [
            replace(col, task_ids=[tid for tid in col.task_ids if tid in surviving])
            for col in remote.columns
        ]

        placed = {tid for col in columns for tid in col.task_ids}
        orphans = [t.id for t in merged_tasks if t.id not in placed]
        if orphans:
            backlog = next((col for col in columns if col.id == BACKLOG_COLUMN), None)
            if backlog is not None:
                backlog.task_ids.extend(orphans)
            else:
                logger.warning(
                    "Board %s has %d orphaned tasks and no backlog column",
                    local.board_id,
                    len(orphans),
                )

        return TaskBoardState(
            board_id=local.board_id,
            tasks=merged_tasks,
            columns=columns,
            metadata=BoardMetadata(
                last_modified=self.clock(),
                version=max(local.metadata.version, remote.metadata.version) + 1,
            ),
        )

    def stats(self, board: TaskBoardState) -> Dict[str, Any]:
        by_status: Dict[str, int] = {}
        for task in board.tasks:
            by_status[task.status] = by_status.get(task.status, 0) + 1
        last_update = max(
            (t.updated_at for t in board.tasks),
            default=datetime(1970, 1, 1, tzinfo=timezone.utc),
        )
        return {
            "totalTasks": len(board.tasks),
            "tasksByStatus": by_status,
            "lastUpdate": last_update,
        }

    def summary(self, obj: TaskBoardState) -> Dict[str, Any]:
        return self.stats(obj)


__all__ = [
    "BACKLOG_COLUMN",
    "BoardMetadata",
    "Column",
    "Task",
    "TaskBoardAdapter",
    "TaskBoardState",
    "TaskUpdate",
]
