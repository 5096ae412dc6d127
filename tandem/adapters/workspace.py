"""Workspace (editor layout, terminals, git) adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..sync.models import SyncableState, utcnow
from ..sync.patching import compute_checksum
from .base import Clock, SyncAdapter, VersionCounter

if TYPE_CHECKING:
    from ..sync.settings import SyncSettings

logger = logging.getLogger("tandem.adapters.workspace")

DEFAULT_HISTORY_LIMIT = 100


@dataclass
class CursorPosition:
    line: int
    column: int

    def to_dict(self) -> Dict[str, Any]:
        return {"line": self.line, "column": self.column}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CursorPosition":
        return cls(line=int(data.get("line", 0)), column=int(data.get("column", 0)))


@dataclass
class OpenFile:
    path: str
    active: bool = False
    cursor_position: Optional[CursorPosition] = None
    scroll_position: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"path": self.path, "active": self.active}
        if self.cursor_position is not None:
            result["cursorPosition"] = self.cursor_position.to_dict()
        if self.scroll_position is not None:
            result["scrollPosition"] = self.scroll_position
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OpenFile":
        cursor = data.get("cursorPosition")
        return cls(
            path=data["path"],
            active=bool(data.get("active", False)),
            cursor_position=CursorPosition.from_dict(cursor) if cursor else None,
            scroll_position=data.get("scrollPosition"),
        )


@dataclass
class Layout:
    left_dock_width: int = 0
    right_dock_width: int = 0
    bottom_dock_height: int = 0
    active_module: str = ""
    module_states: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leftDockWidth": self.left_dock_width,
            "rightDockWidth": self.right_dock_width,
            "bottomDockHeight": self.bottom_dock_height,
            "activeModule": self.active_module,
            "moduleStates": dict(self.module_states),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Layout":
        return cls(
            left_dock_width=data.get("leftDockWidth", 0),
            right_dock_width=data.get("rightDockWidth", 0),
            bottom_dock_height=data.get("bottomDockHeight", 0),
            active_module=data.get("activeModule", ""),
            module_states=dict(data.get("moduleStates") or {}),
        )


@dataclass
class TerminalSession:
    id: str
    cwd: str = ""
    history: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "cwd": self.cwd, "history": list(self.history)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerminalSession":
        return cls(
            id=str(data["id"]),
            cwd=data.get("cwd", ""),
            history=list(data.get("history", [])),
        )


@dataclass
class TerminalState:
    active_terminal_id: Optional[str] = None
    sessions: List[TerminalSession] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activeTerminalId": self.active_terminal_id,
            "terminalStates": [s.to_dict() for s in self.sessions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerminalState":
        return cls(
            active_terminal_id=data.get("activeTerminalId"),
            sessions=[TerminalSession.from_dict(s) for s in data.get("terminalStates", [])],
        )


@dataclass
class GitState:
    current_branch: str = ""
    staged_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"currentBranch": self.current_branch, "stagedFiles": list(self.staged_files)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GitState":
        return cls(
            current_branch=data.get("currentBranch", ""),
            staged_files=list(data.get("stagedFiles", [])),
        )


@dataclass
class WorkspaceState:
    open_files: List[OpenFile] = field(default_factory=list)
    layout: Layout = field(default_factory=Layout)
    terminal: TerminalState = field(default_factory=TerminalState)
    git: GitState = field(default_factory=GitState)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "openFiles": [f.to_dict() for f in self.open_files],
            "layout": self.layout.to_dict(),
            "terminal": self.terminal.to_dict(),
            "git": self.git.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceState":
        return cls(
            open_files=[OpenFile.from_dict(f) for f in data.get("openFiles", [])],
            layout=Layout.from_dict(data.get("layout", {})),
            terminal=TerminalState.from_dict(data.get("terminal", {})),
            git=GitState.from_dict(data.get("git", {})),
        )


class WorkspaceAdapter(SyncAdapter):
    """Syncs the state of one workspace; every snapshot carries a checksum."""

    entity_type = "workspace"

    def __init__(
        self,
        workspace_id: str,
        versions: Optional[VersionCounter] = None,
        clock: Clock = utcnow,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        super().__init__(versions=versions, clock=clock)
        self.workspace_id = workspace_id
        self.history_limit = history_limit

    @classmethod
    def from_settings(
        cls,
        workspace_id: str,
        settings: "SyncSettings",
        versions: Optional[VersionCounter] = None,
    ) -> "WorkspaceAdapter":
        return cls(workspace_id, versions=versions, history_limit=settings.history_limit)

    def entity_id(self, obj: WorkspaceState) -> str:
        return self.workspace_id

    def to_data(self, obj: WorkspaceState) -> Dict[str, Any]:
        return obj.to_dict()

    def from_data(self, data: Dict[str, Any]) -> WorkspaceState:
        return WorkspaceState.from_dict(data)

    def to_syncable(self, obj: WorkspaceState) -> SyncableState:
        state = super().to_syncable(obj)
        state.checksum = compute_checksum(state.data)
        return state

    def merge(self, local: WorkspaceState, remote: WorkspaceState) -> WorkspaceState:
        """Local owns the live UI; remote owns repository state."""
        return WorkspaceState(
            open_files=self._merge_open_files(local.open_files, remote.open_files),
            layout=local.layout,
            terminal=TerminalState(
                active_terminal_id=local.terminal.active_terminal_id or remote.terminal.active_terminal_id,
                sessions=self._merge_terminals(local.terminal.sessions, remote.terminal.sessions),
            ),
            git=remote.git,
        )

    @staticmethod
    def _merge_open_files(local: List[OpenFile], remote: List[OpenFile]) -> List[OpenFile]:
        files: Dict[str, OpenFile] = {f.path: f for f in remote}
        for file in local:
            existing = files.get(file.path)
            if existing is None:
                files[file.path] = file
                continue
            files[file.path] = replace(
                existing,
                cursor_position=file.cursor_position or existing.cursor_position,
                scroll_position=(
                    file.scroll_position if file.scroll_position is not None else existing.scroll_position
                ),
                active=file.active or existing.active,
            )
        return list(files.values())

    def _merge_terminals(
        self,
        local: List[TerminalSession],
        remote: List[TerminalSession],
    ) -> List[TerminalSession]:
        sessions: Dict[str, TerminalSession] = {s.id: s for s in remote}
        for session in local:
            existing = sessions.get(session.id)
            history = session.history
            if existing is not None:
                history = list(dict.fromkeys(existing.history + session.history))
            sessions[session.id] = replace(session, history=history)
        return [self._capped(session) for session in sessions.values()]

    def _capped(self, session: TerminalSession) -> TerminalSession:
        history = session.history
        if len(history) > self.history_limit:
            logger.debug(
                "Trimming terminal %s history from %d to %d entries",
                session.id,
                len(history),
                self.history_limit,
            )
            history = history[-self.history_limit:]
        return replace(session, history=list(history))

    def summary(self, obj: WorkspaceState) -> Dict[str, Any]:
        return {
            "openFiles": len(obj.open_files),
            "terminals": len(obj.terminal.sessions),
            "branch": obj.git.current_branch,
            "checksum": compute_checksum(obj.to_dict()),
        }


__all__ = [
    "CursorPosition",
    "GitState",
    "Layout",
    "OpenFile",
    "TerminalSession",
    "TerminalState",
    "WorkspaceAdapter",
    "WorkspaceState",
]
