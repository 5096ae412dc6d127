"""Tests for the workspace adapter."""

from __future__ import annotations

from tandem.adapters import (
    CursorPosition,
    GitState,
    Layout,
    OpenFile,
    TerminalSession,
    TerminalState,
    WorkspaceAdapter,
    WorkspaceState,
)
from tandem.sync.patching import compute_checksum


def _workspace(**overrides) -> WorkspaceState:
    return WorkspaceState(**overrides)


def test_to_syncable_adds_checksum_of_payload():
    adapter = WorkspaceAdapter("ws-1")
    workspace = _workspace(open_files=[OpenFile(path="main.py", active=True)], git=GitState("main"))

    first = adapter.to_syncable(workspace)
    second = adapter.to_syncable(workspace)

    assert (first.type, first.id) == ("workspace", "ws-1")
    assert (first.version, second.version) == (1, 2)
    assert first.checksum == compute_checksum(first.data)
    assert first.data["git"]["currentBranch"] == "main"


def test_round_trip_through_payload():
    adapter = WorkspaceAdapter("ws-1")
    workspace = _workspace(
        open_files=[OpenFile(path="a.py", cursor_position=CursorPosition(3, 4), scroll_position=0.5)],
        layout=Layout(left_dock_width=240, active_module="editor", module_states={"editor": {"split": True}}),
        terminal=TerminalState("t1", [TerminalSession("t1", "/repo", ["ls"])]),
        git=GitState("feature", ["a.py"]),
    )

    state = adapter.to_syncable(workspace)

    assert adapter.from_syncable(state) == workspace
    assert state.data["terminal"]["terminalStates"][0]["history"] == ["ls"]


def test_merge_prefers_local_view_and_remote_git():
    adapter = WorkspaceAdapter("ws-1")
    local = _workspace(
        open_files=[
            OpenFile(path="shared.py", active=True, cursor_position=CursorPosition(10, 2), scroll_position=0),
            OpenFile(path="local.py"),
        ],
        layout=Layout(left_dock_width=300),
        git=GitState("local-branch"),
    )
    remote = _workspace(
        open_files=[
            OpenFile(path="remote.py"),
            OpenFile(path="shared.py", cursor_position=CursorPosition(1, 1), scroll_position=42.0),
        ],
        layout=Layout(left_dock_width=100),
        git=GitState("remote-branch", ["x.py"]),
    )

    merged = adapter.merge(local, remote)
    files = {f.path: f for f in merged.open_files}

    assert [f.path for f in merged.open_files] == ["remote.py", "shared.py", "local.py"]
    assert files["shared.py"].cursor_position == CursorPosition(10, 2)
    assert files["shared.py"].scroll_position == 0
    assert files["shared.py"].active is True
    assert merged.layout.left_dock_width == 300
    assert merged.git == GitState("remote-branch", ["x.py"])


def test_merge_keeps_remote_cursor_when_local_has_none():
    adapter = WorkspaceAdapter("ws-1")
    local = _workspace(open_files=[OpenFile(path="a.py")])
    remote = _workspace(open_files=[OpenFile(path="a.py", cursor_position=CursorPosition(5, 0), scroll_position=9.0)])

    merged = adapter.merge(local, remote)

    assert merged.open_files[0].cursor_position == CursorPosition(5, 0)
    assert merged.open_files[0].scroll_position == 9.0


def test_terminal_history_is_unioned_and_capped():
    adapter = WorkspaceAdapter("ws-1", history_limit=3)
    local = _workspace(
        terminal=TerminalState(None, [TerminalSession("t1", "/local", ["ls", "make", "pytest"])]),
    )
    remote = _workspace(
        terminal=TerminalState(
            "t2",
            [
                TerminalSession("t1", "/remote", ["ls", "git status"]),
                TerminalSession("t2", "/tmp", ["top"]),
            ],
        ),
    )

    merged = adapter.merge(local, remote)
    sessions = {s.id: s for s in merged.terminal.sessions}

    assert merged.terminal.active_terminal_id == "t2"
    assert sessions["t1"].cwd == "/local"
    assert sessions["t1"].history == ["git status", "make", "pytest"]
    assert sessions["t2"].history == ["top"]


def test_local_active_terminal_wins():
    adapter = WorkspaceAdapter("ws-1")
    merged = adapter.merge(
        _workspace(terminal=TerminalState("mine")),
        _workspace(terminal=TerminalState("theirs")),
    )
    assert merged.terminal.active_terminal_id == "mine"


def test_summary_reports_counts_and_checksum():
    adapter = WorkspaceAdapter("ws-1")
    workspace = _workspace(open_files=[OpenFile(path="a.py")], git=GitState("main"))

    summary = adapter.summary(workspace)

    assert summary["openFiles"] == 1
    assert summary["terminals"] == 0
    assert summary["branch"] == "main"
    assert summary["checksum"] == compute_checksum(workspace.to_dict())


def test_remote_only_terminal_history_is_capped():
    adapter = WorkspaceAdapter("ws-1", history_limit=2)
    remote = _workspace(
        terminal=TerminalState("t9", [TerminalSession("t9", "/tmp", ["a", "b", "c", "d"])]),
    )

    merged = adapter.merge(_workspace(), remote)

    assert merged.terminal.sessions[0].history == ["c", "d"]
    assert remote.terminal.sessions[0].history == ["a", "b", "c", "d"]
