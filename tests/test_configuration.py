"""Tests for the workspace-aware configuration loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from tandem import configuration


def _prepare_repo_defaults(tmp_path: Path, content: str = "sync:\n  history_limit: 50\n") -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "10-default.yml").write_text(content, encoding="utf-8")
    return config_dir


def _workspace_with_overrides(tmp_path: Path, name: str, content: str) -> Path:
    workspace = tmp_path / "workspace"
    overrides_dir = workspace / "config"
    overrides_dir.mkdir(parents=True)
    (overrides_dir / name).write_text(content, encoding="utf-8")
    return workspace


def test_resolve_workspace_dir_uses_env_expansion(tmp_path: Path):
    env = {"TANDEM_WORKSPACE": str(tmp_path / "workspace")}
    path = configuration.resolve_workspace_dir(env=env)
    assert path == tmp_path / "workspace"


def test_load_runtime_configuration_merges_repo_and_workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(
        tmp_path,
        content="sync:\n  conflict_strategy: manual\n  history_limit: 50\n",
    )
    workspace = _workspace_with_overrides(
        tmp_path,
        "20-overrides.yml",
        "sync:\n  conflict_strategy: remote_wins\n",
    )
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(workspace)

    assert bundle.status == "ready"
    assert bundle.merged["sync"]["conflict_strategy"] == "remote_wins"
    assert bundle.merged["sync"]["history_limit"] == 50
    assert bundle.merged["sync"]["verify_checksums"] is False
    assert bundle.merged["logging"]["level"] == "INFO"
    assert len(bundle.files_loaded) == 2


def test_load_runtime_configuration_reports_missing_workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path)
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(tmp_path / "missing")

    assert bundle.status == "missing"
    assert any(diag.level == "error" for diag in bundle.diagnostics)


def test_load_runtime_configuration_handles_bad_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path)
    workspace = _workspace_with_overrides(tmp_path, "broken.yml", "sync: [\n")
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(workspace)

    assert bundle.status == "invalid"
    assert any("Failed to parse" in diag.message for diag in bundle.diagnostics)


def test_invalid_conflict_strategy_falls_back_to_default(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path)
    workspace = _workspace_with_overrides(
        tmp_path,
        "20-overrides.yml",
        "sync:\n  conflict_strategy: coin_flip\n  history_limit: yes\n",
    )
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(workspace)

    assert bundle.status == "invalid"
    assert bundle.merged["sync"]["conflict_strategy"] == "manual"
    assert bundle.merged["sync"]["history_limit"] == 100
    assert any("coin_flip" in diag.message for diag in bundle.diagnostics)


def test_priority_entries_are_validated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path)
    workspace = _workspace_with_overrides(
        tmp_path,
        "20-overrides.yml",
        "sync:\n  priorities:\n    - {type: notes, priority: 5, strategy: whenever}\n    - just-a-string\n",
    )
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(workspace)

    messages = [diag.message for diag in bundle.diagnostics]
    assert bundle.status == "invalid"
    assert any("strategy" in message for message in messages)
    assert bundle.merged["sync"]["priorities"] == [{"type": "notes", "priority": 5, "strategy": "whenever"}]


def test_unknown_keys_are_warnings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path)
    workspace = _workspace_with_overrides(tmp_path, "20-overrides.yml", "telemetry:\n  enabled: true\n")
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(workspace)

    assert bundle.status == "ready"
    assert any(
        diag.level == "warning" and "config.telemetry" in diag.message for diag in bundle.diagnostics
    )


def test_shipped_defaults_are_valid(tmp_path: Path):
    workspace = tmp_path / "workspace"
    workspace.mkdir()

    bundle = configuration.load_runtime_configuration(workspace)

    assert bundle.status == "ready"
    types = [entry["type"] for entry in bundle.merged["sync"]["priorities"]]
    assert types[0] == "conversation"
