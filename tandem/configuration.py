"""Workspace-aware configuration loading for tandem.

Repo defaults live in ``config/*.yml`` next to the package; a workspace may
override any of them from ``<workspace>/config/*.yml``. Files are merged in
name order, then checked against per-section field rules. Problems never
raise: they are collected as :class:`Diagnostic` entries and the offending
value falls back to its default.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional, Tuple

import yaml

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = REPO_ROOT / "config"
WORKSPACE_ENV = "TANDEM_WORKSPACE"

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "missing", "invalid"]

CONFLICT_STRATEGIES = ("manual", "local_wins", "remote_wins", "newest_wins", "merge")
PRIORITY_STRATEGIES = ("immediate", "batch", "lazy")


@dataclass(frozen=True)
class FieldRule:
    """Expected type, default and optional allowed values of one setting."""

    kind: type
    default: Any
    choices: Tuple[str, ...] = ()

    def fresh_default(self) -> Any:
        return deepcopy(self.default)

    def accepts(self, value: Any) -> bool:
        # bool is an int subclass; YAML "yes" must not pass as a count.
        if self.kind is int and isinstance(value, bool):
            return False
        return isinstance(value, self.kind)


SECTION_RULES: Dict[str, Dict[str, FieldRule]] = {
    "logging": {
        "level": FieldRule(str, "INFO"),
        "structured": FieldRule(bool, True),
    },
    "sync": {
        "conflict_strategy": FieldRule(str, "manual", CONFLICT_STRATEGIES),
        "verify_checksums": FieldRule(bool, False),
        "history_limit": FieldRule(int, 100),
        "priorities": FieldRule(list, []),
    },
}


@dataclass
class Diagnostic:
    """Represents a configuration validation or loading issue."""

    level: DiagnosticLevel
    message: str
    source: Optional[Path] = None


@dataclass
class ConfigurationBundle:
    """All configuration data a sync session needs at runtime."""

    workspace_dir: Path
    status: ConfigurationStatus
    merged: Dict[str, Any] = field(default_factory=dict)
    repo_defaults: Dict[str, Any] = field(default_factory=dict)
    workspace_overrides: Dict[str, Any] = field(default_factory=dict)
    files_loaded: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(diag.level == "error" for diag in self.diagnostics)


def resolve_workspace_dir(
    env: Optional[Mapping[str, str]] = None,
    default: str = "~/.tandem",
) -> Path:
    """Resolve the workspace path from the environment."""

    env_source = env or os.environ
    return Path(env_source.get(WORKSPACE_ENV, default)).expanduser()


def load_runtime_configuration(workspace_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load repo defaults, layer workspace overrides on top and validate."""

    workspace = workspace_dir or resolve_workspace_dir()
    bundle = ConfigurationBundle(workspace_dir=workspace, status="ready")

    bundle.repo_defaults = _read_layer(DEFAULT_CONFIG_DIR, "repo defaults", bundle)

    if not workspace.is_dir():
        problem = "does not exist" if not workspace.exists() else "is not a directory"
        bundle.diagnostics.append(
            Diagnostic(level="error", message=f"Workspace path '{workspace}' {problem}.")
        )
        bundle.status = "missing" if not workspace.exists() else "invalid"
    else:
        bundle.workspace_overrides = _read_layer(workspace / "config", "workspace overrides", bundle)

    merged = deepcopy(bundle.repo_defaults)
    _deep_merge_dicts(merged, bundle.workspace_overrides)
    bundle.merged = _validate(merged, bundle.diagnostics)

    if bundle.status == "ready" and bundle.has_errors:
        bundle.status = "invalid"
    return bundle


def _read_layer(directory: Path, label: str, bundle: ConfigurationBundle) -> Dict[str, Any]:
    """Merge every YAML mapping found in ``directory``, in file-name order."""

    layer: Dict[str, Any] = {}
    if not directory.is_dir():
        level: DiagnosticLevel = "error" if directory.exists() else "warning"
        bundle.diagnostics.append(
            Diagnostic(
                level=level,
                message=f"No usable configuration directory at '{directory}' ({label}).",
                source=directory,
            )
        )
        return layer

    for path in sorted(directory.glob("*.yml")) + sorted(directory.glob("*.yaml")):
        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            bundle.diagnostics.append(
                Diagnostic(level="error", message=f"Failed to parse '{path}': {exc}", source=path)
            )
            continue

        if content is not None and not isinstance(content, MutableMapping):
            bundle.diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Ignoring '{path}' because it does not contain a mapping.",
                    source=path,
                )
            )
            continue

        _deep_merge_dicts(layer, dict(content or {}))
        bundle.files_loaded.append(path)

    return layer


def _deep_merge_dicts(dest: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    """Recursively merge mapping values; lists are replaced, not appended."""

    for key, value in source.items():
        if isinstance(dest.get(key), MutableMapping) and isinstance(value, Mapping):
            _deep_merge_dicts(dest[key], value)
        else:
            dest[key] = deepcopy(value)


def _validate(config: Dict[str, Any], diagnostics: List[Diagnostic]) -> Dict[str, Any]:
    for key in config:
        if key not in SECTION_RULES:
            diagnostics.append(
                Diagnostic(level="warning", message=f"Unknown configuration key 'config.{key}'.")
            )

    for section, rules in SECTION_RULES.items():
        values = config.get(section)
        if values is None:
            values = {}
        elif not isinstance(values, dict):
            diagnostics.append(
                Diagnostic(level="error", message=f"'config.{section}' must be a mapping.")
            )
            values = {}
        config[section] = values

        for key in values:
            if key not in rules:
                diagnostics.append(
                    Diagnostic(
                        level="warning",
                        message=f"Unknown configuration key 'config.{section}.{key}'.",
                    )
                )
        for key, rule in rules.items():
            values[key] = _checked(f"config.{section}.{key}", values.get(key), rule, diagnostics)

    sync = config["sync"]
    sync["priorities"] = _checked_priorities(sync["priorities"], diagnostics)
    return config


def _checked(path: str, value: Any, rule: FieldRule, diagnostics: List[Diagnostic]) -> Any:
    if value is None:
        return rule.fresh_default()
    if not rule.accepts(value):
        diagnostics.append(
            Diagnostic(level="error", message=f"'{path}' must be of type {rule.kind.__name__}.")
        )
        return rule.fresh_default()
    if rule.choices and value not in rule.choices:
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"'{path}' must be one of {', '.join(rule.choices)} (got '{value}').",
            )
        )
        return rule.fresh_default()
    return value


def _checked_priorities(entries: List[Any], diagnostics: List[Diagnostic]) -> List[Dict[str, Any]]:
    """Drop non-mapping entries and report malformed fields of the rest."""

    kept: List[Dict[str, Any]] = []
    for idx, entry in enumerate(entries):
        path = f"config.sync.priorities[{idx}]"
        if not isinstance(entry, dict):
            diagnostics.append(Diagnostic(level="error", message=f"'{path}' must be a mapping."))
            continue
        kept.append(entry)

        if not entry.get("type"):
            diagnostics.append(Diagnostic(level="error", message=f"'{path}.type' is required."))
        priority = entry.get("priority", 0)
        if not isinstance(priority, int) or isinstance(priority, bool):
            diagnostics.append(
                Diagnostic(level="error", message=f"'{path}.priority' must be an integer.")
            )
        strategy = entry.get("strategy", "batch")
        if strategy not in PRIORITY_STRATEGIES:
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=(
                        f"'{path}.strategy' must be one of "
                        f"{', '.join(PRIORITY_STRATEGIES)} (got '{strategy}')."
                    ),
                )
            )
    return kept


__all__ = [
    "ConfigurationBundle",
    "ConfigurationStatus",
    "DEFAULT_CONFIG_DIR",
    "Diagnostic",
    "FieldRule",
    "SECTION_RULES",
    "load_runtime_configuration",
    "resolve_workspace_dir",
]
