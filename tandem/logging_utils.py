"""Logging helpers for tandem sync sessions."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import TYPE_CHECKING, List, Optional, Union

if TYPE_CHECKING:
    from .configuration import ConfigurationBundle

LOG_SUBPATH = Path("logs") / "sync" / "engine.log"
STRUCTURED_LOG_SUBPATH = Path("logs") / "sync" / "engine.jsonl"
MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log segment
BACKUP_COUNT = 3
REPO_ROOT = Path(__file__).resolve().parent.parent
FALLBACK_ROOT = REPO_ROOT / ".tandem_runtime"

# LogRecord attributes that are not caller-supplied extras.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if extra:
            log_entry["extra"] = extra
        return json.dumps(log_entry, default=str)


def setup_logging(
    base_dir: Path,
    level: Union[str, int] = logging.WARNING,
    structured: bool = True,
    structured_path: Optional[str] = None,
) -> Path:
    """Route the ``tandem`` logger hierarchy to rotating files and stderr.

    Calling it again replaces the previous handlers. ``structured_path`` is
    relative to ``base_dir`` and defaults to ``logs/sync/engine.jsonl``.
    Returns the path of the plain-text log.
    """
    text_formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    log_path = _resolve_path(base_dir, LOG_SUBPATH, "logs")

    handlers: List[logging.Handler] = [
        _rotating(log_path, text_formatter),
        logging.StreamHandler(),
    ]
    handlers[1].setFormatter(text_formatter)
    if structured:
        subpath = Path(structured_path) if structured_path else STRUCTURED_LOG_SUBPATH
        handlers.append(
            _rotating(_resolve_path(base_dir, subpath, "structured logs"), JSONFormatter())
        )

    logger = logging.getLogger("tandem")
    _reset_handlers(logger)
    logger.setLevel(_resolve_level(level))
    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = False
    return log_path


def setup_logging_from_config(bundle: "ConfigurationBundle") -> Path:
    """Apply the ``logging`` section of a loaded configuration."""
    section = bundle.merged.get("logging", {}) if bundle.merged else {}
    return setup_logging(
        bundle.workspace_dir,
        level=section.get("level", "INFO"),
        structured=bool(section.get("structured", True)),
    )


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return int(level)


def _resolve_path(base_dir: Path, subpath: Path, label: str) -> Path:
    primary = base_dir / subpath
    try:
        primary.parent.mkdir(parents=True, exist_ok=True)
        return primary
    except PermissionError:
        fallback = FALLBACK_ROOT / subpath
        fallback.parent.mkdir(parents=True, exist_ok=True)
        print(
            f"[config] Unable to write {label} under '{base_dir}'; "
            f"falling back to '{fallback.parent}'.",
            file=sys.stderr,
        )
        return fallback


def _rotating(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


__all__ = [
    "setup_logging",
    "setup_logging_from_config",
    "JSONFormatter",
    "LOG_SUBPATH",
    "STRUCTURED_LOG_SUBPATH",
    "FALLBACK_ROOT",
]
