"""Logging setup: JSON-lines rotating file plus an optional stderr console."""

from __future__ import annotations

import json
import logging
import sys
import tempfile
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

__all__ = [
    "JsonLogFormatter",
    "configure_logger",
]

LOGGER_NAME = "spice_theory"


class JsonLogFormatter(logging.Formatter):
    """Emit log records as structured JSON lines."""

    _RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = {
            key: _coerce_value(value)
            for key, value in record.__dict__.items()
            if key not in self._RESERVED
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logger(
    *,
    log_dir: Path,
    level: str = "INFO",
    verbose: bool = False,
    max_bytes: int = 1024 * 1024,
    backup_count: int = 3,
    name: str = LOGGER_NAME,
) -> tuple[logging.Logger, Path]:
    """Attach a JSON file handler (and optionally a console) to the package logger."""

    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(logging.DEBUG)

    file_level = logging.DEBUG if verbose else _coerce_level(level)
    path = _prepare_log_dir(log_dir) / f"{name}.log"

    for handler in list(logger.handlers):
        if getattr(handler, "_spice_theory_file", False):
            logger.removeHandler(handler)
            handler.close()
    try:
        file_handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    except OSError:
        path = _prepare_log_dir(_fallback_log_dir()) / f"{name}.log"
        file_handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    file_handler.setFormatter(JsonLogFormatter())
    file_handler.setLevel(file_level)
    file_handler._spice_theory_file = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    has_console = any(getattr(h, "_spice_theory_console", False) for h in logger.handlers)
    if verbose and not has_console:
        console = logging.StreamHandler(stream=sys.stderr)
        console.setLevel(logging.DEBUG)
        console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        console._spice_theory_console = True  # type: ignore[attr-defined]
        logger.addHandler(console)

    return logger, path


def _coerce_level(level: str) -> int:
    numeric = logging.getLevelName(str(level).upper())
    if isinstance(numeric, int):
        return numeric
    return logging.INFO


def _coerce_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(key): _coerce_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_coerce_value(item) for item in value]
    return repr(value)


def _prepare_log_dir(log_dir: Path) -> Path:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir
    except OSError:
        fallback = _fallback_log_dir()
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


def _fallback_log_dir() -> Path:
    return Path(tempfile.gettempdir()) / "spice-theory-logs"
