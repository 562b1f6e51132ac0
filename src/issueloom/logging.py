"""Structured JSON logging for issueloom.

Writes JSONL to .issueloom/issueloom.log with rotation (5MB, 3 backups).
Store, guard, and API modules log through ``logging.getLogger(__name__)``,
which propagates into the ``issueloom`` logger configured here.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "issueloom"
_LOG_FILENAME = "issueloom.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3

# LogRecord attributes passed via ``extra=`` -> key in the JSON entry.
_EXTRA_FIELDS: tuple[tuple[str, str], ...] = (
    ("tool", "tool"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
    ("code", "code"),
    ("path", "path"),
)


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr, key in _EXTRA_FIELDS:
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def _file_handler(log_path: Path) -> RotatingFileHandler:
    handler = RotatingFileHandler(log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(_JsonFormatter())
    return handler


def setup_logging(issueloom_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    """Attach a rotating JSONL handler for .issueloom/issueloom.log. Idempotent.

    Calling again with a different directory swaps the handler rather than
    adding a second one.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_path = issueloom_dir / _LOG_FILENAME
    wanted = os.path.abspath(log_path)

    with _setup_lock:
        for stale in [h for h in logger.handlers if isinstance(h, RotatingFileHandler) and h.baseFilename != wanted]:
            logger.removeHandler(stale)
            stale.close()
        if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
            issueloom_dir.mkdir(parents=True, exist_ok=True)
            logger.addHandler(_file_handler(log_path))
        logger.setLevel(level)
    return logger
