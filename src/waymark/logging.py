"""Structured JSON logging for waymark.

Writes JSONL to .waymark/waymark.log with rotation (5MB, 3 backups). Lines
about a single work item carry its id, type and actor as top-level keys
(see ``work_item_extra``), and lifecycle errors add their kind and fields, so
the log can be filtered per item without parsing messages.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from waymark.errors import LifecycleError

_LOG_FILENAME = "waymark.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

# (LogRecord attribute, JSON key). ``args`` is reserved on LogRecord.
_EXTRA_FIELDS: tuple[tuple[str, str], ...] = (
    ("work_item_id", "work_item_id"),
    ("work_item_type", "work_item_type"),
    ("actor", "actor"),
    ("from_phase", "from_phase"),
    ("to_phase", "to_phase"),
    ("version", "version"),
    ("route", "route"),
    ("args_data", "args"),
    ("status_code", "status_code"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
)


def work_item_extra(work_item_id: str, work_item_type: str, *, actor: str = "", **fields: Any) -> dict[str, Any]:
    """``extra=`` payload tying a log line to one work item."""
    return {"work_item_id": work_item_id, "work_item_type": work_item_type, "actor": actor or "-", **fields}


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
            exc = record.exc_info[1]
            entry["exception"] = str(exc)
            if isinstance(exc, LifecycleError):
                entry["error_kind"] = exc.kind
                entry["error_fields"] = exc.fields
        return json.dumps(entry, default=str)


def setup_logging(waymark_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    """Attach the JSONL file handler for *waymark_dir* to the package logger.

    Calling it again for the same directory is a no-op. A different directory
    replaces the previous file handler, so one process never writes to two
    projects' logs.
    """
    logger = logging.getLogger("waymark")
    log_path = waymark_dir / _LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        for h in logger.handlers[:]:
            if not isinstance(h, RotatingFileHandler):
                continue
            if h.baseFilename == target_filename:
                return logger
            logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(str(log_path), maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT)
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger
