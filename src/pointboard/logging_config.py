"""Structured logging configuration for pointboard.

Provides two log formats:
- **dev** (default): human-readable, colourless, with timestamp/level/module.
- **json**: machine-parseable JSON lines for production / log aggregation.

Reconciliation records (failed point awards) attach their context through
``extra=``; the JSON format surfaces those keys as top-level fields and the
dev format appends them as ``key=value`` pairs.

Usage (at application entry point)::

    from pointboard.logging_config import setup_logging
    setup_logging()          # dev format
    setup_logging("json")    # JSON format
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path


# Keys that belong to the standard LogRecord and should not be surfaced
# as user-supplied *extra* fields.
_BUILTIN_ATTRS = frozenset({
    "args", "created", "exc_info", "exc_text", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs", "message", "msg",
    "name", "pathname", "process", "processName", "relativeCreated",
    "stack_info", "thread", "threadName", "taskName", "asctime",
})


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _BUILTIN_ATTRS and not key.startswith("_")
    }


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line.

    Fields: timestamp, level, logger, message, plus any *extra* keys
    attached to the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(_extra_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    """Human-readable lines with any *extra* fields appended."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v!r}" for k, v in extras.items())
        return line


DEV_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEV_DATEFMT = "%H:%M:%S"


def _resolve_level(level: int | str | None, warn: bool) -> int:
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = getattr(logging, level.upper(), None)
    if not isinstance(resolved, int):
        if warn:
            print(
                f"WARNING: Invalid LOG_LEVEL '{level}', falling back to INFO",
                file=sys.stderr,
            )
        return logging.INFO
    return resolved


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def setup_logging(
    fmt: str | None = None,
    level: int | str | None = None,
) -> None:
    """Configure the root logger for the application.

    Parameters
    ----------
    fmt:
        ``"json"`` for structured JSON lines or ``"dev"`` (default) for a
        human-readable format.  Can also be set via the ``LOG_FORMAT``
        environment variable.
    level:
        Logging level (name or int).  Defaults to ``INFO``.  Can also be set
        via the ``LOG_LEVEL`` environment variable.
    """
    fmt = fmt or os.environ.get("LOG_FORMAT", "dev")
    resolved = _resolve_level(level, warn=True)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevFormatter(DEV_FORMAT, datefmt=DEV_DATEFMT))

    root = logging.getLogger()
    # Remove any handlers that basicConfig or prior setup may have added.
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolved)

    # Quieten noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def setup_file_logging(
    log_file: Path,
    level: int | str | None = None,
) -> None:
    """Add a rotating JSON-lines file handler to the root logger.

    Keeps any console handler already installed by :func:`setup_logging`.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8",
    )
    handler.setFormatter(JSONFormatter())
    handler.setLevel(_resolve_level(level, warn=False))
    logging.getLogger().addHandler(handler)
