"""Logging setup for the loadcast package.

Everything logs under the ``loadcast`` namespace to stderr. ``LOADCAST_LOG_LEVEL``
takes a level name or number; ``LOADCAST_LOG_FORMAT=json`` switches to one JSON
object per line, which also carries the run fields passed through ``extra``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

LOG_LEVEL_ENV = "LOADCAST_LOG_LEVEL"
LOG_FORMAT_ENV = "LOADCAST_LOG_FORMAT"

ROOT_LOGGER = "loadcast"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s | %(message)s"
# Attributes copied from LogRecord.__dict__ into JSON output when a caller sets them.
RUN_FIELDS = ("run_id", "source", "driver")


def get_logger(name: str) -> logging.Logger:
    """Logger for a loadcast module; the first call installs the stderr handler."""
    if name != ROOT_LOGGER:
        name = f"{ROOT_LOGGER}.{name}"
    _install_handler()
    return logging.getLogger(name)


def _resolve_level(raw: str | None) -> int:
    if not raw:
        return logging.INFO
    raw = raw.strip()
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else logging.INFO


def _install_handler() -> None:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return
    root.setLevel(_resolve_level(os.environ.get(LOG_LEVEL_ENV)))
    handler = logging.StreamHandler(sys.stderr)
    if os.environ.get(LOG_FORMAT_ENV, "").strip().lower() == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(handler)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": round(record.created, 3),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in RUN_FIELDS:
            value = record.__dict__.get(field)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode()
