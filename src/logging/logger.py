# src/logging/logger.py — v1
"""Formatters and setup for the ``shipyard`` logger tree.

Every record carries the control loop, workload, run and stage taken from
``logging.context``, so interleaved output from the pipeline workers, the
reconciler and the autoscalers can be told apart.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shipyard.logging.context import LogContext, get_context

ROOT_LOGGER = "shipyard"
LOG_FORMATS = ("json", "text")


def _created_at(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _created_at(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_context().as_dict()
        if context:
            entry["context"] = context
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _context_tags(ctx: LogContext) -> list[str]:
    tags = []
    if ctx.loop and ctx.loop != ctx.workload:
        tags.append(f"{{{ctx.loop}}}")
    if ctx.workload:
        tags.append(f"[{ctx.workload}]")
    if ctx.run_id:
        tags.append(f"<{ctx.run_id}>")
    if ctx.stage:
        tags.append(f"({ctx.stage})")
    return tags


class TextFormatter(logging.Formatter):
    """Single-line output: time, level, logger, context tags, message."""

    def format(self, record: logging.LogRecord) -> str:
        line = " ".join([
            _created_at(record).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname:8s}]",
            record.name,
            *_context_tags(get_context()),
            f"- {record.getMessage()}",
        ])
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    return level


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
) -> None:
    """Attach stderr (and optionally rotating file) handlers to ``shipyard``.

    Calling it again replaces the previous handlers.

    Raises:
        ValueError: On an unknown level or format.
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(_level(level))
    root.handlers.clear()

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        from shipyard.logging.handlers import create_rotating_handler

        file_handler = create_rotating_handler(log_file, rotation=rotation, retention=retention)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
