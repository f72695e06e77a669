"""Logging setup for the ``cms_mcp`` logger tree.

stdout carries the MCP stdio transport and the CLI's JSON output, so the
handler installed here always writes to stderr (or an explicit stream).
Records are stamped with the open invocation context: correlation id,
principal, tool, action and elapsed time.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO, Union

from cms_mcp.core.context import get_current_context

ROOT_LOGGER_NAME = "cms_mcp"

CONTEXT_FIELDS = ("correlation_id", "client_id", "tool", "action", "elapsed_ms")

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"} | set(CONTEXT_FIELDS)


class ContextFilter(logging.Filter):
    """Copy the current invocation context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_current_context()
        record.correlation_id = ctx.correlation_id or "-"
        record.client_id = ctx.client_id
        record.tool = ctx.tool or "-"
        record.action = ctx.action or "-"
        record.elapsed_ms = round(ctx.elapsed_ms, 2)
        return True


def _short_name(name: str) -> str:
    prefix = ROOT_LOGGER_NAME + "."
    return name[len(prefix):] if name.startswith(prefix) else name


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Context fields sit at the top level; attributes passed through
    ``extra=`` (audit events, metrics) are grouped under ``"extra"``.
    """

    def __init__(self, *, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
            "client_id": getattr(record, "client_id", "anonymous"),
        }
        for name in ("tool", "action"):
            value = getattr(record, name, "-")
            if value != "-":
                entry[name] = value
        entry["elapsed_ms"] = getattr(record, "elapsed_ms", 0.0)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra = {
                key: _jsonable(value)
                for key, value in record.__dict__.items()
                if key not in _RECORD_ATTRS
            }
            if extra:
                entry["extra"] = extra

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``2025-01-15 10:30:45 [INFO] [req_a1b2c3d4e5f6] core.dispatcher: message``"""

    def __init__(self, *, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if self.include_timestamp:
            parts.append(datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S"))
        parts.append(f"[{record.levelname}]")

        correlation_id = getattr(record, "correlation_id", "-")
        if correlation_id and correlation_id != "-":
            parts.append(f"[{correlation_id}]")

        tool = getattr(record, "tool", "-")
        if tool != "-":
            action = getattr(record, "action", "-")
            parts.append(f"<{tool}.{action}>" if action != "-" else f"<{tool}>")

        parts.append(f"{_short_name(record.name)}:")
        parts.append(record.getMessage())

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    *,
    level: Union[int, str] = logging.INFO,
    format: str = "structured",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Install a single stderr handler on the ``cms_mcp`` logger.

    Calling it again replaces the previous handler. An unknown level name
    falls back to INFO.

    Args:
        level: Level name or number
        format: ``"structured"`` (JSON lines) or ``"human"``
        stream: Destination stream, stderr by default

    Returns:
        The configured ``cms_mcp`` logger
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if format == "structured" else HumanReadableFormatter())
    handler.addFilter(ContextFilter())

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers[:] = [handler]
    return logger
