# src/logging/logger.py - v1
"""Root ``nftmeta`` logger configuration.

Log records carry the contextvars-bound collection/session/operation
(see logging/context.py) and an optional ``data`` dict passed through
``extra``, used for pipeline counters::

    logger.debug("Chunk merged", extra={"data": {"resolved": 18, "watermark": 48}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from nftmeta.logging.context import get_context

# HTTP client libraries log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def _record_data(record: logging.LogRecord) -> dict[str, Any]:
    data = getattr(record, "data", None)
    return data if isinstance(data, dict) else {}


class JsonFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, context, data."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context_dict = get_context().as_dict()
        if context_dict:
            log_entry["context"] = context_dict
        data = _record_data(record)
        if data:
            log_entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line console format: ``time [LEVEL] logger [KATS#session] (op) - msg k=v``."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        parts = [stamp.strftime("%Y-%m-%d %H:%M:%S"), f"[{record.levelname:8s}]", record.name]
        if ctx.collection:
            tag = ctx.collection
            if ctx.session_id:
                tag += f"#{ctx.session_id[:8]}"
            parts.append(f"[{tag}]")
        if ctx.operation:
            parts.append(f"({ctx.operation})")
        parts.append(f"- {record.getMessage()}")
        parts.extend(f"{k}={v}" for k, v in _record_data(record).items())
        line = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
) -> logging.Logger:
    """Configure the ``nftmeta`` logger and return it.

    Console output goes to stderr; stdout is reserved for CLI results.
    Re-running replaces previously installed handlers.

    Args:
        level: Log level name; unknown names fall back to INFO.
        log_format: "json" or "text".
        log_file: Optional rotating log file path.
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
    """
    root_logger = logging.getLogger("nftmeta")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        from nftmeta.logging.handlers import create_rotating_handler

        file_handler = create_rotating_handler(log_file, rotation=rotation, retention=retention)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root_logger
