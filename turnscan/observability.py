"""Structured logging for turnscan.

Adds JSON-formatted output and context propagation (camera id, session id)
on top of the Rich console logging in ``turnscan.utils``.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.logging import RichHandler

from turnscan.utils import console

LOG_LEVEL = os.getenv("TURNSCAN_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("TURNSCAN_LOG_FORMAT", "text")  # "json" or "text"

TEXT_FORMAT = "%(message)s%(log_context)s"

# Context variable for operation-scoped data
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "log_context",
))


class LogContext:
    """Context manager for adding context to logs."""

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        current = _log_context.get().copy()
        current.update(self.context)
        self._token = _log_context.set(current)
        return self

    def __exit__(self, *args):
        if self._token:
            _log_context.reset(self._token)


def current_context() -> Dict[str, Any]:
    """Return a copy of the active log context."""
    return dict(_log_context.get())


class JSONFormatter(logging.Formatter):
    """JSON log formatter for headless deployments."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = _log_context.get()
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextFilter(logging.Filter):
    """Exposes the active log context as ``%(log_context)s`` on text records."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _log_context.get()
        if context:
            context_str = " ".join(f"{k}={v}" for k, v in context.items())
            record.log_context = f" ({context_str})"
        else:
            record.log_context = ""
        return True


def configure_logging(level: Optional[str] = None, format: Optional[str] = None) -> None:
    """Set up root logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format ("json" or "text")
    """
    level = (level or LOG_LEVEL).upper()
    format = format or LOG_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if format == "json":
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = RichHandler(console=console, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="[%X]"))
        handler.addFilter(ContextFilter())

    handler.setLevel(getattr(logging, level))
    root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
