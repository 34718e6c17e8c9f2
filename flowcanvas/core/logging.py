"""Logging setup for flowcanvas.

Log records carry the identity of the workflow being edited (``workflow_id``
and friends) so interleaved sessions can be told apart. The context lives in
a :class:`contextvars.ContextVar`, which keeps it scoped to the asyncio task
that set it.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Package loggers that follow the configured level; everything else stays at INFO
ENGINE_LOGGERS = ("flowcanvas.core", "flowcanvas.ui", "flowcanvas.session")
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_workflow_context: ContextVar[Dict[str, Any]] = ContextVar("flowcanvas_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with the workflow context inlined."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.lineno}",
        }
        entry.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            entry["error"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class WorkflowContextFilter(logging.Filter):
    """Copies the current workflow context onto each record as ``extra_fields``.

    Fields passed explicitly through ``extra={"extra_fields": ...}`` win over
    the ambient context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        explicit = getattr(record, "extra_fields", None) or {}
        record.extra_fields = {**_workflow_context.get(), **explicit}
        return True


_context_filter = WorkflowContextFilter()


def _handlers(log_file: Optional[str], max_size: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))
    return handlers


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Route flowcanvas logs to stdout and, optionally, a rotating file.

    Args:
        level: Logging level name
        log_file: Optional file path; its directory is created when missing
        log_format: Format string for plain-text output
        structured: Emit JSON records instead of plain text
        max_size: File size in bytes that triggers rotation
        backup_count: Rotated files to keep

    Returns:
        The configured root logger
    """
    level_name = level.upper()
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for handler in _handlers(log_file, max_size, backup_count):
        handler.setFormatter(formatter)
        handler.addFilter(_context_filter)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    engine_level = logging.DEBUG if level_name == "DEBUG" else logging.INFO
    for name in ENGINE_LOGGERS:
        logging.getLogger(name).setLevel(engine_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_logging_context(**fields: Any) -> None:
    """Add fields to the workflow context of the current task."""
    _workflow_context.set({**_workflow_context.get(), **fields})


def clear_logging_context() -> None:
    _workflow_context.set({})
