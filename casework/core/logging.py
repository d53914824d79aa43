"""Logging configuration for the casework engine."""

import logging
import sys
import json
import traceback
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterator, Optional
from pathlib import Path

# Context keys rendered by the plain-text formatter, in display order
CONTEXT_KEYS = ("request_id", "user_id", "app_id", "case_id", "step_id")

# Third-party loggers and the level they are held at
_LIBRARY_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "asyncio": logging.WARNING,
}

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context)s"


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        entry.update(getattr(record, "extra_fields", {}))
        return json.dumps(entry, default=str)


class ContextFormatter(logging.Formatter):
    """Plain-text formatter that appends known context fields as ``[key=value ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        fields = getattr(record, "extra_fields", {})
        shown = [f"{key}={fields[key]}" for key in CONTEXT_KEYS if fields.get(key)]
        record.context = f" [{' '.join(shown)}]" if shown else ""
        return super().format(record)


class CaseContextFilter(logging.Filter):
    """Filter to add request and case context to log records.

    The context lives in a :class:`~contextvars.ContextVar`, so each asyncio
    task and thread sees only the fields set by its own request. Explicit
    ``extra_fields`` on a record win over the context.
    """

    def __init__(self, var_name: str = "casework_log_context"):
        super().__init__()
        self._context: ContextVar[Optional[Dict[str, Any]]] = ContextVar(var_name, default=None)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._context.get() or {})

    def push(self, **kwargs) -> Token:
        """Layer ``kwargs`` over the current context; undo with :meth:`reset`."""
        return self._context.set({**self.snapshot(), **kwargs})

    def reset(self, token: Token):
        self._context.reset(token)

    def set_context(self, **kwargs):
        self.push(**kwargs)

    def clear_context(self):
        self._context.set(None)

    def filter(self, record: logging.LogRecord) -> bool:
        record.extra_fields = {**self.snapshot(), **getattr(record, "extra_fields", {})}
        return True


_context_filter = CaseContextFilter()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the casework service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; the file is rotated at ``max_size``
        log_format: Format string for plain-text output
        structured: Emit JSON lines instead of plain text
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Root logger instance
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        fmt = log_format or DEFAULT_FORMAT
        if "%(context)s" not in fmt:
            fmt += "%(context)s"
        formatter = ContextFormatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_context_filter)
        root_logger.addHandler(handler)

    for name, library_level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)

    logging.getLogger("casework").setLevel(logging.DEBUG if level.upper() == "DEBUG" else logging.INFO)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_logging_context(**kwargs):
    """Set context fields for all subsequent log messages."""
    _context_filter.set_context(**kwargs)


def clear_logging_context():
    _context_filter.clear_context()


@contextmanager
def logging_context(**kwargs) -> Iterator[None]:
    """Add context fields for the duration of a block, then restore the previous context."""
    token = _context_filter.push(**{key: value for key, value in kwargs.items() if value is not None})
    try:
        yield
    finally:
        _context_filter.reset(token)


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context fields."""
    logger.log(level, message, extra={"extra_fields": context})


class CaseEventLogger:
    """Audit trail of case transitions and workflow edits."""

    def __init__(self, component_name: str):
        self.logger = get_logger(f"casework.events.{component_name}")
        self.component_name = component_name

    def log_transition(self, case_id: str, from_step_id: Optional[str], to_step_id: Optional[str],
                       status: str, user_id: Optional[str] = None, manual: bool = False):
        """Log a case leaving one step for another."""
        how = "placed" if manual else "moved"
        log_with_context(
            self.logger, logging.INFO,
            f"Case {case_id} {how} from {from_step_id} to {to_step_id} ({status})",
            component=self.component_name,
            case_id=case_id,
            from_step_id=from_step_id,
            to_step_id=to_step_id,
            status=status,
            user_id=user_id,
            manual=manual
        )

    def log_rejected(self, case_id: str, step_id: Optional[str], error: Exception):
        """Log a transition that was refused."""
        log_with_context(
            self.logger, logging.WARNING,
            f"Transition of case {case_id} from {step_id} refused: {error}",
            component=self.component_name,
            case_id=case_id,
            step_id=step_id,
            error_type=type(error).__name__
        )

    def log_workflow_change(self, operation: str, node_count: int, edge_count: int):
        """Log a new version of a workflow document."""
        log_with_context(
            self.logger, logging.DEBUG,
            f"Workflow updated by {operation}: {node_count} nodes, {edge_count} edges",
            component=self.component_name,
            operation=operation,
            node_count=node_count,
            edge_count=edge_count
        )
