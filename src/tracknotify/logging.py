"""Logging configuration for tracknotify.

Structured logging for the whole application: every module gets its logger
through `get_logger(__name__)` and passes structured values via `extra`.

Usage:
    from tracknotify.logging import LogContext, get_logger, setup_logging

    # At application startup
    setup_logging()

    # In each module
    logger = get_logger(__name__)
    logger.info("Fetched issue history", extra={"issue_id": "PRJ-1", "changes": 3})

    # Tag every record emitted while a project cycle runs
    with LogContext(project="PRJ"):
        ...
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, TextIO

from tracknotify.constants import LOG_DATE_FORMAT, LOG_FORMAT

# Attributes every LogRecord carries; anything else came in through `extra`.
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_context_fields: ContextVar[dict[str, Any]] = ContextVar("tracknotify_log_fields", default={})


class StructuredFormatter(logging.Formatter):
    """Formatter that appends `extra` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }

        if not fields:
            return text
        return " | ".join([text, *(f"{key}={value}" for key, value in fields.items())])


class ContextFieldsFilter(logging.Filter):
    """Copies the fields bound by LogContext onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context_fields.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


# Third-party loggers held at WARNING.
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def setup_logging(level: int = logging.INFO, stream: TextIO | None = None) -> None:
    """Route all records through one structured handler.

    Replaces whatever handlers the root logger had, so calling it twice
    does not duplicate output.

    Args:
        level: Level for the root and tracknotify loggers.
        stream: Destination, stderr when omitted.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler.addFilter(ContextFieldsFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("tracknotify").setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module.

    Args:
        name: The module name (typically __name__).

    Returns:
        A Logger instance.
    """
    return logging.getLogger(name)


class LogContext:
    """Context manager binding structured fields to all records in scope.

    Fields live in a context variable, so concurrent asyncio tasks (one
    per project) each see only their own fields.

    Usage:
        with LogContext(project="PRJ"):
            logger.info("Cycle started")
            # The log will include: project=PRJ
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: Any = None

    def __enter__(self) -> "LogContext":
        merged = {**_context_fields.get(), **self.fields}
        self._token = _context_fields.set(merged)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _context_fields.reset(self._token)
            self._token = None
