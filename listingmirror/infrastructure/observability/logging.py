"""Logging setup for listingmirror.

Loggers come from :func:`get_logger`. Sync cycles wrap their work in
:func:`log_context`, so every line emitted during a cycle ends with the run
id, including lines logged from the worker thread the cycle runs in.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any, Iterator

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries whose INFO output drowns out the sync log.
_QUIET_LOGGERS = ("urllib3", "requests", "asyncio", "uvicorn.access")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Text formatter that suffixes ``[key=value ...]`` from the active context."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _log_context.get()
        if not fields:
            return line
        suffix = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"{line} [{suffix}]"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; context fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            **_log_context.get(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block.

    Nested blocks merge with the outer fields; the outer set is restored on
    exit::

        with log_context(sync_run_id=7):
            logger.info("Listing walk finished")
    """
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


def configure_logging(
    level: int | str = logging.INFO,
    third_party_level: int = logging.WARNING,
    use_json: bool = False,
    stream: IO[str] | None = None,
) -> None:
    """Install a single root handler. Later calls are ignored.

    Called from the CLI group and from the API factory.
    """
    global _configured
    if _configured:
        return
    _configured = True

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if use_json else ContextualFormatter(_TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``.

    Before :func:`configure_logging` runs, and when nothing else has set up
    logging, the logger gets its own stderr handler so library use still
    produces output.
    """
    logger = logging.getLogger(name)
    if not _configured and not logger.handlers and not logging.getLogger().handlers:
        fallback = logging.StreamHandler()
        fallback.setFormatter(ContextualFormatter(_TEXT_FORMAT))
        logger.addHandler(fallback)
        logger.setLevel(logging.INFO)
    return logger


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context: Any,
) -> None:
    """Log ``exc`` with its traceback at ERROR, plus extra context fields."""
    with log_context(**context):
        logger.error("%s: %s", message, exc, exc_info=exc)
