"""Structured logging for the knowledge assistant.

Log records carry ``ctx_*`` extras. Besides the extras passed at the call
site, fields bound with :func:`log_context` are attached to every record
emitted inside the block, which is how index jobs and chat turns tag the
lines logged by the components they call into.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import orjson

LOG_LEVEL_ENV = "KA_LOG_LEVEL"
LOG_FORMAT_ENV = "KA_LOG_FORMAT"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s%(ctx)s"

_bound: ContextVar[dict[str, Any]] = ContextVar("ka_log_context", default={})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind ``ctx_<name>`` fields to records logged inside the block."""
    merged = {**_bound.get(), **{f"ctx_{key}": value for key, value in fields.items()}}
    token = _bound.set(merged)
    try:
        yield
    finally:
        _bound.reset(token)


class ContextFilter(logging.Filter):
    """Copies bound context onto records without overriding call-site extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _bound.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key.startswith("ctx_")}


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        payload.update(_context_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


class TextFormatter(logging.Formatter):
    """Human readable lines with context appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        fields = _context_fields(record)
        record.ctx = "".join(f" {key[4:]}={value}" for key, value in fields.items())
        return super().format(record)


def configure_logging(level: str | int | None = None, fmt: str | None = None) -> None:
    """Install a single stdout handler on the root logger.

    ``fmt`` is ``json`` (default) or ``text``; both fall back to the
    ``KA_LOG_FORMAT`` and ``KA_LOG_LEVEL`` environment variables.
    """
    level = level or os.environ.get(LOG_LEVEL_ENV, "INFO")
    fmt = (fmt or os.environ.get(LOG_FORMAT_ENV, "json")).lower()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(TextFormatter() if fmt == "text" else JsonFormatter())
    handler.addFilter(ContextFilter())
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    logging.captureWarnings(True)
    # Model downloads and HTTP clients are chatty at INFO.
    for noisy in ("httpx", "sentence_transformers", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = "knowledge_assistant") -> logging.Logger:
    """Return a logger, configuring the root handler on first use."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["ContextFilter", "JsonFormatter", "TextFormatter", "configure_logging", "get_logger", "log_context"]
