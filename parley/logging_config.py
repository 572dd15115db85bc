"""
Centralized logging configuration for the parley server package.

Format: LEVEL: timestamp : package.file.function.lineno : [delivery] log-line
Example: INFO: 2026-02-17 13:01:23 : server.services.reconciler.reconcile.162 : [whe_3f9c...] Session ses-... marked as completed

The bracketed delivery id is present only while a webhook delivery is being
handled (see ``delivery_context``). It is the id of the audit row written for
that delivery, so log lines and ``webhook_events`` rows can be joined.

Usage:
    from parley.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Something happened")
"""

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

_current_delivery: ContextVar[Optional[str]] = ContextVar("parley_delivery", default=None)

# Third-party loggers that drown out request logs at INFO
_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "alembic.runtime.migration")


@contextmanager
def delivery_context(delivery_id: str) -> Iterator[str]:
    """Tag every log line emitted inside the block with ``delivery_id``."""
    token = _current_delivery.set(delivery_id)
    try:
        yield delivery_id
    finally:
        _current_delivery.reset(token)


_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    # Stamped at creation so handlers that format later still see it
    record = _base_record_factory(*args, **kwargs)
    record.delivery_id = _current_delivery.get()
    return record


logging.setLogRecordFactory(_record_factory)


def _location(record: logging.LogRecord) -> str:
    # parley.routers.webhooks -> server.routers.webhooks
    module = record.name
    if module == "parley" or module.startswith("parley."):
        module = "server" + module[len("parley"):]

    filename = record.filename.removesuffix(".py")
    if module.endswith(f".{filename}"):
        return f"{module}.{record.funcName}.{record.lineno}"
    return f"{module}.{filename}.{record.funcName}.{record.lineno}"


class ParleyFormatter(logging.Formatter):
    """LEVEL: timestamp : location : [delivery] message, with tracebacks appended."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        message = record.getMessage()
        delivery = getattr(record, "delivery_id", None)
        if delivery:
            message = f"[{delivery}] {message}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{record.levelname}: {timestamp} : {_location(record)} : {message}"


def setup_logging(level: Optional[int] = None, stream: Optional[object] = None) -> None:
    """
    Configure root logging for the entire server package.

    Call this once at application startup (in the main.py lifespan).

    Args:
        level: Logging level (default: from LOG_LEVEL env var, fallback INFO)
        stream: Output stream (default: sys.stdout)
    """
    if level is None:
        env_level = os.getenv("LOG_LEVEL", "INFO").upper()
        level = getattr(logging, env_level, logging.INFO)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ParleyFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("parley").setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
