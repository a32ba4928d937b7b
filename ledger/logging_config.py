"""
Logging setup for the ledger.

Modules log through `logging.getLogger(__name__)`, so every logger lives
under the "ledger" namespace. configure_logging() attaches a single stderr
handler to that namespace and a filter that stamps each record with the
current request id, which lets one request's log lines be grepped together.

The request id is kept in a ContextVar rather than thread-local storage
because each request runs as an asyncio task.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

LOGGER_NAME = "ledger"
LOG_FORMAT = "%(asctime)s - %(name)s - [%(levelname)s] [%(request_id)s] - %(message)s"

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Adds `request_id` to every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the "ledger" logger. Safe to call more than once.

    Unknown level names fall back to INFO.
    """
    logger = logging.getLogger(LOGGER_NAME)
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logger.setLevel(numeric_level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler.addFilter(RequestIdFilter())
        logger.addHandler(handler)

    return logger


@contextmanager
def request_id_context(request_id: str) -> Iterator[None]:
    """Bind `request_id` to log records emitted inside the block."""
    token = _request_id.set(request_id)
    try:
        yield
    finally:
        _request_id.reset(token)
