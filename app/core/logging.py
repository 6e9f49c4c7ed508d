"""
Correlation-aware logging helpers.

Every log record emitted while a refund attempt is running carries the
attempt's correlation id, so the steps of one saga can be followed across
the web process, Celery workers and log files.

Components:
    - correlation_context: Context manager binding a correlation id to the thread
    - get_correlation_id: Read the id bound to the current thread
    - CorrelationIdFilter: logging.Filter that stamps records with the id

Usage:
    from core.logging import correlation_context

    with correlation_context(attempt_id):
        logger.info("Refund received", extra={"item_id": item_id})

    # settings.LOGGING
    "filters": {
        "correlation_id": {"()": "core.logging.CorrelationIdFilter"},
    },
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

# Thread-local storage for the active correlation id
_context = threading.local()

NO_CORRELATION_ID = "-"


def set_correlation_id(correlation_id: str | None) -> None:
    """Bind a correlation id to the current thread."""
    _context.correlation_id = correlation_id


def get_correlation_id() -> str | None:
    """Return the correlation id bound to the current thread, if any."""
    return getattr(_context, "correlation_id", None)


@contextmanager
def correlation_context(correlation_id: str) -> Generator[str, None, None]:
    """
    Bind a correlation id for the duration of the block.

    Nested blocks restore the outer id on exit.
    """
    previous = get_correlation_id()
    set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        set_correlation_id(previous)


class CorrelationIdFilter(logging.Filter):
    """
    Add correlation_id to log records.

    Records that already carry a correlation_id (passed via ``extra``)
    are left untouched.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


__all__ = [
    "CorrelationIdFilter",
    "correlation_context",
    "get_correlation_id",
    "set_correlation_id",
]
