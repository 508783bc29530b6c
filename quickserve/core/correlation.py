"""
Per-request correlation ids for log grouping.

Every accepted connection takes the next id from a process-wide counter
before any asynchronous work starts. The id is carried through the rest of
the request's processing chain in a ContextVar, and ``RequestIdFilter``
copies it onto each log record.
"""

import itertools
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_counter = itertools.count()

_request_id_var: ContextVar[Optional[int]] = ContextVar("quickserve_request_id", default=None)


def next_request_id() -> int:
    """Return the next correlation id. Must be called synchronously on accept."""
    return next(_counter)


def current_request_id() -> Optional[int]:
    """Return the id of the request being processed, or None."""
    return _request_id_var.get()


@contextmanager
def request_scope(request_id: int) -> Iterator[int]:
    """Bind ``request_id`` to the current task for the duration of the block."""
    token = _request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        _request_id_var.reset(token)


class RequestIdFilter(logging.Filter):
    """Attach ``request_id`` to log records ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = _request_id_var.get()
        record.request_id = "-" if request_id is None else request_id
        return True
