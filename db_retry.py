"""
Database query retry helper.

Retries a query on connection / timeout failures with exponential backoff
(delay, 2*delay, 4*delay, ...). Anything else propagates immediately.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, DisconnectionError, IntegrityError, OperationalError

from logging_config import get_logger

log = get_logger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
RETRY_DELAY = 1.0

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "econnrefused",
    "enotfound",
    "etimedout",
    "server closed the connection",
)


def is_transient_error(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, DisconnectionError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if not isinstance(exc, DBAPIError) or isinstance(exc, IntegrityError):
        return False
    message = str(exc.orig or exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def retry_query(
    query_fn: Callable[[], T],
    retries: int = MAX_RETRIES,
    delay: float = RETRY_DELAY,
    session=None,
) -> T:
    """
    Run query_fn, retrying transient database failures.

    session: optional SQLAlchemy session rolled back between attempts so the
    next attempt starts on a clean transaction.
    """
    if retries < 1:
        raise ValueError("retries must be >= 1")

    for attempt in range(retries):
        try:
            return query_fn()
        except Exception as exc:
            if not is_transient_error(exc) or attempt == retries - 1:
                raise

            wait = delay * (2 ** attempt)
            log.warning(
                "Database query failed (attempt %d/%d), retrying in %.2fs: %s",
                attempt + 1, retries, wait, exc,
            )
            if session is not None:
                session.rollback()
            time.sleep(wait)

    raise RuntimeError("unreachable")
