"""
Retry policy for idempotent store writes.

Only statements that are safe to repeat (conditional inserts keyed on a
deterministic id, point reads) go through ``store_retry``.  Appends such as
new swipes or messages are never retried here because a retry after an
ambiguous failure could duplicate them.
"""

from __future__ import annotations

import structlog
from sqlalchemy.exc import DBAPIError, OperationalError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from featur.config import get_settings

logger = structlog.get_logger("featur.retry")


def is_transient_store_error(exc: BaseException) -> bool:
    """Return True for errors worth retrying: dropped connections,
    lock timeouts, serialization failures."""
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "store_retry",
        attempt_number=retry_state.attempt_number,
        error=str(exc)[:200] if exc else None,
    )


def store_retry() -> AsyncRetrying:
    """Build the ``AsyncRetrying`` controller used around idempotent writes::

        async for attempt in store_retry():
            with attempt:
                ...
    """
    settings = get_settings()
    return AsyncRetrying(
        retry=retry_if_exception(is_transient_store_error),
        stop=stop_after_attempt(settings.STORE_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=0.1,
            min=0.1,
            max=settings.STORE_RETRY_MAX_WAIT,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )
