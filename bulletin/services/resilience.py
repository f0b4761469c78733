"""
Retry helpers for database reads.

Idempotent re-reads (visible listings, archive listings, audit queries) are
retried transparently when the connection hiccups. Mutations are never
retried here; their errors go straight back to the caller.
"""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError

from bulletin.constants import ReadRetry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_sync_retry(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 30.0,
    retry_exceptions: tuple[type[Exception], ...] = (Exception,),
    before_retry: Callable[..., None] | None = None,
) -> Callable:
    """
    Decorator for sync functions with exponential backoff retry.

    Args:
        max_attempts: Maximum number of retry attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        retry_exceptions: Tuple of exception types to retry on
        before_retry: Called with the wrapped function's args before each retry
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: Exception | None = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_exceptions as e:
                    last_exception = e
                    if attempt == max_attempts:
                        logger.error(f"{func.__name__} failed after {max_attempts} attempts: {e}")
                        raise

                    wait_time = min(min_wait * (2 ** (attempt - 1)), max_wait)
                    logger.warning(f"{func.__name__} attempt {attempt} failed: {e}. Retrying in {wait_time:.1f}s...")
                    if before_retry is not None:
                        before_retry(*args, **kwargs)
                    time.sleep(wait_time)

            if last_exception:
                raise last_exception
            raise RuntimeError(f"{func.__name__} failed without exception")

        return wrapper

    return decorator


def _rollback_session(db, *args: Any, **kwargs: Any) -> None:
    """Reset the session so the next attempt starts on a fresh connection."""
    db.rollback()


def read_retry(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator with read-optimized retry settings.

    The wrapped function must take the Session as its first argument.
    Uses:
    - 3 attempts
    - Exponential backoff: 0.1s, 0.2s (capped at 1s)
    - Retries on OperationalError (dropped connection, server restart)
    """
    return with_sync_retry(
        max_attempts=ReadRetry.MAX_ATTEMPTS,
        min_wait=ReadRetry.MIN_WAIT_SECONDS,
        max_wait=ReadRetry.MAX_WAIT_SECONDS,
        retry_exceptions=(OperationalError,),
        before_retry=_rollback_session,
    )(func)
