"""Retry with exponential backoff for ledger and store operations."""

import functools
import sqlite3
import time
from typing import Any, Callable, TypeVar

from keeper.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int, base_delay: float, max_delay: float, backoff_factor: float
) -> float:
    """Delay before retry number ``attempt`` (zero based)."""
    return min(base_delay * (backoff_factor**attempt), max_delay)


def with_retry(
    max_retries: int = 5,
    base_delay: float = 0.1,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator that retries a call with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        backoff_factor: Multiplier for exponential backoff
        retry_on: Tuple of exception types to retry on
        sleep: Sleep function, replaceable in tests

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_retries:
                        raise

                    delay = backoff_delay(
                        attempt, base_delay, max_delay, backoff_factor
                    )
                    logger.debug(
                        "retrying_operation",
                        operation=getattr(func, "__name__", repr(func)),
                        attempt=attempt + 1,
                        max_attempts=max_retries + 1,
                        delay=round(delay, 3),
                        error=str(e),
                    )
                    sleep(delay)

            raise RuntimeError("Unexpected retry loop exit")

        return wrapper

    return decorator


def _is_transient_sqlite_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return (
        "database is locked" in message
        or "database table is locked" in message
        or "cannot start a transaction within a transaction" in message
    )


def with_db_retry(func: Callable[..., T]) -> Callable[..., T]:
    """Retry SQLite operations that fail on lock contention only.

    Schema errors (no such table, syntax error) are raised immediately.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        max_retries = 5
        for attempt in range(max_retries + 1):
            try:
                return func(*args, **kwargs)
            except sqlite3.OperationalError as e:
                if not _is_transient_sqlite_error(e) or attempt == max_retries:
                    raise
                delay = backoff_delay(attempt, 0.05, 1.0, 2.0)
                logger.debug(
                    "database_locked_retry",
                    operation=func.__name__,
                    attempt=attempt + 1,
                    delay=round(delay, 3),
                )
                time.sleep(delay)

        raise RuntimeError("Unexpected retry loop exit")

    return wrapper
