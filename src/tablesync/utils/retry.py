"""
Retry with exponential backoff for idempotent database reads

Catalog lookups (column metadata, unique keys) are safe to repeat, so
transient failures there are retried. Row mutations are never retried:
a failed mutation aborts the sync and rolls the destination back.

Usage:
    from tablesync.utils.retry import retry_database_operation

    @retry_database_operation(max_retries=3, base_delay=0.5)
    def read_catalog(cursor):
        cursor.execute("SELECT ...")
        return cursor.fetchall()
"""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Message fragments of transient failures across the supported drivers
RETRYABLE_PATTERNS = (
    "timeout",
    "timed out",
    "deadlock",
    "lock wait timeout",
    "lost connection",
    "server has gone away",
    "can't connect",
    "unable to connect",
    "connection refused",
    "connection reset",
    "broken pipe",
    "network error",
    "communication link failure",
    "connection closed",
    "connection terminated",
    "database is locked",
    "ora-03113",
    "ora-03114",
    "ora-12541",
)

RETRYABLE_EXCEPTION_NAMES = (
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
)


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Determine if a database exception is transient

    Args:
        exception: The exception to check

    Returns:
        True if retrying the same statement may succeed
    """
    message = str(exception).lower()
    exception_type = type(exception).__name__.lower()

    if any(pattern in message for pattern in RETRYABLE_PATTERNS):
        return True

    return exception_type in RETRYABLE_EXCEPTION_NAMES


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """
    Exponential delay for a 0-based attempt number with +/-25% jitter

    Args:
        attempt: Number of attempts already made minus one
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound before jitter

    Returns:
        Seconds to sleep, never below 0.1
    """
    delay = min(base_delay * (2.0 ** attempt), max_delay)
    jitter_amount = delay * 0.25
    return max(0.1, delay + random.uniform(-jitter_amount, jitter_amount))


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    on_retry: Callable[[int, Exception, float], None] | None = None,
):
    """
    Decorator retrying transient database errors with exponential backoff

    Non-retryable errors (syntax errors, missing tables, permissions)
    propagate immediately.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds before jitter (default: 30.0)
        on_retry: Callback function(attempt, exception, delay) called on each retry
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            func_name = getattr(func, "__name__", "function")

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except Exception as e:
                    if not is_retryable_db_exception(e):
                        logger.error(
                            f"Non-retryable database error in {func_name}: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise

                    if attempt == max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func_name}: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay)
                    logger.warning(
                        f"Retryable database error in {func_name} "
                        f"(attempt {attempt + 1}/{max_retries}): "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        on_retry(attempt + 1, e, delay)

                    time.sleep(delay)

            raise RuntimeError(f"Unexpected error in retry logic for {func_name}")

        return wrapper
    return decorator
