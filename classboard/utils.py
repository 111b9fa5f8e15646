"""
Shared utility functions used throughout classboard.

Provides:
    - utc_now(): Timezone-aware UTC datetime (for TIMESTAMPTZ columns)
    - generate_id(): UUID4 string generator (for primary keys)
    - ensure_utc(dt): Convert any datetime to timezone-aware UTC
    - parse_timestamp(value) / format_timestamp(dt): storage row timestamps
    - @with_retry: Exponential-backoff retry for sync and async callables
"""

from datetime import datetime, timezone
import uuid
import asyncio
import inspect
import logging
import time as time_module
from functools import wraps
from typing import Callable, TypeVar, Any, Tuple, Type, Optional, Union

from classboard.exceptions import RetryExhaustedError

T = TypeVar("T")


# ===========================================================================
# TIMEZONE UTILITIES
# All timestamps stored by the repository must be timezone-aware
# ===========================================================================


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Use this instead of ``datetime.now()`` or ``datetime.utcnow()``.

    Returns:
        Timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Generate a UUID4 string for new records."""
    return str(uuid.uuid4())


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime is timezone-aware in UTC.

    Args:
        dt: Datetime to convert (naive or aware).

    Returns:
        Timezone-aware datetime in UTC.
    """
    if dt.tzinfo is None:
        # Assume naive datetime is UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a row timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (including a trailing ``Z``), datetimes, or
    ``None``/empty string.

    Raises:
        ValueError: If *value* is a string that is not ISO-8601.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialise an optional datetime to ISO-8601 UTC for storage rows."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


# ===========================================================================
# RETRY DECORATOR
# Used by the outbox for side effects; storage calls are never retried.
# ===========================================================================


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before retrying after failed *attempt* (1-based): doubles each time."""
    return base_delay * (2 ** (attempt - 1))


def _log_attempt_failure(
    op_name: str, attempt: int, max_attempts: int, error: Exception, delay: float
) -> None:
    if attempt < max_attempts:
        logging.warning(
            "[RETRY] %s failed (attempt %d/%d): %s; next try in %.1fs",
            op_name, attempt, max_attempts, error, delay,
        )
    else:
        logging.error(
            "[RETRY] %s gave up after %d attempts: %s",
            op_name, max_attempts, error,
        )


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    operation_name: Optional[str] = None,
) -> Callable:
    """
    Retry a sync or async callable with exponential backoff.

    Args:
        max_attempts: Total attempts, first call included.
        base_delay: Seconds to wait after the first failure
            (see :func:`backoff_delay`).
        retryable_exceptions: Only these trigger a retry; anything else
            propagates on the spot.
        operation_name: Label for log lines. Defaults to ``__name__``.

    Raises:
        RetryExhaustedError: Once every attempt has failed.

    Usage::

        @with_retry(max_attempts=3, base_delay=0.5)
        async def write_event(event):
            await sink.write(event)
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        op_name = operation_name or func.__name__

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> T:
                for attempt in range(1, max_attempts + 1):
                    try:
                        return await func(*args, **kwargs)
                    except retryable_exceptions as exc:
                        delay = backoff_delay(base_delay, attempt)
                        _log_attempt_failure(op_name, attempt, max_attempts, exc, delay)
                        if attempt == max_attempts:
                            raise RetryExhaustedError(op_name, max_attempts, exc) from exc
                        await asyncio.sleep(delay)
                raise RetryExhaustedError(op_name, max_attempts, None)  # only when max_attempts < 1

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as exc:
                    delay = backoff_delay(base_delay, attempt)
                    _log_attempt_failure(op_name, attempt, max_attempts, exc, delay)
                    if attempt == max_attempts:
                        raise RetryExhaustedError(op_name, max_attempts, exc) from exc
                    time_module.sleep(delay)
            raise RetryExhaustedError(op_name, max_attempts, None)  # only when max_attempts < 1

        return sync_wrapper

    return decorator
