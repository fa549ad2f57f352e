"""
Retry with exponential backoff and the single error classifier used by both
the retry loop and the HTTP error handler.

Backoff schedule: the delay before retry ``i`` (0-based) is
``initial_delay * 2 ** i``. Fatal errors are never retried.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import httpx
from loguru import logger

from eventproxy.services.errors import (
    ConfigurationError,
    FetchError,
    ValidationError,
)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})
RETRYABLE_ERROR_CODES = frozenset({"timeout", "connection_error"})


class ErrorKind(str, Enum):
    """Outcome of classifying a failure."""

    RETRYABLE = "RETRYABLE"  # Transient, worth another attempt
    FATAL = "FATAL"  # Retrying cannot help
    UNKNOWN = "UNKNOWN"  # Unexpected, treated as transient by default


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one call site."""

    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    timeout: float = 20.0  # per attempt


def backoff_delay(initial_delay: float, attempt_index: int) -> float:
    return initial_delay * (2**attempt_index)


def _classify_status(status: int | None) -> ErrorKind:
    if status in RETRYABLE_STATUS_CODES:
        return ErrorKind.RETRYABLE
    if status is not None and 400 <= status < 500:
        return ErrorKind.FATAL
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorKind:
    """Map any failure to RETRYABLE, FATAL or UNKNOWN."""
    if isinstance(error, (ValidationError, ConfigurationError)):
        return ErrorKind.FATAL

    if isinstance(error, FetchError):
        if error.code in RETRYABLE_ERROR_CODES:
            return ErrorKind.RETRYABLE
        return _classify_status(error.status)

    if isinstance(error, httpx.HTTPStatusError):
        return _classify_status(error.response.status_code)

    # Timeouts, refused or aborted connections
    if isinstance(error, httpx.TransportError):
        return ErrorKind.RETRYABLE

    return ErrorKind.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    """Default retry predicate: everything except fatal failures."""
    return classify_error(error) is not ErrorKind.FATAL


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    initial_delay: float,
    retry_predicate: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "request",
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total attempts including the first one
        initial_delay: Delay in seconds before the first retry
        retry_predicate: Decides whether a failure may be retried
        sleep: Awaitable sleep, injectable for tests
        description: Used in log messages

    Returns:
        The first successful result

    Raises:
        The last failure, once it is not retryable or the budget is spent.
        ``FetchError.attempts`` is set to the number of attempts made.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as e:
            is_last = attempt == max_attempts - 1
            if isinstance(e, FetchError):
                e.attempts = attempt + 1

            if not retry_predicate(e):
                logger.warning(f"{description} failed with non-retryable error: {e}")
                raise

            if is_last:
                logger.error(
                    f"{description} failed after {max_attempts} attempts: {e}"
                )
                raise

            delay = backoff_delay(initial_delay, attempt)
            logger.warning(
                f"{description} attempt {attempt + 1}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{description}: retry loop exited without a result")
