"""Resilient remote query execution.

Every call to the data backend goes through ``retryable_query``: transient
failures (network, timeout, rate limiting) are retried with exponential
backoff and jitter, and feed a process-wide circuit breaker that makes all
callers fail fast for a cool-down period once it trips.
"""

import asyncio
import inspect
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

import httpx

from app.core.circuit_breaker import CircuitBreaker, get_circuit_breaker
from app.core.config import settings
from app.core.errors import (
    BackendError,
    ServiceUnavailableError,
    NOT_FOUND,
    DUPLICATE,
    FOREIGN_KEY_VIOLATION,
    PERMISSION_DENIED,
    UNDEFINED_COLUMN,
    RATE_LIMITED,
)
from app.core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

QueryFn = Callable[[], Union[Awaitable[T], T]]

# Message fragments that indicate a transient failure (matched case-insensitively)
RETRYABLE_MESSAGES = (
    "failed to fetch",
    "networkerror",
    "network request failed",
    "too many requests",
    "connection",
    "timeout",
    "timed out",
)

RETRYABLE_CODES = (RATE_LIMITED, "rate_limited")


def is_retryable_error(error: BaseException) -> bool:
    """Check if an error is transient and worth retrying."""
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    code = getattr(error, "code", None)
    if code is not None and str(code) in RETRYABLE_CODES:
        return True

    error_msg = str(error).lower()
    return any(msg in error_msg for msg in RETRYABLE_MESSAGES)


def _raise_for_envelope(result: Any) -> Any:
    """Responses with an ``error`` field are treated like raised errors."""
    error = getattr(result, "error", None)
    if isinstance(error, BaseException):
        raise error
    return result


async def retryable_query(
    query_fn: QueryFn,
    max_retries: Optional[int] = None,
    initial_delay_ms: Optional[int] = None,
    breaker: Optional[CircuitBreaker] = None,
) -> T:
    """
    Run a remote query with retry, exponential backoff and a circuit breaker.

    Args:
        query_fn: Zero-argument callable returning the response (or an awaitable of it)
        max_retries: Total number of attempts (default RETRY_MAX_ATTEMPTS, 3)
        initial_delay_ms: Base backoff delay (default RETRY_INITIAL_DELAY_MS, 1000)
        breaker: Circuit breaker to use (default: the process-wide breaker)

    Returns:
        The successful response

    Raises:
        ServiceUnavailableError: The circuit is open, or this failure opened it
        Exception: A non-retryable error (as raised), or the last retryable
            error once attempts are exhausted
    """
    if max_retries is None:
        max_retries = settings.RETRY_MAX_ATTEMPTS
    if initial_delay_ms is None:
        initial_delay_ms = settings.RETRY_INITIAL_DELAY_MS
    if breaker is None:
        breaker = get_circuit_breaker()

    if breaker.is_open():
        raise ServiceUnavailableError()

    last_error: BaseException | None = None

    for attempt in range(max_retries):
        try:
            result = query_fn()
            if inspect.isawaitable(result):
                result = await result
            result = _raise_for_envelope(result)
        except Exception as e:
            last_error = e
            if not is_retryable_error(e):
                raise

            if breaker.record_failure():
                raise ServiceUnavailableError() from e

            if attempt >= max_retries - 1:
                break

            delay_ms = initial_delay_ms * (2**attempt) + random.uniform(0, 1000)
            logger.info(
                "retrying_query",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay_ms=round(delay_ms),
                error=str(e),
            )
            await asyncio.sleep(delay_ms / 1000)
            continue

        breaker.record_success()
        return result  # type: ignore[return-value]

    if last_error is not None:
        raise last_error
    raise RuntimeError("retryable_query called with max_retries < 1")


_CODE_MESSAGES = {
    NOT_FOUND: "No data found.",
    UNDEFINED_COLUMN: "Invalid database query. Please try again later.",
    DUPLICATE: "This record already exists.",
    FOREIGN_KEY_VIOLATION: "This operation would break data relationships.",
    PERMISSION_DENIED: "You don't have permission to perform this action.",
}


def user_message_for(error: BaseException, breaker: Optional[CircuitBreaker] = None) -> str:
    """Turn a backend failure into a message fit for end users."""
    if breaker is None:
        breaker = get_circuit_breaker()

    if isinstance(error, ServiceUnavailableError) or breaker.is_open():
        return "Service is temporarily unavailable. Please try again in a few minutes."

    if is_retryable_error(error):
        return "Connection issue detected. Retrying..."

    code = getattr(error, "code", None)
    if code in _CODE_MESSAGES:
        return _CODE_MESSAGES[code]
    if "JWT" in str(error):
        return "Your session has expired. Please log in again."
    return "An unexpected error occurred. Please try again later."


__all__ = [
    "retryable_query",
    "is_retryable_error",
    "user_message_for",
    "BackendError",
    "ServiceUnavailableError",
]
