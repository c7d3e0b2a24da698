"""Retry-with-backoff combinator shared by embedding and vector store clients."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from loguru import logger

from ..config.defaults import RETRYABLE_STATUS_CODES
from .cancellation import CancellationToken
from .exceptions import (
    EmbeddingError,
    OperationCancelledError,
    VectorStoreError,
    VectorStoreUnavailableError,
)

T = TypeVar("T")


def is_retryable_error(exc: BaseException) -> bool:
    """Check if an exception is a transient failure worth retrying.

    Retries:
    - httpx.TimeoutException (connect/read/write/pool timeouts)
    - httpx.NetworkError (connect/read/write/close errors)
    - httpx.RemoteProtocolError (server sent invalid HTTP)
    - HTTP 408, 429 and 5xx responses
    - VectorStoreUnavailableError (store wraps network failures in it)

    Cancellation and everything else propagates immediately.
    """
    if isinstance(exc, OperationCancelledError):
        return False

    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    if isinstance(exc, httpx.RemoteProtocolError):
        return True

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(exc, VectorStoreUnavailableError):
        return True

    if isinstance(exc, (EmbeddingError, VectorStoreError)):
        return exc.status_code in RETRYABLE_STATUS_CODES

    return False


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    exponential: bool = False,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    token: CancellationToken | None = None,
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or attempts are exhausted.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total attempts including the first call
        base_delay: Delay in seconds before the second attempt
        exponential: Double the delay after every failed attempt
        is_retryable: Predicate deciding whether an exception is transient
        token: Cancellation token checked before each attempt and during sleeps
        description: Label used in log messages

    Returns:
        The operation's result

    Raises:
        OperationCancelledError: If cancelled (never retried)
        Exception: The last exception when it is not retryable or attempts ran out
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        if token:
            token.check()
        try:
            return await operation()
        except OperationCancelledError:
            raise
        except Exception as e:
            if attempt >= max_attempts or not is_retryable(e):
                raise
            logger.debug(
                f"{description} attempt {attempt}/{max_attempts} failed: "
                f"{type(e).__name__}: {e}; retrying in {delay:.2f}s"
            )

        if token:
            await token.sleep(delay)
        else:
            await asyncio.sleep(delay)

        if exponential:
            delay *= 2

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{description}: retry loop exited unexpectedly")
