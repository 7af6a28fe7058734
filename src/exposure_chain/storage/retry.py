"""Retry utilities for storage operations.

Transient Qdrant failures are retried with exponential backoff; whatever still
fails afterwards surfaces as ``StorageError``.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from exposure_chain.exceptions import StorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def _log_retry(retry_state: RetryCallState) -> None:
    if retry_state.attempt_number > 1:
        logger.warning(
            "Retrying Qdrant operation",
            extra={
                "attempt": retry_state.attempt_number,
                "fn_name": retry_state.fn.__name__ if retry_state.fn else "unknown",
                "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
            },
        )


# Only network/server errors are retried, not client errors (4xx)
qdrant_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(
        (
            httpx.ConnectError,
            httpx.TimeoutException,
            UnexpectedResponse,
        )
    ),
    before_sleep=_log_retry,
    reraise=True,
)


def storage_operation(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Retry ``fn`` on transient errors and wrap final failures in StorageError."""
    retried = qdrant_retry(fn)

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await retried(*args, **kwargs)
        except (httpx.HTTPError, UnexpectedResponse, ResponseHandlingException) as e:
            raise StorageError(f"{fn.__name__} failed: {e}") from e

    return wrapper
