"""Retry utilities for storage operations.

Retries transient network and server errors when talking to Qdrant.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TRANSIENT_STORAGE_ERRORS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    httpx.TimeoutException,
    UnexpectedResponse,
)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a storage retry with the failing operation and attempt number."""
    logger.warning(
        "Retrying Qdrant operation",
        extra={
            "attempt": retry_state.attempt_number,
            "fn_name": getattr(retry_state.fn, "__name__", "unknown"),
            "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
        },
    )


# Only network/server errors are retried, never validation or 4xx
qdrant_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TRANSIENT_STORAGE_ERRORS),
    before_sleep=_log_retry,
    reraise=True,
)
