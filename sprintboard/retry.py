"""Retry utilities with exponential backoff.

Thin wrappers around tenacity for the two kinds of transient failures this
service meets: database connection drops and HTTP transport errors.
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx
import sqlalchemy.exc
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# Errors worth a second attempt; anything else (constraint violations,
# 4xx responses) is a real failure.
TRANSIENT_DATABASE_ERRORS = (
    sqlalchemy.exc.OperationalError,
    sqlalchemy.exc.InterfaceError,
    ConnectionError,
    TimeoutError,
)

TRANSIENT_HTTP_ERRORS = (
    httpx.TransportError,
    OSError,
)


def retry_on_database_error(max_attempts: int = 3, max_wait: float = 5.0) -> Callable:
    """Retry an async store method on connection drops and timeouts."""
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=max_wait),
        retry=retry_if_exception_type(TRANSIENT_DATABASE_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_on_http_error(max_attempts: int = 3, max_wait: float = 10.0) -> Callable:
    """Retry an async HTTP call on transport-level failures.

    HTTP status errors are not retried; the caller decides what a 4xx/5xx means.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=max_wait),
        retry=retry_if_exception_type(TRANSIENT_HTTP_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
