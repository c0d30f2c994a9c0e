"""Tenacity retry wrapper for Gmail API calls."""

from __future__ import annotations

import socket
from collections.abc import Callable

import httplib2
from google.auth.exceptions import TransportError
from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def is_transient_google_error(exc: BaseException) -> bool:
    """True for rate limits, 5xx responses and network-level failures.

    httplib2 and google-auth raise their own types for DNS and token
    refresh transport errors; neither derives from OSError.
    """
    if isinstance(exc, HttpError):
        return exc.resp.status in RETRYABLE_STATUSES
    return isinstance(
        exc,
        (
            socket.timeout,
            TimeoutError,
            ConnectionError,
            httplib2.HttpLib2Error,
            TransportError,
        ),
    )


def with_retry(
    config: RetryConfig,
    *,
    retryable: Callable[[BaseException], bool] = is_transient_google_error,
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Only exceptions for which *retryable* returns True are retried; the
    last exception is re-raised once attempts are exhausted.

    Usage::

        @with_retry(config.retry)
        async def list_page(token: str | None) -> dict: ...
    """
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception(retryable),
        reraise=True,
    )
