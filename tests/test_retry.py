"""Tests for kitepay_sync.retry."""

from __future__ import annotations

from unittest.mock import MagicMock

import httplib2
import pytest
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

from kitepay_sync.config import RetryConfig
from kitepay_sync.retry import is_transient_google_error, with_retry


def _http_error(status: int) -> HttpError:
    return HttpError(resp=MagicMock(status=status, reason="error"), content=b"")


@pytest.fixture
def config() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_wait_seconds=0.01, max_wait_seconds=0.1)


class TestIsTransientGoogleError:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert is_transient_google_error(_http_error(status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_client_errors(self, status):
        assert not is_transient_google_error(_http_error(status))

    def test_socket_errors(self):
        assert is_transient_google_error(TimeoutError())
        assert is_transient_google_error(ConnectionResetError())

    def test_transport_library_errors(self):
        assert is_transient_google_error(httplib2.ServerNotFoundError("dns"))
        assert is_transient_google_error(TransportError("refresh failed"))

    def test_refresh_error_is_permanent(self):
        assert not is_transient_google_error(RefreshError("invalid_grant"))

    def test_other_errors(self):
        assert not is_transient_google_error(ValueError("bad"))


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            return "ok"

        assert await fn() == "ok"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise _http_error(503)
            return "recovered"

        assert await fn() == "recovered"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_retries_and_reraises(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("down")

        with pytest.raises(ConnectionError, match="down"):
            await fn()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise _http_error(403)

        with pytest.raises(HttpError):
            await fn()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_custom_predicate(self, config: RetryConfig):
        call_count = 0

        @with_retry(config, retryable=lambda exc: isinstance(exc, KeyError))
        async def fn():
            nonlocal call_count
            call_count += 1
            raise KeyError("k")

        with pytest.raises(KeyError):
            await fn()
        assert call_count == 3
