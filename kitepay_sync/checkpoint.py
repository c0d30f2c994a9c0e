"""Async HTTP client for the remote watermark store.

The store only lets a restarted process resume near where the previous
one stopped; the running process never depends on it.  Reads therefore
degrade to a time-based default and writes never raise.
"""

from __future__ import annotations

import email.utils
import math
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from .config import CheckpointConfig

logger = structlog.get_logger()

# Epoch seconds stay at 10 digits until the year 2286; anything larger
# is taken to be milliseconds.
MAX_EPOCH_SECONDS = 9_999_999_999


def _parse_date_string(value: str) -> int | None:
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def normalize_watermark(value: Any) -> int | None:
    """Convert a stored ``last_mail_timestamp`` to Unix seconds.

    Numbers (or digit strings) above ``MAX_EPOCH_SECONDS`` are
    milliseconds and are floor-divided by 1000.  Other strings are
    parsed as RFC 2822 or ISO 8601 dates.  Returns ``None`` for empty
    or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            value = float(value)
        except ValueError:
            return _parse_date_string(value)
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        return None

    seconds = int(value)
    if seconds > MAX_EPOCH_SECONDS:
        return seconds // 1000
    return seconds


class CheckpointClient:
    """Reads and writes the single ``last_mail_timestamp`` watermark.

    An empty ``base_url`` disables the store: reads return the
    first-run default and the engine skips writes.
    """

    def __init__(
        self,
        config: CheckpointConfig,
        *,
        absent_lookback_seconds: int = 86400,
        unreachable_lookback_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._absent_lookback = absent_lookback_seconds
        self._unreachable_lookback = unreachable_lookback_seconds
        self._clock = clock
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._config.base_url)

    async def start(self) -> None:
        if not self.enabled:
            logger.info("checkpoint_store_disabled", reason="empty_base_url")
            return
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        logger.info("checkpoint_client_started", base_url=self._config.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.info("checkpoint_client_stopped")

    async def get_watermark(self) -> int:
        """Return the stored watermark in seconds, or a fallback.

        * no stored value (or store disabled): now minus 24h
        * store unreachable or answering garbage: now minus 1h
        """
        now = int(self._clock())
        if self._client is None:
            return now - self._absent_lookback

        try:
            response = await self._client.get(self._config.read_path)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            fallback = now - self._unreachable_lookback
            logger.warning("checkpoint_read_failed", error=str(exc), fallback=fallback)
            return fallback

        stored = data.get("last_mail_timestamp") if isinstance(data, dict) else None
        watermark = normalize_watermark(stored)
        if watermark is None:
            fallback = now - self._absent_lookback
            logger.info("checkpoint_absent", stored=stored, fallback=fallback)
            return fallback

        logger.info("checkpoint_loaded", stored=stored, watermark=watermark)
        return watermark

    async def put_watermark(self, value: int) -> bool:
        """Persist *value*; returns False (and logs) on any failure."""
        if self._client is None:
            return False
        try:
            response = await self._client.post(
                self._config.write_path,
                json={"last_mail_timestamp": value},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("checkpoint_write_failed", watermark=value, error=str(exc))
            return False
        logger.info("checkpoint_saved", watermark=value)
        return True
