"""Async HTTP client for the payment-sync endpoint."""

from __future__ import annotations

import httpx
import structlog

from .config import SinkConfig
from .errors import DeliveryError
from .models import NormalizedRecord

logger = structlog.get_logger()


class EventSinkClient:
    """Delivers :class:`NormalizedRecord` payloads to the payment-sync API.

    One POST per record and no retries: a failed delivery is left for
    the sync engine to pick up on its next cycle.
    """

    def __init__(self, config: SinkConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        logger.info("sink_client_started", base_url=self._config.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.info("sink_client_stopped")

    async def deliver(self, record: NormalizedRecord) -> None:
        """POST *record*.  Raises :class:`DeliveryError` on any failure."""
        if self._client is None:
            raise AssertionError("Client not started")

        try:
            response = await self._client.post(
                self._config.sync_path,
                json=record.to_payload(),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryError(str(exc)) from exc

        logger.debug(
            "record_delivered",
            order_id=record.order_id,
            status_code=response.status_code,
        )
