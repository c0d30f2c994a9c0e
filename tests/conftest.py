"""Shared test fixtures for the kitepay_sync test suite."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock

import pytest

from kitepay_sync.config import (
    CheckpointConfig,
    ExtractorConfig,
    GmailConfig,
    RetryConfig,
    SinkConfig,
    SyncConfig,
)
from kitepay_sync.gmail_client import FetchedMessage, MessageRef

PAYMENT_HTML = """\
<html><body>
<table>
<tr><td>Payment Received</td></tr>
<tr><td>&#8377;&nbsp;{amount}</td></tr>
<tr><td>Order ID: {order_id}</td></tr>
<tr><td>From {from_upi}</td></tr>
<tr><td>In Account of</td></tr>
<tr><td>{account_of}</td></tr>
<tr><td>Transaction Count #{count}</td></tr>
<tr><td>Nov 26, 2025, 10:31 AM</td></tr>
</table>
</body></html>
"""


def encode_body(text: str) -> str:
    """Base64url-encode *text* the way the Gmail API returns body data."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def payment_body(
    *,
    amount: str = "1,234.50",
    order_id: str = "ABC123",
    from_upi: str = "someone@upi",
    account_of: str = "Jane Doe",
    count: str = "7",
) -> str:
    return encode_body(
        PAYMENT_HTML.format(
            amount=amount,
            order_id=order_id,
            from_upi=from_upi,
            account_of=account_of,
            count=count,
        )
    )


def make_message(
    message_id: str,
    delivered_at: int,
    *,
    body: str | None = None,
) -> FetchedMessage:
    return FetchedMessage(
        id=message_id,
        internal_date_ms=delivered_at * 1000,
        headers={},
        body_data=body,
    )


class FakeSource:
    """In-memory mailbox honouring the processed marker."""

    def __init__(self, messages: list[FetchedMessage]) -> None:
        self.messages = {m.id: m for m in messages}
        self.marked: list[str] = []
        self.queries: list[int] = []
        self.fetch = AsyncMock(side_effect=lambda mid: self.messages[mid])

    async def ensure_marker_exists(self) -> str:
        return "Label_1"

    async def list_candidates(self, after: int) -> list[MessageRef]:
        self.queries.append(after)
        pending = [
            m
            for m in self.messages.values()
            if m.delivered_at > after and m.id not in self.marked
        ]
        pending.sort(key=lambda m: m.delivered_at, reverse=True)
        return [MessageRef(id=m.id) for m in pending]

    async def fetch_full(self, message_id: str) -> FetchedMessage:
        return await self.fetch(message_id)

    async def mark_processed(self, message_id: str) -> None:
        self.marked.append(message_id)


@pytest.fixture
def gmail_config() -> GmailConfig:
    return GmailConfig(
        credentials_path="credentials.json",
        token_path="token.json",
        sender="no-reply@paytm.com",
        marker_label="PROCESSED",
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.1,
        multiplier=2.0,
    )


@pytest.fixture
def checkpoint_config() -> CheckpointConfig:
    return CheckpointConfig(base_url="http://store.test", timeout_seconds=5.0)


@pytest.fixture
def sink_config() -> SinkConfig:
    return SinkConfig(base_url="http://sink.test", timeout_seconds=5.0)


@pytest.fixture
def sync_config(
    gmail_config: GmailConfig,
    retry_config: RetryConfig,
    checkpoint_config: CheckpointConfig,
    sink_config: SinkConfig,
) -> SyncConfig:
    return SyncConfig(
        name="kitepay-sync-test",
        poll_interval_seconds=0.01,
        message_throttle_seconds=0.0,
        health_port=18080,
        gmail=gmail_config,
        retry=retry_config,
        checkpoint=checkpoint_config,
        sink=sink_config,
        extractor=ExtractorConfig(),
    )
