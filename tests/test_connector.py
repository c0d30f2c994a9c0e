"""Tests for kitepay_sync.connector."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
import respx

from kitepay_sync.config import SyncConfig
from kitepay_sync.connector import PaymentSyncConnector
from kitepay_sync.models import ConnectorStatus
from tests.conftest import FakeSource, make_message, payment_body

READ_URL = "http://store.test/paytm/last-timestamp"
WRITE_URL = "http://store.test/paytm/update-last-timestamp"
SYNC_URL = "http://sink.test/paytm/payment-sync"


@pytest.fixture
def source(monkeypatch) -> FakeSource:
    fake = FakeSource(
        [
            make_message("m1", 1_764_000_100, body=payment_body(order_id="A1")),
            make_message("m2", 1_764_000_200, body=payment_body(order_id="A2")),
        ]
    )
    fake.start = AsyncMock()
    monkeypatch.setattr("kitepay_sync.connector.GmailSource", lambda *args, **kwargs: fake)
    return fake


class TestRunOnce:
    @pytest.mark.asyncio
    @respx.mock
    async def test_syncs_and_persists(self, sync_config: SyncConfig, source: FakeSource):
        respx.get(READ_URL).respond(200, json={"last_mail_timestamp": 1_763_999_000})
        write = respx.post(WRITE_URL).respond(200, json={"ok": True})
        sink = respx.post(SYNC_URL).respond(200, json={"ok": True})

        credentials = object()
        connector = PaymentSyncConnector(sync_config, credentials=credentials)
        cursor = await connector.run_once()

        assert cursor == 1_764_000_200
        source.start.assert_awaited_once_with(credentials)
        assert source.queries == [1_763_999_000]
        assert source.marked == ["m1", "m2"]
        assert [json.loads(c.request.content)["orderId"] for c in sink.calls] == ["A1", "A2"]
        assert json.loads(write.calls[0].request.content) == {
            "last_mail_timestamp": 1_764_000_200
        }
        assert connector.status == ConnectorStatus.STOPPED

    @pytest.mark.asyncio
    @respx.mock
    async def test_sink_down_keeps_cursor(self, sync_config: SyncConfig, source: FakeSource):
        respx.get(READ_URL).respond(200, json={"last_mail_timestamp": 1_763_999_000})
        write = respx.post(WRITE_URL).respond(200)
        respx.post(SYNC_URL).respond(503)

        connector = PaymentSyncConnector(sync_config, credentials=object())
        cursor = await connector.run_once()

        assert cursor == 1_763_999_000
        assert source.marked == []
        assert write.call_count == 0
        assert connector.engine.stats.aborted_batches == 1


class TestRun:
    @pytest.mark.asyncio
    @respx.mock
    async def test_polls_until_shutdown(self, sync_config: SyncConfig, source: FakeSource):
        respx.get(READ_URL).respond(200, json={"last_mail_timestamp": 1_763_999_000})
        respx.post(WRITE_URL).respond(200)
        respx.post(SYNC_URL).respond(200)

        config = sync_config.model_copy(update={"health_enabled": False})
        connector = PaymentSyncConnector(config, credentials=object())

        task = asyncio.create_task(connector.run())
        await asyncio.sleep(0.1)
        assert connector.status == ConnectorStatus.RUNNING
        connector._shutdown_event.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert connector.status == ConnectorStatus.STOPPED
        assert connector.engine.stats.cycles >= 2
        assert connector.engine.local_cursor == 1_764_000_200
        # Later cycles see no candidates once both mails are marked.
        assert source.queries[-1] == 1_764_000_200


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_reports_cursors_and_counters(self, sync_config: SyncConfig):
        connector = PaymentSyncConnector(sync_config, credentials=object())
        details = await connector.health_check()

        assert details == {
            "local_cursor": 0,
            "last_persisted": 0,
            "checkpoint_enabled": True,
            "selection_mode": "label",
            "cycles": 0,
            "delivered": 0,
            "parse_failures": 0,
            "missing_bodies": 0,
            "aborted_batches": 0,
            "last_cycle_at": None,
        }

    @pytest.mark.asyncio
    async def test_disabled_store(self, sync_config: SyncConfig):
        config = sync_config.model_copy(
            update={"checkpoint": sync_config.checkpoint.model_copy(update={"base_url": ""})}
        )
        connector = PaymentSyncConnector(config, credentials=object())
        details = await connector.health_check()
        assert details["checkpoint_enabled"] is False


class TestStartupFailure:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("entry", ["run", "run_once"])
    async def test_started_clients_are_closed(
        self, sync_config: SyncConfig, source: FakeSource, entry: str
    ):
        config = sync_config.model_copy(update={"health_enabled": False})
        connector = PaymentSyncConnector(config, credentials=object())
        connector._checkpoint.start = AsyncMock(side_effect=RuntimeError("store misconfigured"))

        with pytest.raises(RuntimeError, match="store misconfigured"):
            await getattr(connector, entry)()

        assert connector._sink._client.is_closed
        assert connector.status == ConnectorStatus.STOPPED
