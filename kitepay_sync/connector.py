"""PaymentSyncConnector: wires up the clients and runs the poll loop."""

from __future__ import annotations

import asyncio
import signal
import time
from typing import Any

import structlog
import uvicorn

from .auth import load_credentials
from .checkpoint import CheckpointClient
from .config import SyncConfig
from .engine import SyncEngine
from .extractor import PaymentExtractor
from .gmail_client import GmailSource
from .health import create_health_app
from .models import ConnectorStatus
from .scheduler import PollingScheduler
from .sink import EventSinkClient

logger = structlog.get_logger()


class PaymentSyncConnector:
    """Owns the process lifecycle of the mail → payment-sync bridge.

    ``run()`` starts the following concurrently via
    :class:`asyncio.TaskGroup`:

    * The polling scheduler driving :class:`SyncEngine`
    * FastAPI health server (for K8s probes)

    ``run_once()`` performs a single cycle and returns, for cron-style
    deployments.
    """

    def __init__(self, config: SyncConfig, credentials: Any = None) -> None:
        self.config = config
        self.status: ConnectorStatus = ConnectorStatus.STARTING
        self.start_time: float = time.monotonic()
        self._credentials = credentials

        self._source = GmailSource(config.gmail, config.retry)
        self._sink = EventSinkClient(config.sink)
        self._checkpoint = CheckpointClient(
            config.checkpoint,
            absent_lookback_seconds=config.absent_lookback_seconds,
            unreachable_lookback_seconds=config.unreachable_lookback_seconds,
        )
        self.engine = SyncEngine(
            self._source,
            PaymentExtractor(config.extractor),
            self._sink,
            self._checkpoint,
            throttle_seconds=config.message_throttle_seconds,
        )
        self._shutdown_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _start(self) -> None:
        credentials = self._credentials or load_credentials(self.config.gmail)
        await self._source.start(credentials)
        await self._sink.start()
        await self._checkpoint.start()
        await self.engine.initialize()

    async def _stop(self) -> None:
        self.status = ConnectorStatus.STOPPING
        await self._sink.stop()
        await self._checkpoint.stop()
        self.status = ConnectorStatus.STOPPED
        logger.info("connector_stopped", connector=self.config.name)

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def _handle(sig: signal.Signals) -> None:
            logger.info("shutdown_signal_received", signal=sig.name)
            self._shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _handle, sig)

    async def run(self) -> None:
        """Poll until SIGTERM / SIGINT."""
        self._install_signal_handlers()
        self.start_time = time.monotonic()
        logger.info("connector_starting", connector=self.config.name)

        try:
            await self._start()
            self.status = ConnectorStatus.RUNNING
            scheduler = PollingScheduler(
                self.engine,
                interval_seconds=self.config.poll_interval_seconds,
                shutdown_event=self._shutdown_event,
            )
            try:
                async with asyncio.TaskGroup() as tg:
                    tg.create_task(self._run_scheduler(scheduler))
                    if self.config.health_enabled:
                        tg.create_task(self._run_health_server())
            except* Exception:
                self.status = ConnectorStatus.DEGRADED
                logger.exception("connector_task_group_error", connector=self.config.name)
        finally:
            await self._stop()

    async def run_once(self) -> int:
        """Run a single sync cycle and return the resulting cursor."""
        try:
            await self._start()
            self.status = ConnectorStatus.RUNNING
            return await self.engine.run_cycle()
        finally:
            await self._stop()

    async def _run_scheduler(self, scheduler: PollingScheduler) -> None:
        try:
            await scheduler.run()
        finally:
            # Let the health server exit with the loop.
            self._shutdown_event.set()

    async def _run_health_server(self) -> None:
        """Start the FastAPI health server and shut it down on signal."""
        app = create_health_app(self)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.config.health_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        serve_task = asyncio.create_task(server.serve())
        await self._shutdown_event.wait()
        server.should_exit = True
        await serve_task

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, object]:
        stats = self.engine.stats
        return {
            "local_cursor": self.engine.local_cursor,
            "last_persisted": self.engine.last_persisted,
            "checkpoint_enabled": self._checkpoint.enabled,
            "selection_mode": self.config.gmail.selection_mode,
            "cycles": stats.cycles,
            "delivered": stats.delivered,
            "parse_failures": stats.parse_failures,
            "missing_bodies": stats.missing_bodies,
            "aborted_batches": stats.aborted_batches,
            "last_cycle_at": (
                stats.last_cycle_at.isoformat() if stats.last_cycle_at else None
            ),
        }
