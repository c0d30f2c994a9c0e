"""Fixed-delay scheduler that keeps the sync engine running."""

from __future__ import annotations

import asyncio

import structlog

from .engine import SyncEngine

logger = structlog.get_logger()


class PollingScheduler:
    """Run :meth:`SyncEngine.run_cycle` until shutdown.

    The delay between cycles is constant, so a slow cycle pushes the
    next one back.  A failing cycle is logged and never ends the loop.
    """

    def __init__(
        self,
        engine: SyncEngine,
        *,
        interval_seconds: float,
        shutdown_event: asyncio.Event | None = None,
        max_cycles: int | None = None,
    ) -> None:
        self._engine = engine
        self._interval = interval_seconds
        self._shutdown = shutdown_event or asyncio.Event()
        self._max_cycles = max_cycles
        self.cycles_run = 0

    async def run(self) -> None:
        logger.info("scheduler_started", interval_seconds=self._interval)
        while not self._shutdown.is_set():
            self.cycles_run += 1
            structlog.contextvars.bind_contextvars(cycle=self.cycles_run)
            try:
                cursor = await self._engine.run_cycle()
                logger.info("sync_cycle_finished", cursor=cursor)
            except Exception:
                logger.exception("sync_cycle_failed")
            finally:
                structlog.contextvars.unbind_contextvars("cycle")

            if self._max_cycles is not None and self.cycles_run >= self._max_cycles:
                break
            await self._wait()
        logger.info("scheduler_stopped", cycles=self.cycles_run)

    async def _wait(self) -> None:
        """Sleep for the interval, waking early on shutdown."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
        except TimeoutError:
            pass
