"""SyncEngine: one polling cycle over the mailbox with a watermark cursor.

The engine owns two numbers:

``local_cursor``
    Authoritative in-memory watermark.  Every matching message delivered
    before this time has been handled.
``last_persisted``
    The last value written to the checkpoint store.  It may lag
    ``local_cursor``; a restart then replays from the older value and
    the processed marker keeps already-handled messages out of the
    query.

Failures are split in two.  Sink and Gmail errors mid-batch are
transient: the batch stops, the current message stays unmarked and the
cursor stays at the last handled message.  A missing body or a body
without an amount is permanent: the message is marked, the cursor moves
past it and it is never sent.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Protocol

import structlog

from .checkpoint import CheckpointClient
from .errors import DeliveryError, SourceError
from .extractor import PaymentExtractor
from .gmail_client import FetchedMessage, MessageRef
from .models import CycleStats, NormalizedRecord, ParseFailure

logger = structlog.get_logger()


class MessageSource(Protocol):
    async def ensure_marker_exists(self) -> str: ...

    async def list_candidates(self, after: int) -> list[MessageRef]: ...

    async def fetch_full(self, message_id: str) -> FetchedMessage: ...

    async def mark_processed(self, message_id: str) -> None: ...


class EventSink(Protocol):
    async def deliver(self, record: NormalizedRecord) -> None: ...


class SyncEngine:
    """Incremental, idempotent sync of payment mails to the event sink."""

    def __init__(
        self,
        source: MessageSource,
        extractor: PaymentExtractor,
        sink: EventSink,
        checkpoint: CheckpointClient,
        *,
        throttle_seconds: float = 4.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._extractor = extractor
        self._sink = sink
        self._checkpoint = checkpoint
        self._throttle_seconds = throttle_seconds
        self._sleep = sleep

        self._local_cursor: int = 0
        self._last_persisted: int = 0
        self.stats = CycleStats()

    @property
    def local_cursor(self) -> int:
        return self._local_cursor

    @property
    def last_persisted(self) -> int:
        return self._last_persisted

    async def initialize(self) -> int:
        """Seed both cursors from the checkpoint store (or its fallback)."""
        watermark = await self._checkpoint.get_watermark()
        self._local_cursor = watermark
        self._last_persisted = watermark
        logger.info("sync_engine_initialized", cursor=watermark)
        return watermark

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> int:
        """Process one batch, advance the cursor and flush it if needed.

        Returns the local cursor after the cycle.
        """
        self.stats.cycles += 1
        try:
            max_seen = await self.process_batch(self._local_cursor)
        except SourceError as exc:
            logger.warning("sync_query_failed", cursor=self._local_cursor, error=str(exc))
            max_seen = self._local_cursor

        if max_seen > self._local_cursor:
            logger.info("sync_cursor_advanced", old=self._local_cursor, new=max_seen)
            self._local_cursor = max_seen

        if self._checkpoint.enabled and self._local_cursor > self._last_persisted:
            if await self._checkpoint.put_watermark(self._local_cursor):
                self._last_persisted = self._local_cursor

        self.stats.last_cycle_at = datetime.now(UTC)
        return self._local_cursor

    async def process_batch(self, cursor: int) -> int:
        """Handle every candidate after *cursor*, oldest first.

        Returns the highest delivery time of a contiguous handled
        prefix of the batch (or *cursor* if nothing was handled).
        Listing failures raise :class:`SourceError`; per-message
        failures end the batch early.
        """
        await self._source.ensure_marker_exists()
        candidates = await self._source.list_candidates(cursor)
        if not candidates:
            logger.info("sync_no_new_messages", cursor=cursor)
            return cursor

        # Gmail lists newest first.
        batch = list(reversed(candidates))
        logger.info("sync_batch_started", cursor=cursor, size=len(batch))

        max_seen = cursor
        for ref in batch:
            try:
                delivered_at = await self._handle(ref)
            except (SourceError, DeliveryError) as exc:
                self.stats.aborted_batches += 1
                logger.warning(
                    "sync_batch_aborted",
                    message_id=ref.id,
                    error=str(exc),
                    max_seen=max_seen,
                )
                break
            max_seen = max(max_seen, delivered_at)

        return max_seen

    async def _handle(self, ref: MessageRef) -> int:
        """Handle one message and return its delivery time.

        Only returns once the message carries the processed marker.
        """
        message = await self._source.fetch_full(ref.id)
        log = logger.bind(message_id=message.id, delivered_at=message.delivered_at)

        if message.body_data is None:
            log.warning("sync_body_missing")
            await self._source.mark_processed(message.id)
            self.stats.missing_bodies += 1
            return message.delivered_at

        result = self._extractor.extract(
            message.body_data, timestamp=message.header_timestamp
        )
        if isinstance(result, ParseFailure):
            log.warning("sync_parse_failed", reason=result.reason)
            await self._source.mark_processed(message.id)
            self.stats.parse_failures += 1
            return message.delivered_at

        await self._sink.deliver(result)
        await self._source.mark_processed(message.id)
        self.stats.delivered += 1
        log.info(
            "sync_record_delivered",
            amount=result.amount,
            order_id=result.order_id,
            txn_time=result.txn_time,
        )

        if self._throttle_seconds > 0:
            await self._sleep(self._throttle_seconds)
        return message.delivered_at
