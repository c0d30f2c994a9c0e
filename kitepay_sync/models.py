"""Data models for the payment mail sync."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConnectorStatus(str, Enum):
    """Runtime status of a sync process."""

    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class NormalizedRecord(BaseModel):
    """A payment notification extracted from one email.

    Field aliases are the wire names expected by the payment-sync API.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    amount: str = Field(description="Amount as printed, e.g. '1,234.50'")
    order_id: str | None = Field(default=None, alias="orderId")
    account_of: str | None = Field(default=None, alias="accountOf")
    from_upi: str | None = Field(default=None, alias="fromUpi")
    transaction_count: str | None = Field(default=None, alias="transactionCount")
    timestamp: int = Field(description="Email delivery time (Unix seconds)")
    txn_time: int = Field(description="Payment time from the body (Unix seconds)")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class ParseFailure:
    """Returned by the extractor when no amount can be recovered."""

    reason: str


@dataclass
class CycleStats:
    """Counters exposed on the health endpoint."""

    cycles: int = 0
    delivered: int = 0
    parse_failures: int = 0
    missing_bodies: int = 0
    aborted_batches: int = 0
    last_cycle_at: datetime | None = None


class HealthStatus(BaseModel):
    """Response model for the /health K8s probe endpoint."""

    name: str = Field(description="Name of the sync process")
    status: ConnectorStatus = Field(description="Current status")
    uptime_seconds: float = Field(description="Seconds since the process started")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Cursor, persisted watermark and cycle counters",
    )
