"""Sync configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars,
which is the natural config mechanism in Kubernetes.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class GmailConfig(BaseSettings):
    """Gmail mailbox, sender filter and processed-marker settings."""

    model_config = {"env_prefix": "GMAIL_"}

    credentials_path: str = Field(
        default="credentials.json",
        description="OAuth client secrets file (installed app)",
    )
    token_path: str = Field(
        default="token.json",
        description="Authorized-user token file written by the authorize command",
    )
    user_id: str = Field(default="me", description="Gmail user id")
    sender: str = Field(
        default="no-reply@paytm.com",
        description="Only messages from this address are considered",
    )
    marker_label: str = Field(
        default="PROCESSED",
        description="Label applied to messages once handled",
    )
    selection_mode: Literal["label", "unread"] = Field(
        default="label",
        description="Fence handled messages with a label, or by clearing UNREAD",
    )
    page_size: int = Field(default=100, description="messages.list page size")


class CheckpointConfig(BaseSettings):
    """Remote watermark store endpoints."""

    model_config = {"env_prefix": "CHECKPOINT_"}

    base_url: str = Field(
        default="https://kite-pay-api-v1.onrender.com",
        description="Base URL of the checkpoint store (empty disables it)",
    )
    read_path: str = Field(default="/paytm/last-timestamp")
    write_path: str = Field(default="/paytm/update-last-timestamp")
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")


class SinkConfig(BaseSettings):
    """Downstream payment-sync endpoint."""

    model_config = {"env_prefix": "SINK_"}

    base_url: str = Field(
        default="https://kite-pay-api-v1.onrender.com",
        description="Base URL of the event sink",
    )
    sync_path: str = Field(default="/paytm/payment-sync")
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")


class ExtractorConfig(BaseSettings):
    """Record extraction settings."""

    model_config = {"env_prefix": "EXTRACTOR_"}

    utc_offset_minutes: int = Field(
        default=330,
        description="Offset applied to zone-less payment times in the body (IST)",
    )


class RetryConfig(BaseSettings):
    """Retry / backoff settings for Gmail API calls, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum attempts per Gmail call")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class SyncConfig(BaseSettings):
    """Root configuration for a sync process.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "SYNC_"}

    name: str = Field(default="kitepay-sync", description="Process name used in logs")
    poll_interval_seconds: float = Field(
        default=30.0,
        description="Seconds to wait between sync cycles",
    )
    message_throttle_seconds: float = Field(
        default=4.0,
        description="Pause after each delivered message",
    )
    absent_lookback_seconds: int = Field(
        default=86400,
        description="Start this far back when the store has no watermark",
    )
    unreachable_lookback_seconds: int = Field(
        default=3600,
        description="Start this far back when the store cannot be reached",
    )
    health_enabled: bool = Field(default=True, description="Serve /health and /ready")
    health_port: int = Field(default=8080, description="Port for K8s health probe endpoints")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO")

    gmail: GmailConfig = Field(default_factory=GmailConfig)
    checkpoint: CheckpointConfig = Field(default_factory=CheckpointConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
