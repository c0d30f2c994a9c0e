"""kitepay-sync: Paytm payment mails to the Kite Pay payment-sync API.

Public API re-exported here for convenience::

    from kitepay_sync import SyncEngine, PaymentExtractor, SyncConfig
"""

from .checkpoint import CheckpointClient, normalize_watermark
from .config import (
    CheckpointConfig,
    ExtractorConfig,
    GmailConfig,
    RetryConfig,
    SinkConfig,
    SyncConfig,
)
from .connector import PaymentSyncConnector
from .engine import SyncEngine
from .errors import DeliveryError, MissingCredentialsError, SourceError, SyncError
from .extractor import PaymentExtractor
from .gmail_client import FetchedMessage, GmailSource, MessageRef
from .logging import setup_logging
from .models import ConnectorStatus, CycleStats, NormalizedRecord, ParseFailure
from .scheduler import PollingScheduler
from .sink import EventSinkClient

__all__ = [
    "CheckpointClient",
    "CheckpointConfig",
    "ConnectorStatus",
    "CycleStats",
    "DeliveryError",
    "EventSinkClient",
    "ExtractorConfig",
    "FetchedMessage",
    "GmailConfig",
    "GmailSource",
    "MessageRef",
    "MissingCredentialsError",
    "NormalizedRecord",
    "ParseFailure",
    "PaymentExtractor",
    "PaymentSyncConnector",
    "PollingScheduler",
    "RetryConfig",
    "SinkConfig",
    "SourceError",
    "SyncConfig",
    "SyncEngine",
    "SyncError",
    "normalize_watermark",
    "setup_logging",
]
