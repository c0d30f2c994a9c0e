"""Exception hierarchy shared by the adapters and the sync engine."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for errors raised by kitepay_sync."""


class SourceError(SyncError):
    """A Gmail API call failed (after retries)."""


class DeliveryError(SyncError):
    """The event sink rejected a record or could not be reached."""


class MissingCredentialsError(SyncError):
    """OAuth client secrets or the authorized token file is missing."""
