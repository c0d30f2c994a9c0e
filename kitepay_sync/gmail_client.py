"""Async Gmail message source wrapping googleapiclient with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import email.utils
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httplib2
import structlog
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import GmailConfig, RetryConfig
from .errors import SourceError
from .retry import with_retry

logger = structlog.get_logger()

UNREAD_LABEL = "UNREAD"


@dataclass(frozen=True)
class MessageRef:
    """An entry of a ``messages.list`` result."""

    id: str
    thread_id: str | None = None


@dataclass(frozen=True)
class FetchedMessage:
    """A full Gmail message as needed by the sync engine."""

    id: str
    internal_date_ms: int
    headers: dict[str, str] = field(default_factory=dict)
    body_data: str | None = None  # base64url, as returned by the API

    @property
    def delivered_at(self) -> int:
        """Source delivery time in Unix seconds; drives the watermark."""
        return self.internal_date_ms // 1000

    @property
    def header_timestamp(self) -> int:
        """``Date`` header in Unix seconds, or :attr:`delivered_at`."""
        value = self.headers.get("Date")
        if value:
            try:
                return int(email.utils.parsedate_to_datetime(value).timestamp())
            except (TypeError, ValueError):
                pass
        return self.delivered_at


def find_body_data(payload: dict[str, Any]) -> str | None:
    """Locate the encoded body of a ``format=full`` payload.

    The top-level body wins; otherwise the first ``text/html`` part
    (depth-first), then the first ``text/plain`` part.
    """
    data = (payload.get("body") or {}).get("data")
    if data:
        return data
    parts = payload.get("parts") or []
    return _find_part(parts, "text/html") or _find_part(parts, "text/plain")


def _find_part(parts: list[dict[str, Any]], mime_type: str) -> str | None:
    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == mime_type and data:
            return data
        if part.get("parts"):
            found = _find_part(part["parts"], mime_type)
            if found:
                return found
    return None


class GmailSource:
    """Async-friendly Gmail message source.

    All blocking ``googleapiclient`` requests are executed with
    ``asyncio.to_thread()`` and retried on transient errors.  Failures
    that survive the retries are raised as :class:`SourceError`.
    """

    def __init__(
        self,
        config: GmailConfig,
        retry_config: RetryConfig,
        service: Any = None,
    ) -> None:
        self._config = config
        self._retry = with_retry(retry_config)
        self._service = service
        self._marker_id: str | None = None

    @property
    def marker_id(self) -> str | None:
        return self._marker_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, credentials: Any) -> None:
        """Build the Gmail API service for *credentials*."""
        self._service = await asyncio.to_thread(
            build, "gmail", "v1", credentials=credentials, cache_discovery=False
        )
        logger.info("gmail_source_started", sender=self._config.sender)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def build_query(self, after: int) -> str:
        """Search filter: sender, lower delivery-time bound, not yet handled."""
        terms = [f"from:{self._config.sender}", f"after:{after}"]
        if self._config.selection_mode == "unread":
            terms.append("is:unread")
        else:
            terms.append(f"-label:{self._config.marker_label}")
        return " ".join(terms)

    async def ensure_marker_exists(self) -> str:
        """Return the marker label id, creating the label if needed."""
        if self._marker_id is not None:
            return self._marker_id
        if self._config.selection_mode == "unread":
            self._marker_id = UNREAD_LABEL
            return self._marker_id

        labels = self._users().labels()
        resp = await self._call(
            "ListLabels", lambda: labels.list(userId=self._config.user_id).execute()
        )
        for label in resp.get("labels", []):
            if label.get("name") == self._config.marker_label:
                self._marker_id = label["id"]
                return self._marker_id

        body = {
            "name": self._config.marker_label,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
            "color": {"backgroundColor": "#000000", "textColor": "#ffffff"},
        }
        created = await self._call(
            "CreateLabel",
            lambda: labels.create(userId=self._config.user_id, body=body).execute(),
        )
        self._marker_id = created["id"]
        logger.info("gmail_marker_label_created", label=self._config.marker_label)
        return self._marker_id

    async def list_candidates(self, after: int) -> list[MessageRef]:
        """All unmarked messages from the sender after *after*, newest first."""
        query = self.build_query(after)
        messages = self._users().messages()
        refs: list[MessageRef] = []
        page_token: str | None = None

        while True:
            token = page_token
            resp = await self._call(
                "ListMessages",
                lambda: messages.list(
                    userId=self._config.user_id,
                    q=query,
                    maxResults=self._config.page_size,
                    pageToken=token,
                ).execute(),
            )
            refs.extend(
                MessageRef(id=m["id"], thread_id=m.get("threadId"))
                for m in resp.get("messages", [])
            )
            page_token = resp.get("nextPageToken")
            if not page_token:
                break

        logger.debug("gmail_candidates_listed", query=query, count=len(refs))
        return refs

    async def fetch_full(self, message_id: str) -> FetchedMessage:
        messages = self._users().messages()
        resp = await self._call(
            "GetMessage",
            lambda: messages.get(
                userId=self._config.user_id, id=message_id, format="full"
            ).execute(),
        )
        payload = resp.get("payload") or {}
        headers = {h["name"]: h["value"] for h in payload.get("headers", [])}
        return FetchedMessage(
            id=resp.get("id", message_id),
            internal_date_ms=int(resp.get("internalDate", "0")),
            headers=headers,
            body_data=find_body_data(payload),
        )

    async def mark_processed(self, message_id: str) -> None:
        """Apply the processed marker.  Not reversible."""
        marker = await self.ensure_marker_exists()
        if self._config.selection_mode == "unread":
            body = {"removeLabelIds": [marker]}
        else:
            body = {"addLabelIds": [marker]}

        messages = self._users().messages()
        await self._call(
            "ModifyMessage",
            lambda: messages.modify(
                userId=self._config.user_id, id=message_id, body=body
            ).execute(),
        )
        logger.debug("gmail_message_marked", message_id=message_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _users(self) -> Any:
        assert self._service is not None, "Gmail source not started"
        return self._service.users()

    async def _call(self, what: str, fn: Callable[[], Any]) -> Any:
        @self._retry
        async def _attempt() -> Any:
            return await asyncio.to_thread(fn)

        try:
            return await _attempt()
        except (HttpError, OSError, httplib2.HttpLib2Error, GoogleAuthError) as exc:
            logger.warning("gmail_call_failed", call=what, error=str(exc))
            raise SourceError(f"{what} failed: {exc}") from exc
