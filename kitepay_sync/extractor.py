"""Payment record extraction from Paytm notification bodies.

The extractor turns the base64url body returned by Gmail into a
:class:`NormalizedRecord`.  Every field is matched independently, so a
template change that breaks one pattern only nulls that field.  The
amount is the one required field: without it the message is a
:class:`ParseFailure`.
"""

from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime, timedelta, timezone

from bs4 import BeautifulSoup

from .config import ExtractorConfig
from .models import NormalizedRecord, ParseFailure

# Block-level tags whose end is a field boundary in the rendered mail.
BLOCK_TAGS = ["tr", "p", "div", "li", "table", "h1", "h2", "h3", "h4", "h5", "h6"]

ENTITY_SUBSTITUTIONS = {
    "&#8377;": "₹",
    "&#x20b9;": "₹",
    "&#x20B9;": "₹",
    "â‚¹": "₹",  # UTF-8 rupee sign decoded as cp1252
    "&nbsp;": " ",
    "\xa0": " ",
}

AMOUNT_RE = re.compile(r"₹\s*([\d,]+(?:\.\d{1,2})?)")
ORDER_ID_RE = re.compile(r"Order ID:\s*([A-Z0-9]+)", re.IGNORECASE)
FROM_UPI_RE = re.compile(r"\bFrom\s*([A-Za-z0-9@._-]+)", re.IGNORECASE)
ACCOUNT_OF_RE = re.compile(
    r"(?i:in account of)\s*(.*?)[ \t]*(?:(?i:transaction)|[A-Z][a-z]{2} \d{1,2}, \d{4}|$)",
    re.MULTILINE,
)
TRANSACTION_COUNT_RE = re.compile(r"Transaction Count #(\d+)", re.IGNORECASE)
PAYMENT_TIME_RE = re.compile(r"([A-Z][a-z]{2}\s\d{1,2},\s\d{4},\s\d{1,2}:\d{2}\s[AP]M)")
PAYMENT_TIME_FORMAT = "%b %d, %Y, %I:%M %p"


def decode_body(body_data: str) -> str:
    """Decode Gmail's base64url body data to text, tolerating missing padding."""
    padded = body_data + "=" * (-len(body_data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError):
        return ""
    return raw.decode("utf-8", errors="replace")


def html_to_text(html: str) -> str:
    """Flatten HTML to one field per line.

    Line breaks are inserted for ``<br>`` and after block elements
    before the tags are stripped, so adjacent cells do not run
    together.
    """
    for entity, replacement in ENTITY_SUBSTITUTIONS.items():
        html = html.replace(entity, replacement)

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(BLOCK_TAGS):
        tag.append("\n")

    text = soup.get_text(separator=" ").replace("\xa0", " ")
    lines = (" ".join(line.split()) for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def _first(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


class PaymentExtractor:
    """Stateless extractor: encoded body → NormalizedRecord | ParseFailure."""

    def __init__(self, config: ExtractorConfig | None = None) -> None:
        config = config or ExtractorConfig()
        self._tz = timezone(timedelta(minutes=config.utc_offset_minutes))

    def extract(self, raw_body: str, *, timestamp: int) -> NormalizedRecord | ParseFailure:
        """Extract a record from *raw_body* (base64url).

        *timestamp* is the message's delivery time; it is copied to the
        record and used as ``txn_time`` when the body carries no payment
        time.
        """
        text = html_to_text(decode_body(raw_body))
        return self.extract_text(text, timestamp=timestamp)

    def extract_text(self, text: str, *, timestamp: int) -> NormalizedRecord | ParseFailure:
        amount = _first(AMOUNT_RE, text)
        if amount is None:
            return ParseFailure(reason="amount not found")

        return NormalizedRecord(
            amount=amount,
            order_id=_first(ORDER_ID_RE, text),
            account_of=_first(ACCOUNT_OF_RE, text),
            from_upi=_first(FROM_UPI_RE, text),
            transaction_count=_first(TRANSACTION_COUNT_RE, text),
            timestamp=timestamp,
            txn_time=self.payment_time(text) or timestamp,
        )

    def payment_time(self, text: str) -> int | None:
        """Unix seconds of the ``Nov 26, 2025, 10:31 AM`` style time in *text*."""
        raw = _first(PAYMENT_TIME_RE, text)
        if raw is None:
            return None
        try:
            parsed = datetime.strptime(" ".join(raw.split()), PAYMENT_TIME_FORMAT)
        except ValueError:
            return None
        return int(parsed.replace(tzinfo=self._tz).timestamp())
