"""
WhatsApp Cloud API client: send text (split into ordered parts) and fetch profiles.
Transport retries live on the HTTP session; the hourly send budget is an explicit
HourlyRateLimiter owned by the app.
"""

import logging
import os
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from src.schemas import WhatsAppProfile

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"
# WhatsApp rejects bodies over 4096 characters
MAX_MESSAGE_LENGTH = 4000
# Room for the "(i/n)" part marker
PART_MARKER_RESERVE = 16
SENTENCE_END = re.compile(r"(?<=[.!?।])\s+")


class WhatsAppError(Exception):
    """Send or lookup against the Graph API failed."""


class RateLimitExceeded(WhatsAppError):
    """Hourly outgoing message budget is used up."""


@dataclass
class DeliveryReceipt:
    message_id: str | None
    part: int
    total_parts: int
    status: str = "sent"


class HourlyRateLimiter:
    """Fixed-window counter keyed by UTC hour. A new hour resets the count on the next read."""

    def __init__(self, limit: int, clock: Callable[[], datetime] | None = None):
        self.limit = limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._window: str | None = None
        self._count = 0
        self._lock = threading.Lock()

    def _roll(self) -> None:
        key = self._clock().strftime("%Y-%m-%dT%H")
        if key != self._window:
            self._window = key
            self._count = 0

    def remaining(self) -> int:
        with self._lock:
            self._roll()
            return max(0, self.limit - self._count)

    def acquire(self, n: int = 1) -> None:
        """Reserve `n` sends in the current hour or raise RateLimitExceeded."""
        with self._lock:
            self._roll()
            if self._count + n > self.limit:
                raise RateLimitExceeded(f"Hourly limit of {self.limit} messages reached")
            self._count += n


def default_hourly_limit() -> int:
    return int(os.environ.get("WHATSAPP_HOURLY_LIMIT", "1000"))


_session: requests.Session | None = None


def _get_session() -> requests.Session:
    global _session
    if _session is None:
        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET", "POST"}),
        )
        _session = requests.Session()
        _session.mount("https://", HTTPAdapter(max_retries=retry))
    return _session


def _api_url(path: str) -> str:
    version = os.environ.get("WHATSAPP_API_VERSION", "v18.0")
    return f"{GRAPH_BASE_URL}/{version}/{path.lstrip('/')}"


def _headers() -> dict[str, str]:
    token = os.environ.get("WHATSAPP_ACCESS_TOKEN")
    if not token:
        raise WhatsAppError("WHATSAPP_ACCESS_TOKEN not set")
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


def _timeout() -> float:
    return float(os.environ.get("WHATSAPP_TIMEOUT_S", "10"))


def clean_phone_number(number: str) -> str:
    """Digits only; bare ten-digit Indian numbers get the 91 country code."""
    digits = re.sub(r"\D", "", number or "")
    if len(digits) == 10:
        return f"91{digits}"
    return digits


def _pack(pieces: list[str], sep: str, limit: int, finer: Callable[[str, int], list[str]]) -> list[str]:
    parts: list[str] = []
    current = ""
    for piece in pieces:
        if len(piece) > limit:
            if current:
                parts.append(current)
                current = ""
            parts.extend(finer(piece, limit))
            continue
        candidate = f"{current}{sep}{piece}" if current else piece
        if len(candidate) > limit:
            parts.append(current)
            current = piece
        else:
            current = candidate
    if current:
        parts.append(current)
    return parts


def _hard_split(word: str, limit: int) -> list[str]:
    return [word[i : i + limit] for i in range(0, len(word), limit)]


def _split_words(text: str, limit: int) -> list[str]:
    return _pack([w for w in text.split(" ") if w], " ", limit, _hard_split)


def _split_sentences(text: str, limit: int) -> list[str]:
    return _pack([s for s in SENTENCE_END.split(text) if s], " ", limit, _split_words)


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Ordered parts no longer than `max_length`: paragraph boundaries first, then
    sentences (including the Devanagari danda), then words. Multi-part output
    carries a "(i/n)" marker on each part.
    """
    if len(text) <= max_length:
        return [text]
    budget = max_length - PART_MARKER_RESERVE
    parts = [p.strip() for p in _pack(text.split("\n\n"), "\n\n", budget, _split_sentences) if p.strip()]
    total = len(parts)
    return [f"{part}\n\n({i}/{total})" for i, part in enumerate(parts, start=1)]


def send_text(
    phone_number_id: str,
    recipient: str,
    text: str,
    limiter: HourlyRateLimiter | None = None,
    reply_to: str | None = None,
) -> list[DeliveryReceipt]:
    """
    Send `text` as one or more ordered messages. Raises RateLimitExceeded before
    any part goes out if the hourly budget cannot cover every part, and
    WhatsAppError if a part fails (earlier parts may already be delivered).
    """
    if not phone_number_id or not recipient or not text:
        raise WhatsAppError("Missing required parameters for sending message")
    to = clean_phone_number(recipient)
    parts = split_message(text)
    if limiter is not None:
        limiter.acquire(len(parts))
    headers = _headers()

    receipts: list[DeliveryReceipt] = []
    for i, body in enumerate(parts, start=1):
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        if reply_to and i == 1:
            payload["context"] = {"message_id": reply_to}
        try:
            r = _get_session().post(
                _api_url(f"{phone_number_id}/messages"),
                json=payload,
                headers=headers,
                timeout=_timeout(),
            )
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise WhatsAppError(f"Sending part {i}/{len(parts)} to {to} failed: {exc}") from exc
        message_id = ((data.get("messages") or [{}])[0]).get("id")
        receipts.append(DeliveryReceipt(message_id=message_id, part=i, total_parts=len(parts)))
    logger.info("Sent %d part(s) to %s", len(parts), to)
    return receipts


def fetch_profile(recipient: str) -> WhatsAppProfile:
    """Display name and picture from the Graph API. Empty profile on any failure."""
    number = clean_phone_number(recipient)
    try:
        r = _get_session().get(
            _api_url(number),
            params={"fields": "id,name,profile_pic"},
            headers=_headers(),
            timeout=_timeout(),
        )
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError, WhatsAppError) as exc:
        logger.warning("Profile lookup failed for %s: %s", number, exc)
        return WhatsAppProfile(whatsapp_id=number)
    return WhatsAppProfile(
        whatsapp_id=data.get("id") or number,
        display_name=data.get("name"),
        profile_picture=data.get("profile_pic"),
    )
