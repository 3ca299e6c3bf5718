"""
WhatsApp Cloud API webhook payload shapes. Unknown keys are ignored; only the
fields the assistant reads are modelled.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TEXT_TYPES = {"text", "interactive", "button"}


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ContactProfile(_Lenient):
    name: str | None = None


class Contact(_Lenient):
    wa_id: str | None = None
    profile: ContactProfile | None = None


class Metadata(_Lenient):
    display_phone_number: str | None = None
    phone_number_id: str | None = None


class WebhookMessage(_Lenient):
    id: str
    sender: str = Field(alias="from")
    timestamp: str | None = None
    type: str = "text"
    text: dict[str, Any] | None = None
    interactive: dict[str, Any] | None = None
    button: dict[str, Any] | None = None


class ChangeValue(_Lenient):
    messaging_product: str | None = None
    metadata: Metadata | None = None
    contacts: list[Contact] = Field(default_factory=list)
    messages: list[WebhookMessage] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class Change(_Lenient):
    field: str | None = None
    value: ChangeValue


class Entry(_Lenient):
    id: str | None = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(_Lenient):
    object: str | None = None
    entry: list[Entry] = Field(default_factory=list)


class InboundMessage(BaseModel):
    """The one message a webhook delivery is processed for."""

    message_id: str
    sender: str
    phone_number_id: str | None = None
    message_type: str
    text: str | None = None
    contact_name: str | None = None
    timestamp: str | None = None

    @property
    def is_supported(self) -> bool:
        return self.message_type in TEXT_TYPES and bool((self.text or "").strip())


def _interactive_text(interactive: dict[str, Any] | None) -> str | None:
    if not interactive:
        return None
    reply = interactive.get(interactive.get("type") or "") or {}
    return reply.get("title") or reply.get("id")


def message_text(message: WebhookMessage) -> str | None:
    """Readable text of a text, interactive (button/list reply) or button message."""
    if message.type == "text":
        return (message.text or {}).get("body")
    if message.type == "interactive":
        return _interactive_text(message.interactive)
    if message.type == "button":
        button = message.button or {}
        return button.get("text") or button.get("payload")
    return None


def first_inbound_message(payload: WebhookPayload) -> InboundMessage | None:
    """First message of the first change carrying one; status-only deliveries → None."""
    for entry in payload.entry:
        for change in entry.changes:
            value = change.value
            if not value.messages:
                continue
            message = value.messages[0]
            contact = next((c for c in value.contacts if c.wa_id == message.sender), None)
            if contact is None and value.contacts:
                contact = value.contacts[0]
            return InboundMessage(
                message_id=message.id,
                sender=message.sender,
                phone_number_id=value.metadata.phone_number_id if value.metadata else None,
                message_type=message.type,
                text=message_text(message),
                contact_name=contact.profile.name if contact and contact.profile else None,
                timestamp=message.timestamp,
            )
    return None
