"""
Inbound pipeline: webhook message → citizen + chat log → registration turn
(or Q&A once registered) → reply through the WhatsApp client.
Anything that escapes is answered with a bilingual apology.
"""

import logging
import os

import requests

from src.nlp.preprocessing import preprocess
from src.qa.responder import HISTORY_TURNS, answer_question
from src.registration.messages import fallback_message, unsupported_message_notice
from src.registration.orchestrator import handle_inbound_message
from src.registry.store import get_chat_history, get_or_create_citizen, save_chat_message
from src.schemas import ChatMessage, ChatRole, WhatsAppProfile
from src.whatsapp.client import (
    HourlyRateLimiter,
    RateLimitExceeded,
    WhatsAppError,
    fetch_profile,
    send_text,
)
from src.whatsapp.payloads import InboundMessage

logger = logging.getLogger(__name__)


def _fallback_kind(exc: Exception) -> str:
    if isinstance(exc, RateLimitExceeded):
        return "rate_limit"
    cause = exc.__cause__ if isinstance(exc, WhatsAppError) else exc
    if isinstance(cause, (requests.ConnectionError, requests.Timeout)):
        return "connectivity"
    return "generic"


def _resolve_profile(message: InboundMessage) -> WhatsAppProfile:
    """Webhook contact name when present, otherwise a Graph API lookup."""
    if message.contact_name:
        return WhatsAppProfile(whatsapp_id=message.sender, display_name=message.contact_name)
    return fetch_profile(message.sender)


def _send_fallback(phone_number_id: str, recipient: str, exc: Exception, display_name: str | None) -> None:
    try:
        send_text(phone_number_id, recipient, fallback_message(_fallback_kind(exc), display_name))
    except WhatsAppError as send_exc:
        logger.error("Could not send fallback message to %s: %s", recipient, send_exc)


def process_inbound_message(message: InboundMessage, limiter: HourlyRateLimiter | None = None) -> str | None:
    """Handle one inbound message end to end. Returns the reply sent, if any."""
    phone_number_id = message.phone_number_id or os.environ.get("WHATSAPP_PHONE_NUMBER_ID", "")
    sender = message.sender
    display_name = message.contact_name
    try:
        profile = _resolve_profile(message)
        display_name = profile.display_name

        if not message.is_supported:
            get_or_create_citizen(sender, profile)
            notice = unsupported_message_notice(display_name)
            send_text(phone_number_id, sender, notice, limiter)
            logger.info("Unsupported %s message from %s", message.message_type, sender)
            return notice

        pre = preprocess(message.text or "")
        citizen = get_or_create_citizen(sender, profile, pre.language)
        save_chat_message(
            ChatMessage(
                citizen_id=sender,
                role=ChatRole.USER,
                content=pre.text,
                language=pre.language,
                message_id=message.message_id,
                message_type=message.message_type,
            )
        )

        result = handle_inbound_message(sender, pre.text, pre.language, citizen)
        reply = result.reply
        if not reply and result.should_continue_to_qa:
            # Drop the message just logged; it is passed as the question
            history = get_chat_history(sender, limit=HISTORY_TURNS + 1)[:-1]
            reply = answer_question(citizen, pre.text, pre.language, history)
        if not reply:
            return None

        send_text(phone_number_id, sender, reply, limiter, reply_to=message.message_id)
        audit = result.transition_audit
        save_chat_message(
            ChatMessage(
                citizen_id=sender,
                role=ChatRole.ASSISTANT,
                content=reply,
                language=pre.language,
                state_snapshot=audit.model_dump(mode="json", exclude={"extraction"}),
                extraction_snapshot=audit.extraction,
            )
        )
        return reply
    except Exception as exc:
        logger.exception("Failed processing message %s from %s", message.message_id, sender)
        _send_fallback(phone_number_id, sender, exc, display_name)
        return None
