"""WhatsApp webhook: Meta verification handshake and inbound message delivery."""

import logging
import os

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from src.whatsapp.payloads import WebhookPayload, first_inbound_message
from src.whatsapp.pipeline import process_inbound_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["whatsapp"])


@router.get("", response_class=PlainTextResponse)
def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
):
    """Echo hub.challenge when the subscribe request carries our verify token."""
    expected = os.environ.get("WHATSAPP_VERIFY_TOKEN")
    if mode == "subscribe" and expected and token == expected:
        logger.info("Webhook verified")
        return challenge or ""
    logger.warning("Webhook verification failed (mode=%s)", mode)
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("")
def receive_webhook(body: dict, request: Request, background_tasks: BackgroundTasks):
    """
    Acknowledge immediately; the first message in the delivery is processed in the
    background. Status-only and malformed deliveries are acknowledged and dropped.
    """
    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as exc:
        logger.warning("Ignoring malformed webhook payload: %s", exc)
        return {"status": "ignored"}
    message = first_inbound_message(payload)
    if message is None:
        return {"status": "ignored"}
    limiter = getattr(request.app.state, "rate_limiter", None)
    background_tasks.add_task(process_inbound_message, message, limiter)
    return {"status": "accepted", "message_id": message.message_id}
