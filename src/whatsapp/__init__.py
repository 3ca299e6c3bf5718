from .payloads import InboundMessage, WebhookPayload, first_inbound_message
from .pipeline import process_inbound_message
from .router import router

__all__ = [
    "InboundMessage",
    "WebhookPayload",
    "first_inbound_message",
    "process_inbound_message",
    "router",
]
