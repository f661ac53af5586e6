"""Outbound webhook services."""

from .dispatcher import WebhookDispatcher, build_event_payload
from .registry import VALID_EVENTS, RegisteredWebhook, WebhookRegistry
from .signing import EVENT_HEADER, SIGNATURE_HEADER, sign_payload, verify_signature

__all__ = [
    "EVENT_HEADER",
    "RegisteredWebhook",
    "SIGNATURE_HEADER",
    "VALID_EVENTS",
    "WebhookDispatcher",
    "WebhookRegistry",
    "build_event_payload",
    "sign_payload",
    "verify_signature",
]
