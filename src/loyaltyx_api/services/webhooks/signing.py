"""HMAC-SHA256 signatures for outbound webhook payloads."""

from __future__ import annotations

import hashlib
import hmac
import secrets

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"


def generate_webhook_secret() -> str:
    return secrets.token_hex(32)


def _as_bytes(value: bytes | str) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign_payload(payload: bytes | str, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw payload bytes."""

    return hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: bytes | str, signature: str, secret: str) -> bool:
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected, signature or "")


__all__ = [
    "EVENT_HEADER",
    "SIGNATURE_HEADER",
    "generate_webhook_secret",
    "sign_payload",
    "verify_signature",
]
