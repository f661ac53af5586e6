"""Webhook registration for integration clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence
from urllib.parse import urlparse

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.core.settings import settings
from loyaltyx_api.models.webhook import WEBHOOK_WILDCARD, Webhook, WebhookEventType
from loyaltyx_api.services.errors import InvalidArgument, NotFound
from loyaltyx_api.services.webhooks.signing import generate_webhook_secret

VALID_EVENTS: tuple[str, ...] = (WEBHOOK_WILDCARD, *(event.value for event in WebhookEventType))


@dataclass(slots=True)
class RegisteredWebhook:
    """Freshly created webhook plus the only copy of its secret the client will see."""

    webhook: Webhook
    secret: str


def normalize_events(events: Iterable[str] | None) -> list[str]:
    requested = list(events) if events is not None else [WEBHOOK_WILDCARD]
    if not requested:
        raise InvalidArgument("At least one event must be subscribed")

    normalized: list[str] = []
    for event in requested:
        if event not in VALID_EVENTS:
            raise InvalidArgument(
                f"Invalid event type: {event}. Valid events: {', '.join(VALID_EVENTS)}",
                details={"event": event, "validEvents": list(VALID_EVENTS)},
            )
        if event not in normalized:
            normalized.append(event)
    return normalized


def validate_url(url: str | None, *, allowed_schemes: Sequence[str] | None = None) -> str:
    if not url or not url.strip():
        raise InvalidArgument("Missing required field: url")
    candidate = url.strip()
    parsed = urlparse(candidate)
    schemes = allowed_schemes if allowed_schemes is not None else settings.webhook_allowed_schemes
    if parsed.scheme.lower() not in schemes or not parsed.netloc:
        raise InvalidArgument("Invalid URL format", details={"url": candidate})
    return candidate


class WebhookRegistry:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def register(
        self,
        business_id: int,
        *,
        url: str,
        events: Iterable[str] | None = None,
    ) -> RegisteredWebhook:
        target = validate_url(url)
        subscribed = normalize_events(events)
        secret = generate_webhook_secret()

        webhook = Webhook(
            business_id=business_id,
            url=target,
            events=subscribed,
            secret=secret,
            is_active=True,
        )
        self._db.add(webhook)
        await self._db.commit()
        await self._db.refresh(webhook)
        logger.info(
            "Registered webhook",
            business_id=business_id,
            webhook_id=webhook.id,
            events=subscribed,
        )
        return RegisteredWebhook(webhook=webhook, secret=secret)

    async def list_webhooks(self, business_id: int) -> list[Webhook]:
        stmt = (
            select(Webhook)
            .where(Webhook.business_id == business_id)
            .order_by(Webhook.created_at.desc(), Webhook.id.desc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def deactivate(self, business_id: int, webhook_id: int) -> Webhook:
        stmt = select(Webhook).where(Webhook.id == webhook_id, Webhook.business_id == business_id)
        webhook = (await self._db.execute(stmt)).scalar_one_or_none()
        if webhook is None:
            raise NotFound("Webhook not found")
        webhook.is_active = False
        await self._db.commit()
        logger.info("Deactivated webhook", business_id=business_id, webhook_id=webhook_id)
        return webhook


__all__ = ["RegisteredWebhook", "VALID_EVENTS", "WebhookRegistry", "normalize_events", "validate_url"]
