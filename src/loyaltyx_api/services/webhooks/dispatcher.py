"""Fan domain events out to subscribed webhooks as pending deliveries."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping

from fastapi.encoders import jsonable_encoder
from loguru import logger
from sqlalchemy import select

from loyaltyx_api.db.session import SessionFactory, ensure_session
from loyaltyx_api.models.webhook import Webhook, WebhookDelivery, WebhookDeliveryStatus, WebhookEventType


def build_event_payload(
    business_id: int,
    event: str,
    data: Mapping[str, Any],
    *,
    timestamp: datetime | None = None,
) -> str:
    """Serialize the envelope once; these exact bytes are signed and sent."""

    occurred_at = timestamp or datetime.now(timezone.utc)
    envelope = {
        "event": event,
        "data": jsonable_encoder(dict(data)),
        "businessId": business_id,
        "timestamp": occurred_at.isoformat().replace("+00:00", "Z"),
    }
    return json.dumps(envelope, separators=(",", ":"), sort_keys=True)


class WebhookDispatcher:
    """Enqueues one pending delivery per matching active webhook.

    Emission runs after the triggering mutation has committed, on a session
    of its own: a failure here is logged and rolled back without touching the
    caller's session or its loaded objects, and is never raised.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def emit(self, business_id: int, event: WebhookEventType | str, data: Mapping[str, Any]) -> int:
        event_name = event.value if isinstance(event, WebhookEventType) else str(event)
        session = await ensure_session(self._session_factory)
        async with session:
            try:
                stmt = select(Webhook).where(
                    Webhook.business_id == business_id,
                    Webhook.is_active.is_(True),
                )
                webhooks = (await session.execute(stmt)).scalars().all()
                matching = [webhook for webhook in webhooks if webhook.subscribes_to(event_name)]
                if not matching:
                    return 0

                payload = build_event_payload(business_id, event_name, data)
                for webhook in matching:
                    session.add(
                        WebhookDelivery(
                            webhook_id=webhook.id,
                            event=event_name,
                            payload=payload,
                            status=WebhookDeliveryStatus.PENDING,
                            attempts=0,
                        )
                    )
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception(
                    "Failed to enqueue webhook deliveries",
                    business_id=business_id,
                    event=event_name,
                    error=str(exc),
                )
                return 0

        logger.info(
            "Enqueued webhook deliveries",
            business_id=business_id,
            event=event_name,
            deliveries=len(matching),
        )
        return len(matching)


__all__ = ["WebhookDispatcher", "build_event_payload"]
