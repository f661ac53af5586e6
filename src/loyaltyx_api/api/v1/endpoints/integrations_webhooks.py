"""Integration endpoints for webhook subscriptions."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.security import require_api_key
from loyaltyx_api.api.responses import success
from loyaltyx_api.db.session import get_session
from loyaltyx_api.models.webhook import Webhook
from loyaltyx_api.services.api_keys import ApiKeyIdentity
from loyaltyx_api.services.webhooks import WebhookRegistry

router = APIRouter(prefix="/integrations/webhooks", tags=["integrations"])


class WebhookRegisterRequest(BaseModel):
    url: Optional[str] = Field(None, description="Absolute URL receiving signed event POSTs")
    events: Optional[List[str]] = Field(None, description="Subscribed events; defaults to all")


def _serialize_webhook(webhook: Webhook) -> dict:
    return {
        "id": webhook.id,
        "url": webhook.url,
        "events": list(webhook.events or []),
        "isActive": webhook.is_active,
        "createdAt": webhook.created_at,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_webhook(
    payload: WebhookRegisterRequest,
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
) -> dict:
    registered = await WebhookRegistry(db).register(
        identity.business_id,
        url=payload.url,
        events=payload.events,
    )
    data = _serialize_webhook(registered.webhook)
    data["secret"] = registered.secret
    return success(
        data,
        "Webhook registered successfully. Store the secret securely; it will not be shown again.",
    )


@router.get("")
async def list_webhooks(
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
) -> dict:
    webhooks = await WebhookRegistry(db).list_webhooks(identity.business_id)
    return success([_serialize_webhook(webhook) for webhook in webhooks], count=len(webhooks))


@router.delete("/{webhook_id}")
async def deactivate_webhook(
    webhook_id: int,
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
) -> dict:
    webhook = await WebhookRegistry(db).deactivate(identity.business_id, webhook_id)
    return success(_serialize_webhook(webhook), "Webhook deactivated successfully")
