"""Integration endpoints for redeeming rewards at the point of sale."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.security import require_api_key
from loyaltyx_api.api.idempotency import IDEMPOTENCY_HEADER, execute_idempotent
from loyaltyx_api.api.responses import paginated, success
from loyaltyx_api.db.session import SessionFactory, get_session, get_session_factory
from loyaltyx_api.services.api_keys import ApiKeyIdentity
from loyaltyx_api.services.redemptions import RedemptionService, serialize_redemption
from loyaltyx_api.services.webhooks import WebhookDispatcher

router = APIRouter(prefix="/integrations/redemptions", tags=["integrations"])


class RedemptionCreateRequest(BaseModel):
    rewardId: Optional[int] = Field(None, description="Reward to redeem")
    customerId: Optional[int] = Field(None, description="Customer identifier")
    customerEmail: Optional[str] = Field(None, description="Customer email, used when customerId is absent")


@router.post("")
async def create_redemption(
    payload: RedemptionCreateRequest,
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    idempotency_key: str | None = Header(None, alias=IDEMPOTENCY_HEADER),
):
    async def handler() -> dict:
        receipt = await RedemptionService(db, WebhookDispatcher(session_factory)).create(
            identity.business_id,
            reward_id=payload.rewardId,
            customer_id=payload.customerId,
            customer_email=payload.customerEmail,
        )
        return success(receipt.to_dict(), "Reward redeemed successfully")

    return await execute_idempotent(
        db,
        business_id=identity.business_id,
        idempotency_key=idempotency_key,
        status_code=201,
        handler=handler,
    )


@router.get("")
async def list_redemptions(
    customer_id: int | None = Query(None, alias="customerId"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
) -> dict:
    rows, total = await RedemptionService(db).list_redemptions(
        identity.business_id,
        customer_id=customer_id,
        limit=limit,
        offset=offset,
    )
    return paginated([serialize_redemption(row) for row in rows], total=total, limit=limit, offset=offset)
