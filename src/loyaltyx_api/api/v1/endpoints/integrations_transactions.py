"""Integration endpoints for recording purchases."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.security import require_api_key
from loyaltyx_api.api.idempotency import IDEMPOTENCY_HEADER, execute_idempotent
from loyaltyx_api.api.responses import paginated, success
from loyaltyx_api.db.session import SessionFactory, get_session, get_session_factory
from loyaltyx_api.services.api_keys import ApiKeyIdentity
from loyaltyx_api.services.transactions import TransactionService, serialize_transaction
from loyaltyx_api.services.webhooks import WebhookDispatcher

router = APIRouter(prefix="/integrations/transactions", tags=["integrations"])


class TransactionCreateRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, description="Purchase amount; one point per full 100 units")
    customerId: Optional[int] = Field(None, description="Customer identifier")
    customerEmail: Optional[str] = Field(None, description="Customer email, used when customerId is absent")
    date: Optional[datetime] = Field(None, description="Purchase time; defaults to now")


@router.post("")
async def create_transaction(
    payload: TransactionCreateRequest,
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    idempotency_key: str | None = Header(None, alias=IDEMPOTENCY_HEADER),
):
    async def handler() -> dict:
        receipt = await TransactionService(db, WebhookDispatcher(session_factory)).create(
            identity.business_id,
            amount=payload.amount,
            customer_id=payload.customerId,
            customer_email=payload.customerEmail,
            date=payload.date,
        )
        return success(receipt.to_dict(), "Transaction created successfully")

    return await execute_idempotent(
        db,
        business_id=identity.business_id,
        idempotency_key=idempotency_key,
        status_code=201,
        handler=handler,
    )


@router.get("")
async def list_transactions(
    customer_id: int | None = Query(None, alias="customerId"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
) -> dict:
    rows, total = await TransactionService(db).list_transactions(
        identity.business_id,
        customer_id=customer_id,
        limit=limit,
        offset=offset,
    )
    return paginated([serialize_transaction(row) for row in rows], total=total, limit=limit, offset=offset)
