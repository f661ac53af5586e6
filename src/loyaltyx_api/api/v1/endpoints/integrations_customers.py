"""Integration endpoints for customer enrollment."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.security import require_api_key
from loyaltyx_api.api.idempotency import IDEMPOTENCY_HEADER, execute_idempotent
from loyaltyx_api.api.responses import success
from loyaltyx_api.db.session import SessionFactory, get_session, get_session_factory
from loyaltyx_api.services.api_keys import ApiKeyIdentity
from loyaltyx_api.services.customers import CustomerService, serialize_customer
from loyaltyx_api.services.webhooks import WebhookDispatcher

router = APIRouter(prefix="/integrations/customers", tags=["integrations"])


class CustomerUpsertRequest(BaseModel):
    email: Optional[str] = Field(None, description="Customer email; the identity within a business")
    name: Optional[str] = Field(None, description="Display name")
    phone: Optional[str] = Field(None, description="Optional phone number")


@router.post("")
async def upsert_customer(
    payload: CustomerUpsertRequest,
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    idempotency_key: str | None = Header(None, alias=IDEMPOTENCY_HEADER),
):
    async def handler() -> dict:
        service = CustomerService(db, WebhookDispatcher(session_factory))
        result = await service.upsert(
            identity.business_id,
            email=payload.email,
            name=payload.name,
            phone=payload.phone,
        )
        message = "Customer created successfully" if result.created else "Customer updated successfully"
        return success(serialize_customer(result.customer), message, created=result.created)

    return await execute_idempotent(
        db,
        business_id=identity.business_id,
        idempotency_key=idempotency_key,
        status_code=200,
        handler=handler,
    )


@router.get("")
async def list_customers(
    email: str | None = Query(None),
    phone: str | None = Query(None),
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
) -> dict:
    customers = await CustomerService(db).list_customers(identity.business_id, email=email, phone=phone)
    return success([serialize_customer(customer) for customer in customers], count=len(customers))
