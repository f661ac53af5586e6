"""Dashboard endpoints for managing enrolled customers."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.session import require_business_session
from loyaltyx_api.api.responses import success
from loyaltyx_api.db.session import SessionFactory, get_session, get_session_factory
from loyaltyx_api.models.business import Business
from loyaltyx_api.services.customers import CustomerService, serialize_customer
from loyaltyx_api.services.webhooks import WebhookDispatcher

router = APIRouter(prefix="/customers", tags=["customers"])


class CustomerCreateRequest(BaseModel):
    email: Optional[str] = Field(None, description="Customer email, unique within the business")
    name: Optional[str] = Field(None, description="Display name")
    phone: Optional[str] = Field(None, description="Optional phone number")


class CustomerUpdateRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None


@router.get("")
async def list_customers(
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    customers = await CustomerService(db).list_customers(business.id)
    return success([serialize_customer(customer) for customer in customers], count=len(customers))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreateRequest,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> dict:
    customer = await CustomerService(db, WebhookDispatcher(session_factory)).create(
        business.id,
        email=payload.email,
        name=payload.name,
        phone=payload.phone,
    )
    return success(serialize_customer(customer), "Customer created successfully")


@router.get("/{customer_id}")
async def get_customer(
    customer_id: int,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    customer = await CustomerService(db).get(business.id, customer_id)
    return success(serialize_customer(customer))


@router.patch("/{customer_id}")
async def update_customer(
    customer_id: int,
    payload: CustomerUpdateRequest,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    changes = {}
    if "phone" in payload.model_fields_set:
        changes["phone"] = payload.phone
    customer = await CustomerService(db).update(
        business.id,
        customer_id,
        email=payload.email,
        name=payload.name,
        **changes,
    )
    return success(serialize_customer(customer), "Customer updated successfully")


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: int,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await CustomerService(db).delete(business.id, customer_id)
    return success(message="Customer deleted successfully")
