"""Dashboard endpoints for correcting recorded transactions."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.session import require_business_session
from loyaltyx_api.api.responses import success
from loyaltyx_api.db.session import get_session
from loyaltyx_api.models.business import Business
from loyaltyx_api.services.transactions import TransactionService, serialize_transaction

router = APIRouter(prefix="/transactions", tags=["transactions"])


class TransactionUpdateRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, description="Corrected purchase amount")
    date: Optional[datetime] = Field(None, description="Corrected purchase time")


@router.patch("/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    payload: TransactionUpdateRequest,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    result = await TransactionService(db).update(
        business.id,
        transaction_id,
        amount=payload.amount,
        date=payload.date,
    )
    return success(
        serialize_transaction(result.transaction),
        "Transaction updated successfully",
        pointsAdjustment=result.points_adjustment,
        newBalance=result.new_balance,
    )


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: int,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    removal = await TransactionService(db).delete(business.id, transaction_id)
    return success(
        message="Transaction deleted successfully",
        pointsRemoved=removal.points_removed,
        newBalance=removal.new_balance,
    )
