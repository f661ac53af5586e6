"""Dashboard endpoints for correcting redemptions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.session import require_business_session
from loyaltyx_api.api.responses import success
from loyaltyx_api.db.session import get_session
from loyaltyx_api.models.business import Business
from loyaltyx_api.services.redemptions import RedemptionService

router = APIRouter(prefix="/redemptions", tags=["redemptions"])


class RedemptionUpdateRequest(BaseModel):
    rewardId: Optional[int] = Field(None, description="Reward to swap in")
    date: Optional[datetime] = Field(None, description="Corrected redemption time")


@router.patch("/{redemption_id}")
async def update_redemption(
    redemption_id: int,
    payload: RedemptionUpdateRequest,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    result = await RedemptionService(db).update(
        business.id,
        redemption_id,
        reward_id=payload.rewardId,
        date=payload.date,
    )
    return success(
        result.to_dict(),
        "Redemption updated successfully",
        pointsAdjustment=result.points_adjustment,
        newBalance=result.new_balance,
    )


@router.delete("/{redemption_id}")
async def delete_redemption(
    redemption_id: int,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Undo a redemption, returning the points it deducted."""

    removal = await RedemptionService(db).delete(business.id, redemption_id)
    return success(
        message="Redemption deleted successfully",
        pointsRestored=removal.points_restored,
        newBalance=removal.new_balance,
    )
