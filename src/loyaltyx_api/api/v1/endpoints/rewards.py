"""Dashboard endpoints for the reward catalog."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.session import require_business_session
from loyaltyx_api.api.responses import success
from loyaltyx_api.db.session import get_session
from loyaltyx_api.models.business import Business
from loyaltyx_api.services.rewards import RewardService, serialize_reward

router = APIRouter(prefix="/rewards", tags=["rewards"])


class RewardCreateRequest(BaseModel):
    title: Optional[str] = Field(None, description="Reward title")
    description: Optional[str] = Field(None, description="Optional long description")
    pointsRequired: Optional[int] = Field(None, description="Cost in points; must be positive")


class RewardUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    pointsRequired: Optional[int] = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_reward(
    payload: RewardCreateRequest,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    reward = await RewardService(db).create(
        business.id,
        title=payload.title,
        description=payload.description,
        points_required=payload.pointsRequired,
    )
    return success(serialize_reward(reward), "Reward created successfully")


@router.patch("/{reward_id}")
async def update_reward(
    reward_id: int,
    payload: RewardUpdateRequest,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    changes = {}
    if "description" in payload.model_fields_set:
        changes["description"] = payload.description
    reward = await RewardService(db).update(
        business.id,
        reward_id,
        title=payload.title,
        points_required=payload.pointsRequired,
        **changes,
    )
    return success(serialize_reward(reward), "Reward updated successfully")


@router.delete("/{reward_id}")
async def delete_reward(
    reward_id: int,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await RewardService(db).delete(business.id, reward_id)
    return success(message="Reward deleted successfully")
