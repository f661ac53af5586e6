from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.security import require_api_key
from loyaltyx_api.api.responses import success
from loyaltyx_api.db.session import get_session
from loyaltyx_api.services.api_keys import ApiKeyIdentity
from loyaltyx_api.services.rewards import RewardService, serialize_reward

router = APIRouter(prefix="/integrations/rewards", tags=["integrations"])


@router.get("")
async def list_rewards(
    identity: ApiKeyIdentity = Depends(require_api_key),
    db: AsyncSession = Depends(get_session),
) -> dict:
    rewards = await RewardService(db).list_rewards(identity.business_id)
    return success([serialize_reward(reward) for reward in rewards], count=len(rewards))
