"""Reward catalog management."""

from __future__ import annotations

from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.models.reward import Redemption, Reward
from loyaltyx_api.services.errors import Conflict, InvalidArgument, NotFound

_UNSET: Any = object()


def _validate_points(points_required: Any) -> int:
    if isinstance(points_required, bool) or not isinstance(points_required, int) or points_required <= 0:
        raise InvalidArgument(
            "Points required must be a positive integer",
            details={"pointsRequired": points_required},
        )
    return points_required


def serialize_reward(reward: Reward) -> dict[str, Any]:
    return {
        "id": reward.id,
        "title": reward.title,
        "description": reward.description,
        "pointsRequired": reward.points_required,
        "createdAt": reward.created_at,
        "updatedAt": reward.updated_at,
    }


class RewardService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_rewards(self, business_id: int) -> list[Reward]:
        stmt = (
            select(Reward)
            .where(Reward.business_id == business_id)
            .order_by(Reward.points_required.asc(), Reward.id.asc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def get(self, business_id: int, reward_id: int) -> Reward:
        stmt = select(Reward).where(Reward.id == reward_id, Reward.business_id == business_id)
        reward = (await self._db.execute(stmt)).scalar_one_or_none()
        if reward is None:
            raise NotFound("Reward not found")
        return reward

    async def create(
        self,
        business_id: int,
        *,
        title: str | None,
        points_required: Any,
        description: str | None = None,
    ) -> Reward:
        if not title or not title.strip():
            raise InvalidArgument("Missing required field: title")
        reward = Reward(
            business_id=business_id,
            title=title.strip(),
            description=description,
            points_required=_validate_points(points_required),
        )
        self._db.add(reward)
        await self._db.commit()
        await self._db.refresh(reward)
        logger.info("Created reward", business_id=business_id, reward_id=reward.id)
        return reward

    async def update(
        self,
        business_id: int,
        reward_id: int,
        *,
        title: str | None = None,
        description: str | None = _UNSET,
        points_required: Any = None,
    ) -> Reward:
        reward = await self.get(business_id, reward_id)
        if title is not None:
            if not title.strip():
                raise InvalidArgument("Title cannot be empty")
            reward.title = title.strip()
        if description is not _UNSET:
            reward.description = description
        if points_required is not None:
            # Existing redemptions keep their snapshot; only new ones pay the new price.
            reward.points_required = _validate_points(points_required)
        await self._db.commit()
        await self._db.refresh(reward)
        logger.info("Updated reward", business_id=business_id, reward_id=reward_id)
        return reward

    async def delete(self, business_id: int, reward_id: int) -> None:
        reward = await self.get(business_id, reward_id)
        redeemed = (
            await self._db.execute(
                select(func.count(Redemption.id)).where(Redemption.reward_id == reward.id)
            )
        ).scalar_one()
        if redeemed:
            raise Conflict(
                "Reward has redemptions and cannot be deleted",
                details={"rewardId": reward_id, "redemptions": int(redeemed)},
            )
        await self._db.delete(reward)
        await self._db.commit()
        logger.info("Deleted reward", business_id=business_id, reward_id=reward_id)


__all__ = ["RewardService", "serialize_reward"]
