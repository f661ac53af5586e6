"""Reward redemptions and the point deductions they make."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loyaltyx_api.db.session import session_factory_for
from loyaltyx_api.models.customer import Customer
from loyaltyx_api.models.reward import Redemption, Reward
from loyaltyx_api.models.webhook import WebhookEventType
from loyaltyx_api.services.customers import resolve_customer
from loyaltyx_api.services.errors import InsufficientBalance, InvalidArgument, NotFound
from loyaltyx_api.services.ledger import can_redeem
from loyaltyx_api.services.webhooks.dispatcher import WebhookDispatcher


@dataclass(slots=True)
class RedemptionReceipt:
    redemption: Redemption
    reward: Reward
    new_balance: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "redemptionId": self.redemption.id,
            "customerId": self.redemption.customer_id,
            "rewardId": self.reward.id,
            "rewardTitle": self.reward.title,
            "pointsDeducted": self.redemption.points_deducted,
            "newBalance": self.new_balance,
            "date": self.redemption.date,
        }


@dataclass(slots=True)
class RedemptionUpdate:
    redemption: Redemption
    reward: Reward
    points_adjustment: int
    new_balance: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.redemption.id,
            "customerId": self.redemption.customer_id,
            "rewardId": self.reward.id,
            "rewardTitle": self.reward.title,
            "pointsDeducted": self.redemption.points_deducted,
            "date": self.redemption.date,
        }


@dataclass(slots=True)
class RedemptionRemoval:
    redemption_id: int
    customer_id: int
    points_restored: int
    new_balance: int


def serialize_redemption(redemption: Redemption) -> dict[str, Any]:
    reward = redemption.reward
    return {
        "id": redemption.id,
        "customerId": redemption.customer_id,
        "rewardId": redemption.reward_id,
        "rewardTitle": reward.title if reward is not None else None,
        "pointsDeducted": redemption.points_deducted,
        "date": redemption.date,
    }


class RedemptionService:
    def __init__(self, db_session: AsyncSession, dispatcher: WebhookDispatcher | None = None) -> None:
        self._db = db_session
        self._dispatcher = dispatcher or WebhookDispatcher(session_factory_for(db_session))

    async def create(
        self,
        business_id: int,
        *,
        reward_id: int | None,
        customer_id: int | None = None,
        customer_email: str | None = None,
    ) -> RedemptionReceipt:
        if reward_id is None:
            raise InvalidArgument("Missing required field: rewardId")

        try:
            customer = await resolve_customer(
                self._db,
                business_id,
                customer_id=customer_id,
                customer_email=customer_email,
                for_update=True,
            )
            reward = await self._get_reward(business_id, reward_id)
            required = reward.points_required
            if not can_redeem(customer.points, required):
                raise InsufficientBalance(required=required, available=customer.points)

            # The balance guard in the WHERE clause holds even if the lock is unavailable.
            result = await self._db.execute(
                update(Customer)
                .where(Customer.id == customer.id, Customer.points >= required)
                .values(points=Customer.points - required)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self._db.refresh(customer, attribute_names=["points"])
                raise InsufficientBalance(required=required, available=customer.points)

            redemption = Redemption(
                customer_id=customer.id,
                reward_id=reward.id,
                points_deducted=required,
            )
            self._db.add(redemption)
            await self._db.flush()
            await self._db.refresh(customer, attribute_names=["points"])
            await self._db.commit()
        except (SQLAlchemyError, InsufficientBalance, InvalidArgument, NotFound):
            await self._db.rollback()
            raise

        await self._db.refresh(redemption)
        receipt = RedemptionReceipt(redemption=redemption, reward=reward, new_balance=customer.points)
        logger.info(
            "Redeemed reward",
            business_id=business_id,
            customer_id=customer.id,
            reward_id=reward.id,
            redemption_id=redemption.id,
            points_deducted=required,
        )

        completed_event = {
            "redemptionId": redemption.id,
            "customerId": customer.id,
            "rewardId": reward.id,
            "pointsDeducted": required,
            "newBalance": receipt.new_balance,
        }
        await self._dispatcher.emit(business_id, WebhookEventType.REDEMPTION_COMPLETED, completed_event)
        return receipt

    async def update(
        self,
        business_id: int,
        redemption_id: int,
        *,
        reward_id: int | None = None,
        date: datetime | None = None,
    ) -> RedemptionUpdate:
        """Swap the redeemed reward or correct the date.

        Swapping gives back the snapshotted deduction and takes the new
        reward's cost in the same unit, so the customer must afford the new
        reward with the old deduction restored.
        """

        try:
            redemption = await self._get(business_id, redemption_id)
            customer = await resolve_customer(
                self._db,
                business_id,
                customer_id=redemption.customer_id,
                for_update=True,
            )
            adjustment = 0
            if reward_id is not None and reward_id != redemption.reward_id:
                reward = await self._get_reward(business_id, reward_id)
                restored = redemption.points_deducted
                required = reward.points_required
                available = customer.points + restored
                if not can_redeem(available, required):
                    raise InsufficientBalance(required=required, available=available)

                adjustment = restored - required
                result = await self._db.execute(
                    update(Customer)
                    .where(Customer.id == customer.id, Customer.points + adjustment >= 0)
                    .values(points=Customer.points + adjustment)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await self._db.refresh(customer, attribute_names=["points"])
                    raise InsufficientBalance(required=required, available=customer.points + restored)

                redemption.reward_id = reward.id
                redemption.points_deducted = required
            else:
                reward = await self._get_reward(business_id, redemption.reward_id)
            if date is not None:
                redemption.date = date
            await self._db.flush()
            await self._db.refresh(customer, attribute_names=["points"])
            await self._db.commit()
        except (SQLAlchemyError, InsufficientBalance, NotFound):
            await self._db.rollback()
            raise

        await self._db.refresh(redemption, attribute_names=["reward_id", "points_deducted", "date"])
        logger.info(
            "Updated redemption",
            business_id=business_id,
            redemption_id=redemption_id,
            reward_id=reward.id,
            points_adjustment=adjustment,
        )
        return RedemptionUpdate(
            redemption=redemption,
            reward=reward,
            points_adjustment=adjustment,
            new_balance=customer.points,
        )

    async def delete(self, business_id: int, redemption_id: int) -> RedemptionRemoval:
        """Remove a redemption and give back exactly what it deducted."""

        try:
            redemption = await self._get(business_id, redemption_id)
            customer = await resolve_customer(
                self._db,
                business_id,
                customer_id=redemption.customer_id,
                for_update=True,
            )
            restored = redemption.points_deducted
            await self._db.delete(redemption)
            await self._db.execute(
                update(Customer)
                .where(Customer.id == customer.id)
                .values(points=Customer.points + restored)
                .execution_options(synchronize_session=False)
            )
            await self._db.flush()
            await self._db.refresh(customer, attribute_names=["points"])
            await self._db.commit()
        except (SQLAlchemyError, NotFound):
            await self._db.rollback()
            raise

        logger.info(
            "Deleted redemption",
            business_id=business_id,
            redemption_id=redemption_id,
            points_restored=restored,
        )
        return RedemptionRemoval(
            redemption_id=redemption_id,
            customer_id=customer.id,
            points_restored=restored,
            new_balance=customer.points,
        )

    async def list_redemptions(
        self,
        business_id: int,
        *,
        customer_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Redemption], int]:
        filters = [Customer.business_id == business_id]
        if customer_id is not None:
            filters.append(Redemption.customer_id == customer_id)

        total = (
            await self._db.execute(
                select(func.count(Redemption.id)).join(Customer, Redemption.customer).where(*filters)
            )
        ).scalar_one()
        stmt = (
            select(Redemption)
            .join(Customer, Redemption.customer)
            .where(*filters)
            .options(selectinload(Redemption.reward))
            .order_by(Redemption.date.desc(), Redemption.id.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = list((await self._db.execute(stmt)).scalars().all())
        return rows, int(total)

    async def _get(self, business_id: int, redemption_id: int) -> Redemption:
        stmt = (
            select(Redemption)
            .join(Customer, Redemption.customer)
            .where(Redemption.id == redemption_id, Customer.business_id == business_id)
        )
        redemption = (await self._db.execute(stmt)).scalar_one_or_none()
        if redemption is None:
            raise NotFound("Redemption not found")
        return redemption

    async def _get_reward(self, business_id: int, reward_id: int) -> Reward:
        stmt = select(Reward).where(Reward.id == reward_id, Reward.business_id == business_id)
        reward = (await self._db.execute(stmt)).scalar_one_or_none()
        if reward is None:
            raise NotFound("Reward not found")
        return reward


__all__ = [
    "RedemptionReceipt",
    "RedemptionRemoval",
    "RedemptionService",
    "RedemptionUpdate",
    "serialize_redemption",
]
