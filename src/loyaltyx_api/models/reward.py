"""Redeemable rewards and redemption records."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from loyaltyx_api.db.base import Base


class Reward(Base):
    """Catalog reward a customer can redeem points for."""

    __tablename__ = "rewards"
    __table_args__ = (CheckConstraint("points_required > 0", name="ck_rewards_points_required_positive"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    points_required = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    business = relationship("Business", back_populates="rewards")
    redemptions = relationship("Redemption", back_populates="reward")


class Redemption(Base):
    """A reward claimed by a customer.

    ``points_deducted`` snapshots the reward cost at redemption time so that
    deleting the redemption restores exactly what was taken.
    """

    __tablename__ = "redemptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    reward_id = Column(Integer, ForeignKey("rewards.id", ondelete="RESTRICT"), nullable=False, index=True)
    points_deducted = Column(Integer, nullable=False)
    date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="redemptions")
    reward = relationship("Reward", back_populates="redemptions")
