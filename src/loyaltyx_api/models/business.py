"""Tenant accounts owning every other loyalty record."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from loyaltyx_api.db.base import Base


class Business(Base):
    """A business account; the unit of data isolation."""

    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customers = relationship("Customer", back_populates="business", cascade="all, delete-orphan")
    rewards = relationship("Reward", back_populates="business", cascade="all, delete-orphan")
    api_keys = relationship("ApiKey", back_populates="business", cascade="all, delete-orphan")
    webhooks = relationship("Webhook", back_populates="business", cascade="all, delete-orphan")
