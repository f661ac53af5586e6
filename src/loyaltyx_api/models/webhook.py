"""Outbound webhook registrations and their delivery ledger."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    true,
)
from sqlalchemy.orm import relationship

from loyaltyx_api.db.base import Base


class WebhookEventType(str, Enum):
    """Events a business can subscribe to."""

    POINTS_AWARDED = "points_awarded"
    REDEMPTION_COMPLETED = "redemption_completed"
    CUSTOMER_CREATED = "customer_created"
    TRANSACTION_CREATED = "transaction_created"


WEBHOOK_WILDCARD = "*"


class WebhookDeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class Webhook(Base):
    """Subscriber endpoint; ``secret`` signs every outbound payload and is never returned after creation."""

    __tablename__ = "webhooks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String, nullable=False)
    events = Column(JSON, nullable=False, default=list)
    secret = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    business = relationship("Business", back_populates="webhooks")
    deliveries = relationship("WebhookDelivery", back_populates="webhook", cascade="all, delete-orphan")

    def subscribes_to(self, event: str) -> bool:
        events = self.events or []
        return event in events or WEBHOOK_WILDCARD in events


class WebhookDelivery(Base):
    """One delivery attempt series for one event to one webhook."""

    __tablename__ = "webhook_deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    webhook_id = Column(Integer, ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False, index=True)
    event = Column(String, nullable=False)
    payload = Column(Text, nullable=False)
    status = Column(
        SqlEnum(WebhookDeliveryStatus, name="webhook_delivery_status"),
        nullable=False,
        default=WebhookDeliveryStatus.PENDING,
        server_default=WebhookDeliveryStatus.PENDING.name,
        index=True,
    )
    attempts = Column(Integer, nullable=False, default=0, server_default="0")
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
    response_status = Column(Integer, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    webhook = relationship("Webhook", back_populates="deliveries")
