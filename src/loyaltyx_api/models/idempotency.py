"""Cached responses for client-keyed idempotent mutations."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, UniqueConstraint, func

from loyaltyx_api.db.base import Base


class IdempotencyStatus(str, Enum):
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"


class IdempotencyRecord(Base):
    """One ``(key, business)`` slot: claimed while the mutation runs, then holding its response."""

    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("key", "business_id", name="uq_idempotency_records_key_business"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(255), nullable=False)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        SqlEnum(IdempotencyStatus, name="idempotency_status"),
        nullable=False,
        default=IdempotencyStatus.IN_FLIGHT,
    )
    response_status = Column(Integer, nullable=True)
    response_body = Column(JSON, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
