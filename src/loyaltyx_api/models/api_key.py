"""Machine-to-machine credentials for point-of-sale integrations."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, func, true
from sqlalchemy.orm import relationship

from loyaltyx_api.db.base import Base


class ApiKeyEnvironment(str, Enum):
    PRODUCTION = "production"
    SANDBOX = "sandbox"


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    environment = Column(
        SqlEnum(ApiKeyEnvironment, name="api_key_environment"),
        nullable=False,
        default=ApiKeyEnvironment.PRODUCTION,
        server_default=ApiKeyEnvironment.PRODUCTION.name,
    )
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    business = relationship("Business", back_populates="api_keys")
