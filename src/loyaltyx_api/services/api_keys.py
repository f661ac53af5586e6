"""API key issuance and authentication for integration clients."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.core.logging import mask_secret
from loyaltyx_api.core.settings import settings
from loyaltyx_api.db.session import SessionFactory, ensure_session
from loyaltyx_api.models.api_key import ApiKey, ApiKeyEnvironment
from loyaltyx_api.services.errors import InvalidArgument, NotFound, Unauthenticated


def generate_api_key() -> str:
    return f"{settings.api_key_prefix}{secrets.token_hex(32)}"


@dataclass(frozen=True, slots=True)
class ApiKeyIdentity:
    api_key_id: int
    business_id: int
    environment: ApiKeyEnvironment


class ApiKeyAuthenticator:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def authenticate(self, raw_key: str | None) -> ApiKeyIdentity:
        if not raw_key:
            raise Unauthenticated("Missing x-api-key header")

        stmt = select(ApiKey).where(ApiKey.key == raw_key)
        api_key = (await self._db.execute(stmt)).scalar_one_or_none()
        if api_key is None:
            logger.warning("Rejected unknown API key", api_key=mask_secret(raw_key))
            raise Unauthenticated("Invalid API key")
        if not api_key.is_active:
            logger.warning("Rejected inactive API key", api_key_id=api_key.id)
            raise Unauthenticated("API key is inactive")

        return ApiKeyIdentity(
            api_key_id=api_key.id,
            business_id=api_key.business_id,
            environment=ApiKeyEnvironment(api_key.environment),
        )


async def record_api_key_usage(session_factory: SessionFactory, api_key_id: int) -> None:
    """Stamp ``last_used_at`` outside the request; failures are only logged."""

    session = await ensure_session(session_factory)
    async with session as db:
        try:
            await db.execute(
                update(ApiKey)
                .where(ApiKey.id == api_key_id)
                .values(last_used_at=datetime.now(timezone.utc))
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("Failed to record API key usage", api_key_id=api_key_id, error=str(exc))


class ApiKeyService:
    """Dashboard-side management of a business's API keys."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def issue(
        self,
        business_id: int,
        *,
        name: str | None,
        environment: str | ApiKeyEnvironment = ApiKeyEnvironment.PRODUCTION,
    ) -> tuple[ApiKey, str]:
        if not name or not name.strip():
            raise InvalidArgument("API key name is required")
        try:
            env = ApiKeyEnvironment(environment)
        except ValueError as exc:
            raise InvalidArgument(
                "Environment must be either production or sandbox",
                details={"environment": str(environment)},
            ) from exc

        raw_key = generate_api_key()
        api_key = ApiKey(
            business_id=business_id,
            key=raw_key,
            name=name.strip(),
            environment=env,
            is_active=True,
        )
        self._db.add(api_key)
        await self._db.commit()
        await self._db.refresh(api_key)
        logger.info(
            "Issued API key",
            business_id=business_id,
            api_key_id=api_key.id,
            api_key=mask_secret(raw_key),
            environment=env.value,
        )
        return api_key, raw_key

    async def list_keys(self, business_id: int) -> list[ApiKey]:
        stmt = (
            select(ApiKey)
            .where(ApiKey.business_id == business_id)
            .order_by(ApiKey.created_at.desc(), ApiKey.id.desc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def revoke(self, business_id: int, api_key_id: int) -> ApiKey:
        stmt = select(ApiKey).where(ApiKey.id == api_key_id, ApiKey.business_id == business_id)
        api_key = (await self._db.execute(stmt)).scalar_one_or_none()
        if api_key is None:
            raise NotFound("API key not found")
        api_key.is_active = False
        await self._db.commit()
        logger.info("Revoked API key", business_id=business_id, api_key_id=api_key_id)
        return api_key


__all__ = [
    "ApiKeyAuthenticator",
    "ApiKeyIdentity",
    "ApiKeyService",
    "generate_api_key",
    "record_api_key_usage",
]
