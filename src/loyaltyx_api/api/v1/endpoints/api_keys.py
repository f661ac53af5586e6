"""Dashboard endpoints for managing integration API keys."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.api.dependencies.session import require_business_session
from loyaltyx_api.api.responses import success
from loyaltyx_api.core.logging import mask_secret
from loyaltyx_api.db.session import get_session
from loyaltyx_api.models.api_key import ApiKey
from loyaltyx_api.models.business import Business
from loyaltyx_api.services.api_keys import ApiKeyService

router = APIRouter(prefix="/integrations/api-keys", tags=["api-keys"])


class ApiKeyCreateRequest(BaseModel):
    name: Optional[str] = Field(None, description="Label shown in the dashboard")
    environment: Literal["production", "sandbox"] = Field("production")


def _serialize_key(api_key: ApiKey, *, reveal: bool = False) -> dict:
    return {
        "id": api_key.id,
        "name": api_key.name,
        "key": api_key.key if reveal else mask_secret(api_key.key),
        "environment": getattr(api_key.environment, "value", api_key.environment),
        "isActive": api_key.is_active,
        "lastUsedAt": api_key.last_used_at,
        "createdAt": api_key.created_at,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_api_key(
    payload: ApiKeyCreateRequest,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    api_key, _ = await ApiKeyService(db).issue(
        business.id,
        name=payload.name,
        environment=payload.environment,
    )
    return success(
        _serialize_key(api_key, reveal=True),
        "API key created successfully. Store it securely; it will not be shown again.",
    )


@router.get("")
async def list_api_keys(
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    keys = await ApiKeyService(db).list_keys(business.id)
    return success([_serialize_key(api_key) for api_key in keys], count=len(keys))


@router.delete("/{api_key_id}")
async def revoke_api_key(
    api_key_id: int,
    business: Business = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> dict:
    api_key = await ApiKeyService(db).revoke(business.id, api_key_id)
    return success(_serialize_key(api_key), "API key revoked successfully")
