from fastapi import BackgroundTasks, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.core.logging import bind_request_context
from loyaltyx_api.db.session import SessionFactory, get_session, get_session_factory
from loyaltyx_api.services.api_keys import ApiKeyAuthenticator, ApiKeyIdentity, record_api_key_usage


async def require_api_key(
    background_tasks: BackgroundTasks,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> ApiKeyIdentity:
    """Authenticate an integration client; the usage stamp runs after the response."""

    identity = await ApiKeyAuthenticator(db).authenticate(x_api_key)
    bind_request_context(
        business_id=identity.business_id,
        api_key_id=identity.api_key_id,
        api_key_environment=identity.environment.value,
    )
    background_tasks.add_task(record_api_key_usage, session_factory, identity.api_key_id)
    return identity
