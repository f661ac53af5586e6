"""Session-aware dependencies for the business dashboard APIs."""

from __future__ import annotations

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.core.logging import bind_request_context
from loyaltyx_api.db.session import get_session
from loyaltyx_api.models.business import Business
from loyaltyx_api.services.errors import InvalidArgument, NotFound, Unauthenticated


async def require_business_session(
    session_business: str | None = Header(None, alias="X-Session-Business"),
    db: AsyncSession = Depends(get_session),
) -> Business:
    """Resolve the signed-in business from forwarded session headers."""

    if not session_business:
        raise Unauthenticated("Missing session business context")

    try:
        business_id = int(session_business)
    except ValueError as error:
        raise InvalidArgument("Invalid session business identifier") from error

    stmt = select(Business).where(Business.id == business_id)
    business = (await db.execute(stmt)).scalar_one_or_none()
    if business is None:
        raise NotFound("Business not found")
    bind_request_context(business_id=business.id)
    return business
