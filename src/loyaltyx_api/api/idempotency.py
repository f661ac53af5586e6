"""Run mutating integration handlers behind the idempotency store."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.services.errors import InvalidArgument
from loyaltyx_api.services.idempotency import CachedResponse, IdempotencyStore

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "Idempotent-Replayed"
MAX_KEY_LENGTH = 255


async def execute_idempotent(
    db: AsyncSession,
    *,
    business_id: int,
    idempotency_key: str | None,
    status_code: int,
    handler: Callable[[], Awaitable[Any]],
) -> JSONResponse:
    """Execute ``handler`` at most once per ``(business, key)``.

    A completed key replays the cached status and body. When the handler
    raises, the claim is released so a retry with the same key runs again.
    """

    key = (idempotency_key or "").strip()
    if not key:
        body = jsonable_encoder(await handler())
        return JSONResponse(status_code=status_code, content=body)
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidArgument(
            f"{IDEMPOTENCY_HEADER} must be at most {MAX_KEY_LENGTH} characters",
            details={"length": len(key)},
        )

    store = IdempotencyStore(db)
    claim = await store.claim(business_id, key)
    if claim.cached is not None:
        logger.info("Replaying idempotent response", business_id=business_id, status=claim.cached.status_code)
        return JSONResponse(
            status_code=claim.cached.status_code,
            content=claim.cached.body,
            headers={REPLAY_HEADER: "true"},
        )

    try:
        body = jsonable_encoder(await handler())
    except Exception:
        if claim.acquired:
            await db.rollback()
            await store.release(business_id, key)
        raise

    if claim.acquired:
        await store.store(business_id, key, CachedResponse(status_code=status_code, body=body))
    return JSONResponse(status_code=status_code, content=body)


__all__ = ["IDEMPOTENCY_HEADER", "REPLAY_HEADER", "execute_idempotent"]
