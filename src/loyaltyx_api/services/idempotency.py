"""Idempotency store for client-keyed mutating requests.

A request carrying an ``Idempotency-Key`` first *claims* the
``(key, business)`` slot by inserting an in-flight record, committed before
the mutation runs. The unique constraint on the slot makes the claim atomic:
a second concurrent request with the same key loses the insert and is told
the key is busy instead of executing the mutation twice. When the mutation
succeeds the record is promoted to ``completed`` and holds the response for
``ttl_seconds``; when it fails the claim is released so the client can retry.

Storage failures never fail the user-visible request: lookups degrade to
"not seen" and writes are logged and dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.core.settings import settings
from loyaltyx_api.models.idempotency import IdempotencyRecord, IdempotencyStatus
from loyaltyx_api.services.errors import Conflict


@dataclass(slots=True)
class CachedResponse:
    status_code: int
    body: Any


@dataclass(slots=True)
class IdempotencyClaim:
    """Outcome of :meth:`IdempotencyStore.claim`.

    ``cached`` is set when the key already completed; ``acquired`` is False
    without ``cached`` when the store was unavailable and the request runs
    unguarded.
    """

    acquired: bool
    cached: CachedResponse | None = None


class IdempotencyStore:
    """Gates repeated mutations per ``(business, client key)``."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ttl_seconds: int | None = None,
        lock_seconds: int | None = None,
    ) -> None:
        self._db = db_session
        self._ttl = timedelta(seconds=ttl_seconds or settings.idempotency_ttl_seconds)
        self._lock_ttl = timedelta(seconds=lock_seconds or settings.idempotency_lock_seconds)

    async def check(self, business_id: int, key: str) -> CachedResponse | None:
        """Return the cached response for a completed, unexpired key."""

        now = datetime.now(timezone.utc)
        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.key == key,
            IdempotencyRecord.business_id == business_id,
            IdempotencyRecord.status == IdempotencyStatus.COMPLETED,
            IdempotencyRecord.expires_at > now,
        )
        try:
            record = (await self._db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.warning("Idempotency lookup failed", business_id=business_id, error=str(exc))
            return None

        if record is None or record.response_status is None:
            return None
        return CachedResponse(status_code=record.response_status, body=record.response_body)

    async def claim(self, business_id: int, key: str) -> IdempotencyClaim:
        """Reserve ``key`` for this request before any mutation runs.

        Raises :class:`Conflict` while another request holds a live claim.
        """

        cached = await self.check(business_id, key)
        if cached is not None:
            return IdempotencyClaim(acquired=False, cached=cached)

        now = datetime.now(timezone.utc)
        try:
            live = await self._db.execute(
                select(IdempotencyRecord.id).where(
                    IdempotencyRecord.key == key,
                    IdempotencyRecord.business_id == business_id,
                    IdempotencyRecord.expires_at > now,
                )
            )
            if live.scalar_one_or_none() is not None:
                raise self._busy(key)

            # Abandoned claims and stale responses give the slot back.
            await self._db.execute(
                delete(IdempotencyRecord).where(
                    IdempotencyRecord.key == key,
                    IdempotencyRecord.business_id == business_id,
                    IdempotencyRecord.expires_at <= now,
                )
            )
            self._db.add(
                IdempotencyRecord(
                    key=key,
                    business_id=business_id,
                    status=IdempotencyStatus.IN_FLIGHT,
                    expires_at=now + self._lock_ttl,
                )
            )
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            cached = await self.check(business_id, key)
            if cached is not None:
                return IdempotencyClaim(acquired=False, cached=cached)
            raise self._busy(key)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.warning("Idempotency claim unavailable", business_id=business_id, error=str(exc))
            return IdempotencyClaim(acquired=False)

        return IdempotencyClaim(acquired=True)

    async def store(self, business_id: int, key: str, response: CachedResponse) -> None:
        """Persist the final response for ``key``; never raises."""

        expires_at = datetime.now(timezone.utc) + self._ttl
        try:
            result = await self._db.execute(
                update(IdempotencyRecord)
                .where(
                    IdempotencyRecord.key == key,
                    IdempotencyRecord.business_id == business_id,
                    IdempotencyRecord.status == IdempotencyStatus.IN_FLIGHT,
                )
                .values(
                    status=IdempotencyStatus.COMPLETED,
                    response_status=response.status_code,
                    response_body=response.body,
                    expires_at=expires_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self._db.add(
                    IdempotencyRecord(
                        key=key,
                        business_id=business_id,
                        status=IdempotencyStatus.COMPLETED,
                        response_status=response.status_code,
                        response_body=response.body,
                        expires_at=expires_at,
                    )
                )
            await self._db.commit()
        except IntegrityError:
            # Another request already stored this key. Its mutation and ours
            # both ran; nothing here can undo ours.
            await self._db.rollback()
            logger.warning("Idempotency key already stored by a concurrent request", business_id=business_id)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error("Failed to store idempotent response", business_id=business_id, error=str(exc))

    async def release(self, business_id: int, key: str) -> None:
        """Drop an in-flight claim after the guarded mutation failed."""

        try:
            await self._db.execute(
                delete(IdempotencyRecord).where(
                    IdempotencyRecord.key == key,
                    IdempotencyRecord.business_id == business_id,
                    IdempotencyRecord.status == IdempotencyStatus.IN_FLIGHT,
                )
            )
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.warning(
                "Failed to release idempotency claim; it expires on its own",
                business_id=business_id,
                error=str(exc),
            )

    async def sweep(self) -> int:
        """Delete expired records and return how many were removed."""

        now = datetime.now(timezone.utc)
        result = await self._db.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= now)
        )
        await self._db.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Swept expired idempotency records", removed=removed)
        return removed

    @staticmethod
    def _busy(key: str) -> Conflict:
        return Conflict(
            "Idempotency key is already in use by another request",
            details={"idempotencyKey": key},
        )


__all__ = ["CachedResponse", "IdempotencyClaim", "IdempotencyStore"]
