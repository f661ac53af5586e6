from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from loyaltyx_api.models.idempotency import IdempotencyRecord, IdempotencyStatus
from loyaltyx_api.services.errors import Conflict
from loyaltyx_api.services.idempotency import CachedResponse, IdempotencyStore


@pytest.mark.asyncio
async def test_claim_store_and_replay(session_factory, tenant) -> None:
    async with session_factory() as session:
        store = IdempotencyStore(session)

        claim = await store.claim(tenant.business_id, "order-1")
        assert claim.acquired
        assert claim.cached is None

        await store.store(
            tenant.business_id,
            "order-1",
            CachedResponse(status_code=201, body={"success": True, "data": {"pointsAwarded": 50}}),
        )

        replay = await store.claim(tenant.business_id, "order-1")
        assert not replay.acquired
        assert replay.cached is not None
        assert replay.cached.status_code == 201
        assert replay.cached.body["data"]["pointsAwarded"] == 50


@pytest.mark.asyncio
async def test_second_claim_while_in_flight_conflicts(session_factory, tenant) -> None:
    async with session_factory() as session:
        store = IdempotencyStore(session)
        await store.claim(tenant.business_id, "busy")

        with pytest.raises(Conflict) as excinfo:
            await store.claim(tenant.business_id, "busy")

        assert excinfo.value.details == {"idempotencyKey": "busy"}


@pytest.mark.asyncio
async def test_release_frees_the_key(session_factory, tenant) -> None:
    async with session_factory() as session:
        store = IdempotencyStore(session)
        await store.claim(tenant.business_id, "retry-me")
        await store.release(tenant.business_id, "retry-me")

        claim = await store.claim(tenant.business_id, "retry-me")
        assert claim.acquired


@pytest.mark.asyncio
async def test_keys_are_scoped_per_business(session_factory, tenant, make_tenant) -> None:
    other = await make_tenant("other@bakery.test")
    async with session_factory() as session:
        store = IdempotencyStore(session)
        await store.claim(tenant.business_id, "shared-key")
        await store.store(tenant.business_id, "shared-key", CachedResponse(status_code=200, body={"a": 1}))

        claim = await store.claim(other.business_id, "shared-key")
        assert claim.acquired
        assert claim.cached is None


@pytest.mark.asyncio
async def test_expired_records_are_ignored_and_swept(session_factory, tenant) -> None:
    async with session_factory() as session:
        past = datetime.now(timezone.utc) - timedelta(seconds=5)
        session.add(
            IdempotencyRecord(
                key="stale",
                business_id=tenant.business_id,
                status=IdempotencyStatus.COMPLETED,
                response_status=200,
                response_body={"success": True},
                expires_at=past,
            )
        )
        await session.commit()

        store = IdempotencyStore(session)
        assert await store.check(tenant.business_id, "stale") is None

        removed = await store.sweep()
        assert removed == 1
        remaining = (await session.execute(select(IdempotencyRecord))).scalars().all()
        assert remaining == []


@pytest.mark.asyncio
async def test_expired_claim_can_be_reclaimed(session_factory, tenant) -> None:
    async with session_factory() as session:
        session.add(
            IdempotencyRecord(
                key="abandoned",
                business_id=tenant.business_id,
                status=IdempotencyStatus.IN_FLIGHT,
                expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
            )
        )
        await session.commit()

        claim = await IdempotencyStore(session).claim(tenant.business_id, "abandoned")
        assert claim.acquired
