import pytest

from loyaltyx_api.models.customer import Customer
from loyaltyx_api.models.reward import Reward


async def _balance(session_factory, customer_id: int) -> int:
    async with session_factory() as session:
        customer = await session.get(Customer, customer_id)
        return customer.points


@pytest.mark.asyncio
async def test_dashboard_requires_session_business(client) -> None:
    missing = await client.delete("/api/v1/transactions/1")
    assert missing.status_code == 401

    unknown = await client.delete("/api/v1/transactions/1", headers={"X-Session-Business": "999"})
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_create_then_delete_transaction_restores_balance(client, tenant, seed, session_factory) -> None:
    customer = await seed.customer(points=7)

    created = await client.post(
        "/api/v1/integrations/transactions",
        json={"customerId": customer.id, "amount": 15750},
        headers=tenant.headers,
    )
    transaction_id = created.json()["data"]["transactionId"]
    assert await _balance(session_factory, customer.id) == 164

    deleted = await client.delete(f"/api/v1/transactions/{transaction_id}", headers=tenant.dashboard_headers)

    assert deleted.status_code == 200
    assert deleted.json()["pointsRemoved"] == 157
    assert await _balance(session_factory, customer.id) == 7


@pytest.mark.asyncio
async def test_editing_amount_applies_point_difference(client, tenant, seed, session_factory) -> None:
    customer = await seed.customer()
    created = await client.post(
        "/api/v1/integrations/transactions",
        json={"customerId": customer.id, "amount": 15750},
        headers=tenant.headers,
    )
    transaction_id = created.json()["data"]["transactionId"]

    updated = await client.patch(
        f"/api/v1/transactions/{transaction_id}",
        json={"amount": 2500},
        headers=tenant.dashboard_headers,
    )

    assert updated.status_code == 200
    assert updated.json()["pointsAdjustment"] == -132
    assert updated.json()["data"]["pointsEarned"] == 25
    assert await _balance(session_factory, customer.id) == 25


@pytest.mark.asyncio
async def test_deleting_redemption_restores_snapshot_not_current_cost(client, tenant, seed, session_factory) -> None:
    customer = await seed.customer(points=300)
    reward = await seed.reward(points_required=100)

    redeemed = await client.post(
        "/api/v1/integrations/redemptions",
        json={"customerId": customer.id, "rewardId": reward.id},
        headers=tenant.headers,
    )
    redemption_id = redeemed.json()["data"]["redemptionId"]
    assert await _balance(session_factory, customer.id) == 200

    repriced = await client.patch(
        f"/api/v1/rewards/{reward.id}",
        json={"pointsRequired": 250},
        headers=tenant.dashboard_headers,
    )
    assert repriced.json()["data"]["pointsRequired"] == 250

    deleted = await client.delete(f"/api/v1/redemptions/{redemption_id}", headers=tenant.dashboard_headers)

    assert deleted.status_code == 200
    assert deleted.json()["pointsRestored"] == 100
    assert await _balance(session_factory, customer.id) == 300


@pytest.mark.asyncio
async def test_reward_lifecycle_and_delete_guard(client, tenant, seed, session_factory) -> None:
    created = await client.post(
        "/api/v1/rewards",
        json={"title": "Mug", "description": "Ceramic", "pointsRequired": 40},
        headers=tenant.dashboard_headers,
    )
    assert created.status_code == 201
    reward_id = created.json()["data"]["id"]

    invalid = await client.post(
        "/api/v1/rewards",
        json={"title": "Free", "pointsRequired": 0},
        headers=tenant.dashboard_headers,
    )
    assert invalid.status_code == 400

    customer = await seed.customer(points=40)
    await client.post(
        "/api/v1/integrations/redemptions",
        json={"customerId": customer.id, "rewardId": reward_id},
        headers=tenant.headers,
    )

    blocked = await client.delete(f"/api/v1/rewards/{reward_id}", headers=tenant.dashboard_headers)
    assert blocked.status_code == 409
    assert blocked.json()["error"]["reason"] == "conflict"

    async with session_factory() as session:
        assert await session.get(Reward, reward_id) is not None

    unused = await seed.reward("Sticker", points_required=5)
    removed = await client.delete(f"/api/v1/rewards/{unused.id}", headers=tenant.dashboard_headers)
    assert removed.status_code == 200


@pytest.mark.asyncio
async def test_api_key_issue_list_and_revoke(client, tenant) -> None:
    issued = await client.post(
        "/api/v1/integrations/api-keys",
        json={"name": "Front counter", "environment": "sandbox"},
        headers=tenant.dashboard_headers,
    )
    assert issued.status_code == 201
    raw_key = issued.json()["data"]["key"]
    assert raw_key.startswith("lx_")

    usable = await client.get("/api/v1/integrations/rewards", headers={"X-API-Key": raw_key})
    assert usable.status_code == 200

    listed = await client.get("/api/v1/integrations/api-keys", headers=tenant.dashboard_headers)
    keys = {item["id"]: item for item in listed.json()["data"]}
    issued_id = issued.json()["data"]["id"]
    assert keys[issued_id]["key"] != raw_key
    assert keys[issued_id]["key"].endswith(raw_key[-4:])

    revoked = await client.delete(f"/api/v1/integrations/api-keys/{issued_id}", headers=tenant.dashboard_headers)
    assert revoked.json()["data"]["isActive"] is False

    rejected = await client.get("/api/v1/integrations/rewards", headers={"X-API-Key": raw_key})
    assert rejected.status_code == 401
    assert rejected.json()["error"]["message"] == "API key is inactive"


@pytest.mark.asyncio
async def test_health_endpoints(client) -> None:
    response = await client.get("/healthz")
    assert response.json()["status"] == "ok"

    ready = await client.get("/api/v1/readyz")
    assert ready.status_code == 200
    assert ready.json()["components"]["database"]["status"] == "ready"


async def _redeem(client, tenant, customer_id: int, reward_id: int) -> int:
    redeemed = await client.post(
        "/api/v1/integrations/redemptions",
        json={"customerId": customer_id, "rewardId": reward_id},
        headers=tenant.headers,
    )
    assert redeemed.status_code == 201
    return redeemed.json()["data"]["redemptionId"]


@pytest.mark.asyncio
async def test_swapping_redeemed_reward_charges_the_difference(client, tenant, seed, session_factory) -> None:
    customer = await seed.customer(points=300)
    latte = await seed.reward("Latte", points_required=100)
    brunch = await seed.reward("Brunch", points_required=250)
    redemption_id = await _redeem(client, tenant, customer.id, latte.id)
    assert await _balance(session_factory, customer.id) == 200

    swapped = await client.patch(
        f"/api/v1/redemptions/{redemption_id}",
        json={"rewardId": brunch.id},
        headers=tenant.dashboard_headers,
    )

    assert swapped.status_code == 200
    body = swapped.json()
    assert body["pointsAdjustment"] == -150
    assert body["newBalance"] == 50
    assert body["data"]["rewardId"] == brunch.id
    assert body["data"]["rewardTitle"] == "Brunch"
    assert body["data"]["pointsDeducted"] == 250
    assert await _balance(session_factory, customer.id) == 50

    deleted = await client.delete(f"/api/v1/redemptions/{redemption_id}", headers=tenant.dashboard_headers)
    assert deleted.json()["pointsRestored"] == 250
    assert await _balance(session_factory, customer.id) == 300


@pytest.mark.asyncio
async def test_swapping_to_cheaper_reward_refunds_points(client, tenant, seed, session_factory) -> None:
    customer = await seed.customer(points=250)
    brunch = await seed.reward("Brunch", points_required=250)
    latte = await seed.reward("Latte", points_required=100)
    redemption_id = await _redeem(client, tenant, customer.id, brunch.id)

    swapped = await client.patch(
        f"/api/v1/redemptions/{redemption_id}",
        json={"rewardId": latte.id},
        headers=tenant.dashboard_headers,
    )

    assert swapped.json()["pointsAdjustment"] == 150
    assert await _balance(session_factory, customer.id) == 150


@pytest.mark.asyncio
async def test_swap_rejected_when_new_reward_is_unaffordable(client, tenant, seed, session_factory) -> None:
    customer = await seed.customer(points=120)
    latte = await seed.reward("Latte", points_required=100)
    brunch = await seed.reward("Brunch", points_required=250)
    redemption_id = await _redeem(client, tenant, customer.id, latte.id)

    rejected = await client.patch(
        f"/api/v1/redemptions/{redemption_id}",
        json={"rewardId": brunch.id},
        headers=tenant.dashboard_headers,
    )

    assert rejected.status_code == 400
    error = rejected.json()["error"]
    assert error["reason"] == "insufficient_balance"
    assert error["details"] == {"required": 250, "available": 120, "shortage": 130}
    assert await _balance(session_factory, customer.id) == 20

    kept = await client.delete(f"/api/v1/redemptions/{redemption_id}", headers=tenant.dashboard_headers)
    assert kept.json()["pointsRestored"] == 100


@pytest.mark.asyncio
async def test_redemption_edit_is_scoped_to_business(client, tenant, seed, make_tenant) -> None:
    customer = await seed.customer(points=100)
    reward = await seed.reward(points_required=100)
    redemption_id = await _redeem(client, tenant, customer.id, reward.id)
    other = await make_tenant("owner@bakery.test")

    response = await client.patch(
        f"/api/v1/redemptions/{redemption_id}",
        json={"date": "2026-01-02T10:00:00Z"},
        headers=other.dashboard_headers,
    )

    assert response.status_code == 404
