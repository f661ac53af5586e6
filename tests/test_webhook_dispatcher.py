import json

import pytest
from sqlalchemy import select

from loyaltyx_api.models.webhook import Webhook, WebhookDelivery, WebhookDeliveryStatus, WebhookEventType
from loyaltyx_api.services.errors import InvalidArgument
from loyaltyx_api.services.webhooks import WebhookDispatcher, WebhookRegistry, sign_payload, verify_signature


@pytest.mark.asyncio
async def test_emit_fans_out_to_subscribed_active_webhooks(session_factory, tenant) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                Webhook(business_id=tenant.business_id, url="https://a.test/hook", events=["*"], secret="s1"),
                Webhook(
                    business_id=tenant.business_id,
                    url="https://b.test/hook",
                    events=["points_awarded"],
                    secret="s2",
                ),
                Webhook(
                    business_id=tenant.business_id,
                    url="https://c.test/hook",
                    events=["customer_created"],
                    secret="s3",
                ),
                Webhook(
                    business_id=tenant.business_id,
                    url="https://d.test/hook",
                    events=["*"],
                    secret="s4",
                    is_active=False,
                ),
            ]
        )
        await session.commit()

        count = await WebhookDispatcher(session_factory).emit(
            tenant.business_id,
            WebhookEventType.POINTS_AWARDED,
            {"customerId": 7, "pointsAwarded": 50},
        )
        deliveries = (await session.execute(select(WebhookDelivery))).scalars().all()

    assert count == 2
    assert len(deliveries) == 2
    for delivery in deliveries:
        assert delivery.status == WebhookDeliveryStatus.PENDING
        assert delivery.attempts == 0
        payload = json.loads(delivery.payload)
        assert payload["event"] == "points_awarded"
        assert payload["businessId"] == tenant.business_id
        assert payload["data"] == {"customerId": 7, "pointsAwarded": 50}
        assert payload["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_emit_without_subscribers_is_a_noop(session_factory, tenant) -> None:
    async with session_factory() as session:
        count = await WebhookDispatcher(session_factory).emit(tenant.business_id, "customer_created", {"customerId": 1})
    assert count == 0


@pytest.mark.asyncio
async def test_register_returns_secret_once(session_factory, tenant) -> None:
    async with session_factory() as session:
        registry = WebhookRegistry(session)
        registered = await registry.register(tenant.business_id, url="https://pos.test/webhooks")

        assert len(registered.secret) == 64
        assert registered.webhook.events == ["*"]

        with pytest.raises(InvalidArgument):
            await registry.register(tenant.business_id, url="not a url")
        with pytest.raises(InvalidArgument):
            await registry.register(tenant.business_id, url="ftp://pos.test/hook")
        with pytest.raises(InvalidArgument):
            await registry.register(tenant.business_id, url="https://pos.test/hook", events=["points_spent"])

        listed = await registry.list_webhooks(tenant.business_id)
    assert [webhook.id for webhook in listed] == [registered.webhook.id]


def test_signature_round_trip() -> None:
    payload = b'{"event":"points_awarded"}'
    signature = sign_payload(payload, "secret")

    assert len(signature) == 64
    assert verify_signature(payload, signature, "secret")
    assert not verify_signature(payload, signature, "other")
    assert not verify_signature(payload + b" ", signature, "secret")
