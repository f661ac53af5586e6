from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select, update

from loyaltyx_api.models.webhook import Webhook, WebhookDelivery, WebhookDeliveryStatus
from loyaltyx_api.services.webhooks import build_event_payload, verify_signature
from loyaltyx_api.workers.webhook_delivery import WebhookDeliveryWorker, backoff_delay


async def _queue_delivery(session_factory, business_id: int, *, secret: str = "whsec") -> int:
    async with session_factory() as session:
        webhook = Webhook(business_id=business_id, url="https://pos.test/hook", events=["*"], secret=secret)
        session.add(webhook)
        await session.flush()
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            event="points_awarded",
            payload=build_event_payload(business_id, "points_awarded", {"customerId": 1, "pointsAwarded": 50}),
            status=WebhookDeliveryStatus.PENDING,
            attempts=0,
        )
        session.add(delivery)
        await session.commit()
        return delivery.id


async def _load(session_factory, delivery_id: int) -> WebhookDelivery:
    async with session_factory() as session:
        stmt = select(WebhookDelivery).where(WebhookDelivery.id == delivery_id)
        return (await session.execute(stmt)).scalar_one()


async def _make_due(session_factory, delivery_id: int) -> None:
    async with session_factory() as session:
        await session.execute(
            update(WebhookDelivery)
            .where(WebhookDelivery.id == delivery_id)
            .values(next_attempt_at=datetime.now(timezone.utc) - timedelta(seconds=1))
        )
        await session.commit()


@pytest.mark.asyncio
async def test_successful_delivery_is_signed_and_terminal(session_factory, tenant) -> None:
    delivery_id = await _queue_delivery(session_factory, tenant.business_id)
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        worker = WebhookDeliveryWorker(session_factory, http_client=client)
        summary = await worker.process_pending(limit=10)
        again = await worker.process_pending(limit=10)

    assert summary.processed == 1
    assert summary.succeeded == 1
    assert again.processed == 0

    request = captured[0]
    assert request.headers["X-Webhook-Event"] == "points_awarded"
    assert request.headers["Content-Type"] == "application/json"
    assert verify_signature(request.content, request.headers["X-Webhook-Signature"], "whsec")

    delivery = await _load(session_factory, delivery_id)
    assert delivery.status == WebhookDeliveryStatus.SUCCESS
    assert delivery.attempts == 1
    assert delivery.response_status == 200
    assert delivery.last_attempt_at is not None


@pytest.mark.asyncio
async def test_failing_endpoint_stops_after_five_attempts(session_factory, tenant) -> None:
    delivery_id = await _queue_delivery(session_factory, tenant.business_id)
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        worker = WebhookDeliveryWorker(session_factory, http_client=client, max_attempts=5)
        for _ in range(7):
            await worker.process_pending(limit=10)
            await _make_due(session_factory, delivery_id)

    delivery = await _load(session_factory, delivery_id)
    assert calls == 5
    assert delivery.attempts == 5
    assert delivery.status == WebhookDeliveryStatus.FAILED
    assert delivery.last_error == "HTTP 500"


@pytest.mark.asyncio
async def test_failed_attempt_schedules_backoff(session_factory, tenant) -> None:
    delivery_id = await _queue_delivery(session_factory, tenant.business_id)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        worker = WebhookDeliveryWorker(
            session_factory,
            http_client=client,
            backoff_base_seconds=30,
            backoff_max_seconds=3600,
        )
        first = await worker.process_pending(limit=10)
        # Not due yet: the retry waits for its backoff window.
        second = await worker.process_pending(limit=10)

    assert first.retried == 1
    assert second.processed == 0

    delivery = await _load(session_factory, delivery_id)
    assert delivery.status == WebhookDeliveryStatus.PENDING
    assert delivery.attempts == 1
    assert delivery.next_attempt_at is not None
    assert delivery.last_error.startswith("ConnectError")


def test_backoff_doubles_up_to_the_cap() -> None:
    delays = [backoff_delay(n, base_seconds=30, max_seconds=300).total_seconds() for n in range(1, 6)]
    assert delays == [30, 60, 120, 240, 300]


@pytest.mark.asyncio
async def test_inactive_webhook_delivery_is_dropped(session_factory, tenant) -> None:
    delivery_id = await _queue_delivery(session_factory, tenant.business_id)
    async with session_factory() as session:
        await session.execute(update(Webhook).values(is_active=False))
        await session.commit()

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("inactive webhooks must not be called")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        summary = await WebhookDeliveryWorker(session_factory, http_client=client).process_pending()

    assert summary.failed == 1
    delivery = await _load(session_factory, delivery_id)
    assert delivery.status == WebhookDeliveryStatus.FAILED


@pytest.mark.asyncio
async def test_fan_out_deliveries_progress_independently(client, tenant, seed, session_factory) -> None:
    customer = await seed.customer()
    for url in ("https://ok.test/hook", "https://down.test/hook"):
        response = await client.post(
            "/api/v1/integrations/webhooks",
            json={"url": url, "events": ["transaction_created"]},
            headers=tenant.headers,
        )
        assert response.status_code == 201

    await client.post(
        "/api/v1/integrations/transactions",
        json={"customerId": customer.id, "amount": 1200},
        headers=tenant.headers,
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204 if request.url.host == "ok.test" else 503)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        summary = await WebhookDeliveryWorker(session_factory, http_client=http_client).process_pending()

    assert summary.processed == 2
    assert summary.succeeded == 1
    assert summary.retried == 1

    async with session_factory() as session:
        deliveries = (await session.execute(select(WebhookDelivery))).scalars().all()
    assert sorted(delivery.status.value for delivery in deliveries) == ["pending", "success"]
    assert {delivery.event for delivery in deliveries} == {"transaction_created"}
