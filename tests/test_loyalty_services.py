from decimal import Decimal

import pytest

from loyaltyx_api.models.webhook import WebhookEventType
from loyaltyx_api.services.customers import CustomerService
from loyaltyx_api.services.errors import InsufficientBalance, InvalidArgument, NotFound
from loyaltyx_api.services.redemptions import RedemptionService
from loyaltyx_api.services.transactions import TransactionService, normalize_amount


class RecordingDispatcher:
    def __init__(self) -> None:
        self.events: list[tuple[int, str, dict]] = []

    async def emit(self, business_id, event, data) -> int:
        name = event.value if isinstance(event, WebhookEventType) else event
        self.events.append((business_id, name, dict(data)))
        return 1


@pytest.mark.asyncio
async def test_upsert_emits_customer_created_only_on_create(session_factory, tenant) -> None:
    dispatcher = RecordingDispatcher()
    async with session_factory() as session:
        service = CustomerService(session, dispatcher)
        created = await service.upsert(tenant.business_id, email="Bo@Example.com", name="Bo")
        updated = await service.upsert(tenant.business_id, email="bo@example.com", name="Bo B.")

    assert created.created is True
    assert updated.created is False
    assert updated.customer.id == created.customer.id
    assert [name for _, name, _ in dispatcher.events] == ["customer_created"]


@pytest.mark.asyncio
async def test_upsert_never_touches_points(session_factory, tenant, seed) -> None:
    customer = await seed.customer("rich@example.com", points=900)
    async with session_factory() as session:
        result = await CustomerService(session, RecordingDispatcher()).upsert(
            tenant.business_id,
            email="rich@example.com",
            name="Rich",
        )
    assert result.customer.id == customer.id
    assert result.customer.points == 900


@pytest.mark.asyncio
async def test_transaction_emits_created_and_points_awarded(session_factory, tenant, seed) -> None:
    customer = await seed.customer()
    dispatcher = RecordingDispatcher()
    async with session_factory() as session:
        receipt = await TransactionService(session, dispatcher).create(
            tenant.business_id,
            amount=Decimal("5000"),
            customer_id=customer.id,
        )

    assert receipt.points_awarded == 50
    assert receipt.new_balance == 50
    names = [name for _, name, _ in dispatcher.events]
    assert names == ["transaction_created", "points_awarded"]
    assert dispatcher.events[1][2]["reason"] == "transaction"


@pytest.mark.asyncio
async def test_transaction_requires_customer_reference(session_factory, tenant) -> None:
    async with session_factory() as session:
        service = TransactionService(session, RecordingDispatcher())
        with pytest.raises(InvalidArgument):
            await service.create(tenant.business_id, amount=100)
        with pytest.raises(NotFound):
            await service.delete(tenant.business_id, 12345)


def test_normalize_amount_rejects_non_positive() -> None:
    assert normalize_amount("15750") == Decimal("15750.00")
    for bad in (0, -1, "abc", None, "NaN"):
        with pytest.raises(InvalidArgument):
            normalize_amount(bad)


def test_normalize_amount_rejects_sub_cent_precision() -> None:
    assert normalize_amount("99.99") == Decimal("99.99")
    assert normalize_amount(Decimal("10.100")) == Decimal("10.10")
    for bad in ("99.995", "0.001", Decimal("100.005")):
        with pytest.raises(InvalidArgument) as excinfo:
            normalize_amount(bad)
        assert excinfo.value.message == "Amount must have at most 2 decimal places"


@pytest.mark.asyncio
async def test_redemption_rejected_leaves_balance_and_emits_nothing(session_factory, tenant, seed) -> None:
    customer = await seed.customer(points=99)
    reward = await seed.reward(points_required=100)
    dispatcher = RecordingDispatcher()

    async with session_factory() as session:
        with pytest.raises(InsufficientBalance) as excinfo:
            await RedemptionService(session, dispatcher).create(
                tenant.business_id,
                reward_id=reward.id,
                customer_id=customer.id,
            )

    assert excinfo.value.shortage == 1
    assert dispatcher.events == []


@pytest.mark.asyncio
async def test_exact_balance_redeems_to_zero(session_factory, tenant, seed) -> None:
    customer = await seed.customer(points=100)
    reward = await seed.reward(points_required=100)
    dispatcher = RecordingDispatcher()

    async with session_factory() as session:
        receipt = await RedemptionService(session, dispatcher).create(
            tenant.business_id,
            reward_id=reward.id,
            customer_email=customer.email,
        )

    assert receipt.new_balance == 0
    assert receipt.redemption.points_deducted == 100
    assert dispatcher.events[0][1] == "redemption_completed"
