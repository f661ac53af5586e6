"""Purchase transactions and the balance changes they drive."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.db.session import session_factory_for
from loyaltyx_api.models.customer import Customer
from loyaltyx_api.models.transaction import Transaction
from loyaltyx_api.models.webhook import WebhookEventType
from loyaltyx_api.services.customers import resolve_customer
from loyaltyx_api.services.errors import InvalidArgument, NotFound
from loyaltyx_api.services.ledger import Amount, points_adjustment, points_for_amount
from loyaltyx_api.services.webhooks.dispatcher import WebhookDispatcher

CENTS = Decimal("0.01")


def normalize_amount(amount: Amount | None) -> Decimal:
    """Coerce to the stored precision; points are always computed from this value."""

    if amount is None:
        raise InvalidArgument("Missing required field: amount")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as exc:
        raise InvalidArgument("Amount must be a number", details={"amount": str(amount)}) from exc
    if not value.is_finite():
        raise InvalidArgument("Amount must be a number", details={"amount": str(amount)})
    if value <= 0:
        raise InvalidArgument("Amount must be positive", details={"amount": str(amount)})
    try:
        cents = value.quantize(CENTS, rounding=ROUND_DOWN)
    except InvalidOperation as exc:
        raise InvalidArgument("Amount is out of range", details={"amount": str(amount)}) from exc
    if cents != value:
        raise InvalidArgument("Amount must have at most 2 decimal places", details={"amount": str(amount)})
    return cents


@dataclass(slots=True)
class TransactionReceipt:
    transaction: Transaction
    points_awarded: int
    new_balance: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionId": self.transaction.id,
            "customerId": self.transaction.customer_id,
            "amount": self.transaction.amount,
            "pointsAwarded": self.points_awarded,
            "newBalance": self.new_balance,
            "date": self.transaction.date,
        }


@dataclass(slots=True)
class TransactionUpdate:
    transaction: Transaction
    points_adjustment: int
    new_balance: int


@dataclass(slots=True)
class TransactionRemoval:
    transaction_id: int
    customer_id: int
    points_removed: int
    new_balance: int


def serialize_transaction(transaction: Transaction) -> dict[str, Any]:
    return {
        "id": transaction.id,
        "customerId": transaction.customer_id,
        "amount": transaction.amount,
        "pointsEarned": points_for_amount(transaction.amount),
        "date": transaction.date,
        "createdAt": transaction.created_at,
    }


class TransactionService:
    """Creates, edits and deletes transactions.

    Every balance change runs in the same database transaction as the row
    change that caused it, with the customer row locked, so a failure at any
    step leaves both untouched.
    """

    def __init__(self, db_session: AsyncSession, dispatcher: WebhookDispatcher | None = None) -> None:
        self._db = db_session
        self._dispatcher = dispatcher or WebhookDispatcher(session_factory_for(db_session))

    async def create(
        self,
        business_id: int,
        *,
        amount: Amount | None,
        customer_id: int | None = None,
        customer_email: str | None = None,
        date: datetime | None = None,
    ) -> TransactionReceipt:
        value = normalize_amount(amount)
        points = points_for_amount(value)

        try:
            customer = await resolve_customer(
                self._db,
                business_id,
                customer_id=customer_id,
                customer_email=customer_email,
                for_update=True,
            )
            transaction = Transaction(
                business_id=business_id,
                customer_id=customer.id,
                amount=value,
                date=date or datetime.now(timezone.utc),
            )
            self._db.add(transaction)
            await self._apply_points(customer, points)
            await self._db.commit()
        except (SQLAlchemyError, InvalidArgument, NotFound):
            await self._db.rollback()
            raise

        await self._db.refresh(transaction)
        receipt = TransactionReceipt(
            transaction=transaction,
            points_awarded=points,
            new_balance=customer.points,
        )
        logger.info(
            "Recorded transaction",
            business_id=business_id,
            customer_id=customer.id,
            transaction_id=transaction.id,
            points_awarded=points,
        )

        created_event = {
            "transactionId": transaction.id,
            "customerId": customer.id,
            "amount": transaction.amount,
            "pointsAwarded": points,
        }
        awarded_event = {
            "customerId": customer.id,
            "pointsAwarded": points,
            "newBalance": receipt.new_balance,
            "reason": "transaction",
        }
        await self._dispatcher.emit(business_id, WebhookEventType.TRANSACTION_CREATED, created_event)
        await self._dispatcher.emit(business_id, WebhookEventType.POINTS_AWARDED, awarded_event)
        return receipt

    async def update(
        self,
        business_id: int,
        transaction_id: int,
        *,
        amount: Amount | None = None,
        date: datetime | None = None,
    ) -> TransactionUpdate:
        new_value = normalize_amount(amount) if amount is not None else None

        try:
            transaction = await self._get(business_id, transaction_id)
            customer = await resolve_customer(
                self._db,
                business_id,
                customer_id=transaction.customer_id,
                for_update=True,
            )
            adjustment = 0
            if new_value is not None:
                adjustment = points_adjustment(transaction.amount, new_value)
                transaction.amount = new_value
            if date is not None:
                transaction.date = date
            if adjustment:
                await self._apply_points(customer, adjustment)
            await self._db.commit()
        except (SQLAlchemyError, NotFound):
            await self._db.rollback()
            raise

        await self._db.refresh(transaction)
        logger.info(
            "Updated transaction",
            business_id=business_id,
            transaction_id=transaction_id,
            points_adjustment=adjustment,
        )
        return TransactionUpdate(
            transaction=transaction,
            points_adjustment=adjustment,
            new_balance=customer.points,
        )

    async def delete(self, business_id: int, transaction_id: int) -> TransactionRemoval:
        try:
            transaction = await self._get(business_id, transaction_id)
            customer = await resolve_customer(
                self._db,
                business_id,
                customer_id=transaction.customer_id,
                for_update=True,
            )
            points = points_for_amount(transaction.amount)
            await self._db.delete(transaction)
            if points:
                await self._apply_points(customer, -points)
            await self._db.commit()
        except (SQLAlchemyError, NotFound):
            await self._db.rollback()
            raise

        logger.info(
            "Deleted transaction",
            business_id=business_id,
            transaction_id=transaction_id,
            points_removed=points,
        )
        return TransactionRemoval(
            transaction_id=transaction_id,
            customer_id=customer.id,
            points_removed=points,
            new_balance=customer.points,
        )

    async def list_transactions(
        self,
        business_id: int,
        *,
        customer_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Transaction], int]:
        filters = [Transaction.business_id == business_id]
        if customer_id is not None:
            filters.append(Transaction.customer_id == customer_id)

        total = (await self._db.execute(select(func.count(Transaction.id)).where(*filters))).scalar_one()
        stmt = (
            select(Transaction)
            .where(*filters)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = list((await self._db.execute(stmt)).scalars().all())
        return rows, int(total)

    async def _get(self, business_id: int, transaction_id: int) -> Transaction:
        stmt = select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.business_id == business_id,
        )
        transaction = (await self._db.execute(stmt)).scalar_one_or_none()
        if transaction is None:
            raise NotFound("Transaction not found")
        return transaction

    async def _apply_points(self, customer: Customer, delta: int) -> None:
        await self._db.execute(
            update(Customer)
            .where(Customer.id == customer.id)
            .values(points=Customer.points + delta)
            .execution_options(synchronize_session=False)
        )
        await self._db.flush()
        await self._db.refresh(customer, attribute_names=["points"])


__all__ = [
    "TransactionReceipt",
    "TransactionRemoval",
    "TransactionService",
    "TransactionUpdate",
    "normalize_amount",
    "serialize_transaction",
]
