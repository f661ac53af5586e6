"""Customer enrollment and lookup scoped to a business."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.db.session import session_factory_for
from loyaltyx_api.models.customer import Customer
from loyaltyx_api.models.reward import Redemption
from loyaltyx_api.models.transaction import Transaction
from loyaltyx_api.models.webhook import WebhookEventType
from loyaltyx_api.services.errors import Conflict, InvalidArgument, NotFound
from loyaltyx_api.services.webhooks.dispatcher import WebhookDispatcher


_UNSET: Any = object()


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _validate_profile(email: str | None, name: str | None) -> tuple[str, str]:
    normalized = normalize_email(email)
    if not normalized:
        raise InvalidArgument("Missing required field: email")
    if not name or not name.strip():
        raise InvalidArgument("Missing required field: name")
    return normalized, name.strip()


def _duplicate_email(email: str) -> Conflict:
    return Conflict("Customer with this email already exists", details={"email": email})


@dataclass(slots=True)
class UpsertResult:
    customer: Customer
    created: bool


async def resolve_customer(
    db: AsyncSession,
    business_id: int,
    *,
    customer_id: int | None = None,
    customer_email: str | None = None,
    for_update: bool = False,
) -> Customer:
    """Load a customer of ``business_id`` by id or email.

    With ``for_update`` the row stays locked until the caller's transaction ends.
    """

    stmt = select(Customer).where(Customer.business_id == business_id)
    if customer_id is not None:
        stmt = stmt.where(Customer.id == customer_id)
    elif customer_email:
        stmt = stmt.where(Customer.email == normalize_email(customer_email))
    else:
        raise InvalidArgument("Either customerId or customerEmail is required")
    if for_update:
        stmt = stmt.with_for_update()

    customer = (await db.execute(stmt)).scalar_one_or_none()
    if customer is None:
        raise NotFound("Customer not found")
    return customer


def serialize_customer(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "email": customer.email,
        "name": customer.name,
        "phone": customer.phone,
        "points": customer.points,
        "createdAt": customer.created_at,
        "updatedAt": customer.updated_at,
    }


class CustomerService:
    def __init__(self, db_session: AsyncSession, dispatcher: WebhookDispatcher | None = None) -> None:
        self._db = db_session
        self._dispatcher = dispatcher or WebhookDispatcher(session_factory_for(db_session))

    async def upsert(
        self,
        business_id: int,
        *,
        email: str | None,
        name: str | None,
        phone: str | None = None,
    ) -> UpsertResult:
        """Create the customer or refresh its profile; the balance is never touched."""

        normalized, display_name = _validate_profile(email, name)

        existing = await self._find(business_id, normalized)
        if existing is not None:
            return UpsertResult(customer=await self._update(existing, display_name, phone), created=False)

        customer = Customer(
            business_id=business_id,
            email=normalized,
            name=display_name,
            phone=phone,
            points=0,
        )
        self._db.add(customer)
        try:
            await self._db.commit()
        except IntegrityError:
            # Lost a concurrent create for the same email; fall back to update.
            await self._db.rollback()
            existing = await self._find(business_id, normalized)
            if existing is None:
                raise
            return UpsertResult(customer=await self._update(existing, display_name, phone), created=False)

        await self._announce(business_id, customer)
        return UpsertResult(customer=customer, created=True)

    async def create(
        self,
        business_id: int,
        *,
        email: str | None,
        name: str | None,
        phone: str | None = None,
    ) -> Customer:
        """Enroll a new customer; an email already enrolled is a conflict."""

        normalized, display_name = _validate_profile(email, name)
        if await self._find(business_id, normalized) is not None:
            raise _duplicate_email(normalized)

        customer = Customer(
            business_id=business_id,
            email=normalized,
            name=display_name,
            phone=phone,
            points=0,
        )
        self._db.add(customer)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise _duplicate_email(normalized) from exc

        await self._announce(business_id, customer)
        return customer

    async def get(self, business_id: int, customer_id: int) -> Customer:
        return await resolve_customer(self._db, business_id, customer_id=customer_id)

    async def update(
        self,
        business_id: int,
        customer_id: int,
        *,
        email: str | None = None,
        name: str | None = None,
        phone: str | None = _UNSET,
    ) -> Customer:
        """Edit the profile of a customer of ``business_id``; points are not editable here."""

        customer = await self.get(business_id, customer_id)
        if email is not None:
            normalized = normalize_email(email)
            if not normalized:
                raise InvalidArgument("Email cannot be empty")
            if normalized != customer.email:
                if await self._find(business_id, normalized) is not None:
                    raise _duplicate_email(normalized)
                customer.email = normalized
        if name is not None:
            if not name.strip():
                raise InvalidArgument("Name cannot be empty")
            customer.name = name.strip()
        if phone is not _UNSET:
            customer.phone = phone

        email_after = customer.email
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise _duplicate_email(email_after) from exc
        await self._db.refresh(customer)
        logger.info("Updated customer", business_id=business_id, customer_id=customer_id)
        return customer

    async def delete(self, business_id: int, customer_id: int) -> None:
        """Remove a customer together with its transactions and redemptions."""

        customer = await self.get(business_id, customer_id)
        try:
            await self._db.execute(delete(Redemption).where(Redemption.customer_id == customer.id))
            await self._db.execute(delete(Transaction).where(Transaction.customer_id == customer.id))
            await self._db.execute(delete(Customer).where(Customer.id == customer.id))
            await self._db.commit()
        except SQLAlchemyError:
            await self._db.rollback()
            raise
        logger.info("Deleted customer", business_id=business_id, customer_id=customer_id)

    async def list_customers(
        self,
        business_id: int,
        *,
        email: str | None = None,
        phone: str | None = None,
    ) -> list[Customer]:
        stmt = select(Customer).where(Customer.business_id == business_id)
        if email:
            stmt = stmt.where(Customer.email == normalize_email(email))
        if phone:
            stmt = stmt.where(Customer.phone == phone)
        stmt = stmt.order_by(Customer.created_at.desc(), Customer.id.desc())
        return list((await self._db.execute(stmt)).scalars().all())

    async def _announce(self, business_id: int, customer: Customer) -> None:
        await self._db.refresh(customer)
        logger.info("Created customer", business_id=business_id, customer_id=customer.id)
        created_event = {
            "customerId": customer.id,
            "email": customer.email,
            "name": customer.name,
            "phone": customer.phone,
            "points": customer.points,
        }
        await self._dispatcher.emit(business_id, WebhookEventType.CUSTOMER_CREATED, created_event)

    async def _find(self, business_id: int, email: str) -> Customer | None:
        stmt = select(Customer).where(Customer.business_id == business_id, Customer.email == email)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _update(self, customer: Customer, name: str, phone: str | None) -> Customer:
        customer.name = name
        if phone is not None:
            customer.phone = phone
        await self._db.commit()
        await self._db.refresh(customer)
        return customer


__all__ = [
    "CustomerService",
    "UpsertResult",
    "normalize_email",
    "resolve_customer",
    "serialize_customer",
]
