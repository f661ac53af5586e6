import os
from dataclasses import dataclass

os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import loyaltyx_api.models  # noqa: F401
from loyaltyx_api.app import create_app
from loyaltyx_api.db.base import Base
from loyaltyx_api.db.session import get_session, get_session_factory
from loyaltyx_api.models.api_key import ApiKey, ApiKeyEnvironment
from loyaltyx_api.models.business import Business
from loyaltyx_api.models.customer import Customer
from loyaltyx_api.models.reward import Reward
from loyaltyx_api.services.api_keys import generate_api_key


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app_with_db):
    app, _ = app_with_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client


@dataclass
class Tenant:
    business_id: int
    api_key: str
    api_key_id: int

    @property
    def headers(self) -> dict[str, str]:
        return {"X-API-Key": self.api_key}

    @property
    def dashboard_headers(self) -> dict[str, str]:
        return {"X-Session-Business": str(self.business_id)}


async def create_tenant(session_factory, *, email: str = "owner@coffee.test") -> Tenant:
    async with session_factory() as session:
        business = Business(name="Corner Coffee", email=email)
        session.add(business)
        await session.flush()
        raw_key = generate_api_key()
        api_key = ApiKey(
            business_id=business.id,
            key=raw_key,
            name="POS terminal",
            environment=ApiKeyEnvironment.PRODUCTION,
            is_active=True,
        )
        session.add(api_key)
        await session.commit()
        return Tenant(business_id=business.id, api_key=raw_key, api_key_id=api_key.id)


@pytest_asyncio.fixture
async def tenant(session_factory) -> Tenant:
    return await create_tenant(session_factory)


@pytest_asyncio.fixture
async def seed(session_factory, tenant):
    """Insert customers and rewards for ``tenant`` directly."""

    async def _customer(email: str = "ana@example.com", *, points: int = 0, name: str = "Ana") -> Customer:
        async with session_factory() as session:
            customer = Customer(business_id=tenant.business_id, email=email, name=name, points=points)
            session.add(customer)
            await session.commit()
            return customer

    async def _reward(title: str = "Free latte", *, points_required: int = 100) -> Reward:
        async with session_factory() as session:
            reward = Reward(business_id=tenant.business_id, title=title, points_required=points_required)
            session.add(reward)
            await session.commit()
            return reward

    class _Seed:
        customer = staticmethod(_customer)
        reward = staticmethod(_reward)

    return _Seed()


@pytest_asyncio.fixture
async def make_tenant(session_factory):
    async def _make(email: str) -> Tenant:
        return await create_tenant(session_factory, email=email)

    return _make
