"""Async engine and session plumbing."""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loyaltyx_api.core.settings import settings

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]

engine = create_async_engine(settings.database_url, echo=settings.database_echo, future=True)
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def get_session_factory() -> SessionFactory:
    """Factory used by background tasks that outlive the request session."""

    return async_session


def session_factory_for(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Factory for independent sessions on the same engine as ``db_session``."""

    return async_sessionmaker(db_session.bind, expire_on_commit=False, class_=AsyncSession)


async def ensure_session(session_factory: SessionFactory) -> AsyncSession:
    maybe_session = session_factory()
    if isinstance(maybe_session, AsyncSession):
        return maybe_session
    return await maybe_session


async def init_models() -> None:
    """Create tables directly; development convenience when Alembic is not run."""

    from loyaltyx_api.db.base import Base
    import loyaltyx_api.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "SessionFactory",
    "async_session",
    "engine",
    "ensure_session",
    "get_session",
    "get_session_factory",
    "init_models",
    "session_factory_for",
]
