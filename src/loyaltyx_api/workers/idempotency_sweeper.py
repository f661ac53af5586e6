"""Periodic purge of expired idempotency records."""

from __future__ import annotations

import asyncio

from loguru import logger

from loyaltyx_api.core.settings import settings
from loyaltyx_api.db.session import SessionFactory, ensure_session
from loyaltyx_api.services.idempotency import IdempotencyStore


class IdempotencySweeper:
    def __init__(self, session_factory: SessionFactory, *, interval_seconds: int | None = None) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.idempotency_sweep_interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Idempotency sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Idempotency sweeper stopped")

    async def run_once(self) -> int:
        session = await ensure_session(self._session_factory)
        async with session as db:
            return await IdempotencyStore(db).sweep()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Idempotency sweep failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue


__all__ = ["IdempotencySweeper"]
