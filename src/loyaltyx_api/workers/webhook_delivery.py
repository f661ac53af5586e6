"""Background delivery of queued webhook events."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loyaltyx_api.core.settings import settings
from loyaltyx_api.db.session import SessionFactory, ensure_session
from loyaltyx_api.models.webhook import WebhookDelivery, WebhookDeliveryStatus
from loyaltyx_api.services.webhooks.signing import EVENT_HEADER, SIGNATURE_HEADER, sign_payload

_ERROR_LIMIT = 500


@dataclass(slots=True)
class DeliverySummary:
    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "retried": self.retried,
            "failed": self.failed,
        }


def backoff_delay(attempts: int, *, base_seconds: int, max_seconds: int) -> timedelta:
    """Delay before the next attempt after ``attempts`` failures."""

    exponent = max(attempts - 1, 0)
    return timedelta(seconds=min(base_seconds * (2**exponent), max_seconds))


class WebhookDeliveryWorker:
    """Sends pending deliveries and records the outcome of each attempt.

    A delivery is attempted at most ``max_attempts`` times. Successful and
    failed deliveries are terminal and never picked up again.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        http_client: httpx.AsyncClient | None = None,
        max_attempts: int | None = None,
        timeout_seconds: float | None = None,
        backoff_base_seconds: int | None = None,
        backoff_max_seconds: int | None = None,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._http_client = http_client
        self._max_attempts = max_attempts or settings.webhook_max_attempts
        self._timeout = timeout_seconds or settings.webhook_timeout_seconds
        self._backoff_base = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.webhook_backoff_base_seconds
        )
        self._backoff_max = (
            backoff_max_seconds if backoff_max_seconds is not None else settings.webhook_backoff_max_seconds
        )
        self.interval_seconds = interval_seconds or settings.webhook_worker_interval_seconds
        self._batch_size = batch_size or settings.webhook_worker_batch_size
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Webhook delivery worker started",
            interval_seconds=self.interval_seconds,
            batch_size=self._batch_size,
            max_attempts=self._max_attempts,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Webhook delivery worker stopped")

    async def run_once(self) -> DeliverySummary:
        return await self.process_pending(limit=self._batch_size)

    async def process_pending(self, *, limit: int = 50) -> DeliverySummary:
        """Attempt up to ``limit`` due deliveries, oldest first."""

        summary = DeliverySummary()
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout)
        owns_client = self._http_client is None

        session = await ensure_session(self._session_factory)
        try:
            async with session as db:
                deliveries = await self._fetch_due(db, limit=limit)
                for delivery in deliveries:
                    outcome = await self._attempt(db, client, delivery)
                    summary.processed += 1
                    if outcome == WebhookDeliveryStatus.SUCCESS:
                        summary.succeeded += 1
                    elif outcome == WebhookDeliveryStatus.FAILED:
                        summary.failed += 1
                    else:
                        summary.retried += 1
        finally:
            if owns_client:
                await client.aclose()

        if summary.processed:
            logger.info("Webhook delivery sweep completed", **summary.as_dict())
        return summary

    async def _fetch_due(self, db: AsyncSession, *, limit: int) -> list[WebhookDelivery]:
        now = datetime.now(timezone.utc)
        stmt = (
            select(WebhookDelivery)
            .options(selectinload(WebhookDelivery.webhook))
            .where(
                WebhookDelivery.status == WebhookDeliveryStatus.PENDING,
                WebhookDelivery.attempts < self._max_attempts,
                or_(
                    WebhookDelivery.next_attempt_at.is_(None),
                    WebhookDelivery.next_attempt_at <= now,
                ),
            )
            .order_by(WebhookDelivery.created_at.asc(), WebhookDelivery.id.asc())
            .limit(limit)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def _attempt(
        self,
        db: AsyncSession,
        client: httpx.AsyncClient,
        delivery: WebhookDelivery,
    ) -> WebhookDeliveryStatus:
        webhook = delivery.webhook
        now = datetime.now(timezone.utc)

        if webhook is None or not webhook.is_active:
            delivery.status = WebhookDeliveryStatus.FAILED
            delivery.last_error = "webhook_inactive"
            delivery.next_attempt_at = None
            await db.commit()
            logger.info("Dropped delivery for inactive webhook", delivery_id=delivery.id)
            return WebhookDeliveryStatus.FAILED

        body = delivery.payload.encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_payload(body, webhook.secret),
            EVENT_HEADER: delivery.event,
        }

        error: str | None = None
        try:
            response = await client.post(webhook.url, content=body, headers=headers, timeout=self._timeout)
            delivery.response_status = response.status_code
            if not response.is_success:
                error = f"HTTP {response.status_code}"
        except httpx.HTTPError as exc:
            error = f"{exc.__class__.__name__}: {exc}"[:_ERROR_LIMIT]

        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.last_attempt_at = now

        if error is None:
            delivery.status = WebhookDeliveryStatus.SUCCESS
            delivery.last_error = None
            delivery.next_attempt_at = None
        elif delivery.attempts >= self._max_attempts:
            delivery.status = WebhookDeliveryStatus.FAILED
            delivery.last_error = error
            delivery.next_attempt_at = None
        else:
            delivery.last_error = error
            delivery.next_attempt_at = now + backoff_delay(
                delivery.attempts,
                base_seconds=self._backoff_base,
                max_seconds=self._backoff_max,
            )
        await db.commit()

        log = logger.info if error is None else logger.warning
        log(
            "Webhook delivery attempted",
            delivery_id=delivery.id,
            webhook_id=webhook.id,
            event=delivery.event,
            attempts=delivery.attempts,
            status=delivery.status.value if isinstance(delivery.status, WebhookDeliveryStatus) else delivery.status,
            error=error,
        )
        return WebhookDeliveryStatus(delivery.status)

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Webhook delivery iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue


__all__ = ["DeliverySummary", "WebhookDeliveryWorker", "backoff_delay"]
