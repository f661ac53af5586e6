from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from loyaltyx_api.core.settings import settings
from loyaltyx_api.db.session import async_session
from .api.errors import register_exception_handlers
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .workers import IdempotencySweeper, WebhookDeliveryWorker


APP_VERSION = "0.1.0"
SERVICE_NAME = "loyaltyx-api"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    delivery_worker = WebhookDeliveryWorker(
        session_factory=_session_factory,
        interval_seconds=settings.webhook_worker_interval_seconds,
        batch_size=settings.webhook_worker_batch_size,
    )
    sweeper = IdempotencySweeper(
        session_factory=_session_factory,
        interval_seconds=settings.idempotency_sweep_interval_seconds,
    )
    app.state.webhook_delivery_worker = delivery_worker
    app.state.idempotency_sweeper = sweeper

    delivery_enabled = settings.webhook_worker_enabled
    if delivery_enabled:
        delivery_worker.start()
    else:
        logger.info(
            "Webhook delivery worker disabled",
            reason="webhook_worker_enabled is false",
        )

    sweep_enabled = settings.idempotency_sweep_enabled
    if sweep_enabled:
        sweeper.start()
    else:
        logger.info(
            "Idempotency sweeper disabled",
            reason="idempotency_sweep_enabled is false",
        )

    try:
        yield
    finally:
        if delivery_enabled and delivery_worker.is_running:
            await delivery_worker.stop()
        if sweep_enabled and sweeper.is_running:
            await sweeper.stop()


def create_app() -> FastAPI:
    """Application factory for the LoyaltyX FastAPI service."""
    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="LoyaltyX API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name=SERVICE_NAME,
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
