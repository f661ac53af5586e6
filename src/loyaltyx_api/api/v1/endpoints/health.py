from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyaltyx_api.core.settings import settings
from loyaltyx_api.db.session import get_session

router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


def _worker_status(request: Request, attribute: str, enabled: bool, label: str) -> ComponentStatus:
    worker = getattr(request.app.state, attribute, None)
    if not enabled or worker is None:
        return ComponentStatus(status="disabled", detail=f"{label} disabled via settings")
    if getattr(worker, "is_running", False):
        return ComponentStatus(status="ready")
    return ComponentStatus(status="starting", detail=f"{label} not running")


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as error:
        components["database"] = ComponentStatus(status="error", detail=f"Database unreachable ({error})")
        status = "error"

    components["webhook_delivery"] = _worker_status(
        request, "webhook_delivery_worker", settings.webhook_worker_enabled, "Webhook delivery worker"
    )
    components["idempotency_sweeper"] = _worker_status(
        request, "idempotency_sweeper", settings.idempotency_sweep_enabled, "Idempotency sweeper"
    )
    if status == "ready" and any(component.status == "starting" for component in components.values()):
        status = "degraded"

    return ReadinessPayload(status=status, components=components)
