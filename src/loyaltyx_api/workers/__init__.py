"""Background workers supporting async processing."""

from .idempotency_sweeper import IdempotencySweeper
from .webhook_delivery import DeliverySummary, WebhookDeliveryWorker

__all__ = [
    "DeliverySummary",
    "IdempotencySweeper",
    "WebhookDeliveryWorker",
]
