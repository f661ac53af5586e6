"""SQLAlchemy models package."""

from .api_key import ApiKey, ApiKeyEnvironment  # noqa: F401
from .business import Business  # noqa: F401
from .customer import Customer  # noqa: F401
from .idempotency import IdempotencyRecord, IdempotencyStatus  # noqa: F401
from .reward import Redemption, Reward  # noqa: F401
from .transaction import Transaction  # noqa: F401
from .webhook import (  # noqa: F401
    WEBHOOK_WILDCARD,
    Webhook,
    WebhookDelivery,
    WebhookDeliveryStatus,
    WebhookEventType,
)
