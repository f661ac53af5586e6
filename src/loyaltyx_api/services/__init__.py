"""Domain services for the loyalty platform."""

from .api_keys import ApiKeyAuthenticator, ApiKeyIdentity, ApiKeyService, generate_api_key
from .customers import CustomerService, UpsertResult
from .errors import (
    Conflict,
    InsufficientBalance,
    InternalError,
    InvalidArgument,
    LoyaltyError,
    NotFound,
    Unauthenticated,
)
from .idempotency import CachedResponse, IdempotencyClaim, IdempotencyStore
from .redemptions import RedemptionService
from .rewards import RewardService
from .transactions import TransactionService
from .webhooks import WebhookDispatcher, WebhookRegistry

__all__ = [
    "ApiKeyAuthenticator",
    "ApiKeyIdentity",
    "ApiKeyService",
    "CachedResponse",
    "Conflict",
    "CustomerService",
    "IdempotencyClaim",
    "IdempotencyStore",
    "InsufficientBalance",
    "InternalError",
    "InvalidArgument",
    "LoyaltyError",
    "NotFound",
    "RedemptionService",
    "RewardService",
    "TransactionService",
    "Unauthenticated",
    "UpsertResult",
    "WebhookDispatcher",
    "WebhookRegistry",
    "generate_api_key",
]
