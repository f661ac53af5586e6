from fastapi import APIRouter

from .endpoints import (
    api_keys,
    customers,
    health,
    integrations_customers,
    integrations_redemptions,
    integrations_rewards,
    integrations_transactions,
    integrations_webhooks,
    redemptions,
    rewards,
    transactions,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(integrations_customers.router)
router.include_router(integrations_transactions.router)
router.include_router(integrations_redemptions.router)
router.include_router(integrations_rewards.router)
router.include_router(integrations_webhooks.router)
router.include_router(api_keys.router)
router.include_router(customers.router)
router.include_router(transactions.router)
router.include_router(redemptions.router)
router.include_router(rewards.router)
