"""API v1 router combining all route modules."""

from fastapi import APIRouter

from shopify_connect.api.v1 import health, shopify
from shopify_connect.api.v1.webhooks import shopify as shopify_webhooks

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Shopify OAuth, session and webhook management
api_router.include_router(
    shopify.router,
    prefix="/shopify",
    tags=["shopify"],
)

# Shopify webhooks (no auth - verified via HMAC)
api_router.include_router(
    shopify_webhooks.router,
    prefix="/webhooks/shopify",
    tags=["webhooks"],
)
