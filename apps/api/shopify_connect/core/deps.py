"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shopify_connect.core.auth import CurrentMerchant
from shopify_connect.core.config import ShopifyCredentials, settings
from shopify_connect.core.database import get_async_session
from shopify_connect.core.logging_config import shop_domain_var
from shopify_connect.integrations.shopify.client import ShopifyClient
from shopify_connect.integrations.shopify.errors import MerchantNotConnected
from shopify_connect.integrations.shopify.webhooks import WebhookManager
from shopify_connect.models.merchant import ConnectionStatus, MerchantConnection
from shopify_connect.services.merchant_store import MerchantStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session so tests can override one name."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(settings.redis_url, decode_responses=True)
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


def get_credentials() -> ShopifyCredentials:
    """Snapshot of the Shopify app credentials for this request."""
    return settings.shopify_credentials()


DBSession = Annotated[AsyncSession, Depends(get_db)]
Credentials = Annotated[ShopifyCredentials, Depends(get_credentials)]


def get_merchant_store(db: DBSession) -> MerchantStore:
    return MerchantStore(db)


Store = Annotated[MerchantStore, Depends(get_merchant_store)]


async def get_current_connection(merchant: CurrentMerchant, store: Store) -> MerchantConnection:
    """Resolve the active connection for the logged-in merchant.

    Raises:
        MerchantNotConnected: If the shop has no active connection.
    """
    shop = merchant.get("shop", "")
    connection = await store.find(shop) if shop else None
    if connection is None or connection.status != ConnectionStatus.ACTIVE:
        raise MerchantNotConnected(f"No active Shopify connection for {shop or 'this session'}")
    shop_domain_var.set(connection.shop_domain)
    return connection


CurrentConnection = Annotated[MerchantConnection, Depends(get_current_connection)]


def build_webhook_manager(connection: MerchantConnection) -> WebhookManager:
    """Webhook manager for a stored connection, configured from settings."""
    return WebhookManager(
        ShopifyClient.from_connection(connection),
        topics=settings.shopify_webhooks,
        base_url=settings.webhook_base_url,
        api_version=settings.shopify_api_version,
    )


def get_webhook_manager(connection: CurrentConnection) -> WebhookManager:
    return build_webhook_manager(connection)


Webhooks = Annotated[WebhookManager, Depends(get_webhook_manager)]


__all__ = [
    "CurrentConnection",
    "CurrentMerchant",
    "Credentials",
    "DBSession",
    "Store",
    "Webhooks",
    "build_webhook_manager",
    "get_credentials",
    "get_current_connection",
    "get_db",
    "get_merchant_store",
    "get_redis",
    "get_webhook_manager",
]
