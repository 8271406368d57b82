"""Pytest configuration and fixtures for the Shopify Connect test suite.

Provides:
- In-memory SQLite database (aiosqlite) with fresh tables per test
- Mock Redis (fakeredis)
- Disabled rate limiting
- Session tokens for a logged-in merchant
- Factories for MerchantAccount and MerchantConnection
- Shopify signing helpers and HTTP/Celery mocks
"""

import base64
import hashlib
import hmac
import os
from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import urlencode

# Must be set before the application modules build their engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import fakeredis.aioredis
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shopify_connect.core.auth import issue_session_token
from shopify_connect.core.config import ShopifyCredentials
from shopify_connect.core.database import get_async_session
from shopify_connect.core.deps import get_db, get_redis
from shopify_connect.core.encryption import encrypt_token
from shopify_connect.core.rate_limit import limiter
from shopify_connect.main import app
from shopify_connect.models.base import Base
from shopify_connect.models.merchant import (
    ConnectionStatus,
    MerchantAccount,
    MerchantConnection,
    PlatformType,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SHOPIFY_TEST_CLIENT_ID = "test-shopify-client-id"
SHOPIFY_TEST_CLIENT_SECRET = "test-shopify-client-secret"
SHOPIFY_TEST_SECRET_KEY = "test-secret-key-for-signing-sessions"
SHOPIFY_TEST_SHOP = "test-store.myshopify.com"
SHOPIFY_TEST_ACCESS_TOKEN = "shpat_test_access_token_123"
SHOPIFY_TEST_APP_URL = "https://app.example.com"
SHOPIFY_TEST_WEBHOOKS = {"orders": ["create", "updated"], "app": ["uninstalled"]}

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def set_shopify_test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure Shopify settings are consistent for all tests."""
    monkeypatch.setattr("shopify_connect.core.config.settings.shopify_client_id", SHOPIFY_TEST_CLIENT_ID)
    monkeypatch.setattr(
        "shopify_connect.core.config.settings.shopify_client_secret", SHOPIFY_TEST_CLIENT_SECRET
    )
    monkeypatch.setattr("shopify_connect.core.config.settings.secret_key", SHOPIFY_TEST_SECRET_KEY)
    monkeypatch.setattr("shopify_connect.core.config.settings.app_url", SHOPIFY_TEST_APP_URL)
    monkeypatch.setattr("shopify_connect.core.config.settings.shopify_scopes", "read_products,read_orders")
    monkeypatch.setattr("shopify_connect.core.config.settings.shopify_api_version", "2024-10")
    monkeypatch.setattr("shopify_connect.core.config.settings.shopify_webhooks", SHOPIFY_TEST_WEBHOOKS)
    monkeypatch.setattr("shopify_connect.core.config.settings.shopify_webhook_base_url", "")
    monkeypatch.setattr("shopify_connect.core.config.settings.shopify_shop", "")


@pytest.fixture
def credentials() -> ShopifyCredentials:
    """App credentials as the routes would build them."""
    return ShopifyCredentials(
        client_id=SHOPIFY_TEST_CLIENT_ID,
        client_secret=SHOPIFY_TEST_CLIENT_SECRET,
        scopes=("read_products", "read_orders"),
        callback_url=f"{SHOPIFY_TEST_APP_URL}/api/v1/shopify/authenticate",
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and assertions."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Test client (overrides DB and Redis)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with database and Redis dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_redis] = _override_redis

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build Bearer headers carrying a merchant session token.

    Usage:
        headers = auth_headers(account_id=str(account.id))
        await client.get("/api/v1/shopify/session", headers=headers)
    """

    def _headers(*, account_id: str, shop: str = SHOPIFY_TEST_SHOP) -> dict[str, str]:
        token = issue_session_token({"sub": account_id, "shop": shop, "provider": "shopify"})
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def account_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates MerchantAccount instances."""

    async def _create(*, shop_domain: str = SHOPIFY_TEST_SHOP) -> MerchantAccount:
        account = MerchantAccount(shop_domain=shop_domain, profile={})
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _create


@pytest.fixture
def connection_factory(
    db_session: AsyncSession,
    account_factory: Callable[..., Any],
) -> Callable[..., Any]:
    """Factory that creates a MerchantConnection (and its account)."""

    async def _create(
        *,
        shop_domain: str = SHOPIFY_TEST_SHOP,
        access_token: str = SHOPIFY_TEST_ACCESS_TOKEN,
        scopes: str = "read_products,read_orders",
        status: ConnectionStatus = ConnectionStatus.ACTIVE,
    ) -> MerchantConnection:
        account = await account_factory(shop_domain=shop_domain)
        connection = MerchantConnection(
            account_id=account.id,
            platform=PlatformType.SHOPIFY,
            shop_domain=shop_domain,
            shop_name=shop_domain.removesuffix(".myshopify.com"),
            access_token=encrypt_token(access_token) if access_token else "",
            scopes=scopes,
            status=status,
        )
        db_session.add(connection)
        await db_session.commit()
        await db_session.refresh(connection)
        return connection

    return _create


# ---------------------------------------------------------------------------
# Shopify Testing Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def shopify_oauth_hmac() -> Callable[[dict[str, str]], str]:
    """Generate a valid Shopify OAuth HMAC for query params.

    Shopify signs the sorted query params, excluding hmac and signature.

    Usage:
        params = {"code": "abc", "shop": "store.myshopify.com", "state": "nonce123"}
        params["hmac"] = shopify_oauth_hmac(params)
    """

    def _compute(params: dict[str, str]) -> str:
        filtered = sorted((k, v) for k, v in params.items() if k not in ("hmac", "signature"))
        message = urlencode(filtered)
        return hmac.new(
            SHOPIFY_TEST_CLIENT_SECRET.encode(),
            message.encode(),
            hashlib.sha256,
        ).hexdigest()

    return _compute


@pytest.fixture
def shopify_webhook_headers() -> Callable[..., dict[str, str]]:
    """Generate complete Shopify webhook headers for a given body.

    Usage:
        body = b'{"id": 123}'
        headers = shopify_webhook_headers(body, topic="orders/create")
    """

    def _headers(
        body: bytes,
        *,
        topic: str = "orders/create",
        shop: str = SHOPIFY_TEST_SHOP,
    ) -> dict[str, str]:
        signature = base64.b64encode(
            hmac.new(SHOPIFY_TEST_CLIENT_SECRET.encode(), body, hashlib.sha256).digest()
        ).decode()
        return {
            "X-Shopify-Hmac-Sha256": signature,
            "X-Shopify-Shop-Domain": shop,
            "X-Shopify-Topic": topic,
            "Content-Type": "application/json",
        }

    return _headers


def make_response(status_code: int, json: Any = None) -> httpx.Response:
    """A real httpx.Response carrying a JSON body."""
    if json is None:
        return httpx.Response(status_code)
    return httpx.Response(status_code, json=json)


@pytest.fixture
def mock_oauth_http() -> Generator[MagicMock, None, None]:
    """Mock httpx.AsyncClient in oauth.py to return an access token."""
    with patch("shopify_connect.integrations.shopify.oauth.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client
        mock_client.post.return_value = make_response(
            200,
            {"access_token": SHOPIFY_TEST_ACCESS_TOKEN, "scope": "read_products,read_orders"},
        )
        yield mock_client


@pytest.fixture
def mock_admin_http() -> Generator[MagicMock, None, None]:
    """Mock httpx.AsyncClient in client.py.

    ``mock.request`` is an AsyncMock; set ``return_value`` or ``side_effect``
    to script Admin API answers.
    """
    with patch("shopify_connect.integrations.shopify.client.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client
        mock_client.request.return_value = make_response(200, {})
        yield mock_client


@pytest.fixture
def mock_celery_shopify_tasks() -> Generator[dict[str, MagicMock], None, None]:
    """Mock Shopify Celery tasks so route tests can assert on .delay()."""
    with patch("shopify_connect.api.v1.shopify.register_required_webhooks") as mock_register:
        yield {"register_required_webhooks": mock_register}
