"""Tests for merchant session helpers.

Covers:
- login_with_shopify principal building
- issue_session_token / verify_session_token
- get_current_merchant / get_optional_merchant token lookup
"""

import time
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from shopify_connect.core.auth import (
    SESSION_ALGORITHM,
    get_current_merchant,
    get_optional_merchant,
    issue_session_token,
    login_with_shopify,
    verify_session_token,
)
from tests.conftest import SHOPIFY_TEST_SECRET_KEY, SHOPIFY_TEST_SHOP


def _request(cookies: dict[str, str] | None = None) -> MagicMock:
    request = MagicMock()
    request.cookies = cookies or {}
    return request


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestLoginWithShopify:
    def test_builds_principal(self) -> None:
        principal = login_with_shopify({"shopify": True, "user_id": "acct-1", "shop": SHOPIFY_TEST_SHOP})

        assert principal == {"sub": "acct-1", "shop": SHOPIFY_TEST_SHOP, "provider": "shopify"}

    def test_passes_on_other_logins(self) -> None:
        assert login_with_shopify({"email": "merchant@example.com"}) is None

    def test_requires_user_id(self) -> None:
        with pytest.raises(ValueError):
            login_with_shopify({"shopify": True, "shop": SHOPIFY_TEST_SHOP})


class TestSessionTokens:
    def test_round_trip(self) -> None:
        token = issue_session_token({"sub": "acct-1", "shop": SHOPIFY_TEST_SHOP})

        payload = verify_session_token(token)

        assert payload["sub"] == "acct-1"
        assert payload["shop"] == SHOPIFY_TEST_SHOP
        assert payload["exp"] > payload["iat"]

    def test_expired_token(self) -> None:
        now = int(time.time())
        token = jwt.encode(
            {"sub": "acct-1", "aud": "shopify-connect", "iat": now - 120, "exp": now - 60},
            SHOPIFY_TEST_SECRET_KEY,
            algorithm=SESSION_ALGORITHM,
        )

        with pytest.raises(HTTPException) as exc_info:
            verify_session_token(token)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Session has expired"

    def test_wrong_audience(self) -> None:
        token = jwt.encode(
            {"sub": "acct-1", "aud": "someone-else"},
            SHOPIFY_TEST_SECRET_KEY,
            algorithm=SESSION_ALGORITHM,
        )

        with pytest.raises(HTTPException) as exc_info:
            verify_session_token(token)

        assert exc_info.value.status_code == 401

    def test_wrong_key(self) -> None:
        token = jwt.encode(
            {"sub": "acct-1", "aud": "shopify-connect"},
            "another-key-that-is-long-enough-for-hs256",
            algorithm=SESSION_ALGORITHM,
        )

        with pytest.raises(HTTPException):
            verify_session_token(token)


class TestMerchantDependencies:
    async def test_cookie_wins_over_bearer(self) -> None:
        cookie_token = issue_session_token({"sub": "from-cookie", "shop": SHOPIFY_TEST_SHOP})
        bearer_token = issue_session_token({"sub": "from-bearer", "shop": SHOPIFY_TEST_SHOP})

        merchant = await get_current_merchant(
            _request({"shopify_session": cookie_token}), _bearer(bearer_token)
        )

        assert merchant["sub"] == "from-cookie"

    async def test_bearer_only(self) -> None:
        token = issue_session_token({"sub": "acct-1", "shop": SHOPIFY_TEST_SHOP})

        merchant = await get_current_merchant(_request(), _bearer(token))

        assert merchant["sub"] == "acct-1"

    async def test_missing_session_raises(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_merchant(_request(), None)

        assert exc_info.value.status_code == 401

    async def test_optional_returns_none_without_session(self) -> None:
        assert await get_optional_merchant(_request(), None) is None

    async def test_optional_returns_none_for_bad_token(self) -> None:
        assert await get_optional_merchant(_request(), _bearer("garbage")) is None
