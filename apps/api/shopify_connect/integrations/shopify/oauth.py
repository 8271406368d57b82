"""Shopify OAuth helpers for HMAC verification, redirect URLs and token exchange."""

import hashlib
import hmac
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from shopify_connect.core.config import ShopifyCredentials
from shopify_connect.integrations.shopify.errors import InvalidRequest, TokenExchangeFailed

logger = logging.getLogger(__name__)

SHOP_DOMAIN_SUFFIX = ".myshopify.com"
_SHOP_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]*$")

# Keys Shopify excludes from the signed message
_UNSIGNED_PARAMS = ("hmac", "signature")


def shop_name_from_domain(shop: str) -> str:
    """Strip the myshopify.com suffix: ``foo.myshopify.com`` -> ``foo``."""
    return shop.strip().lower().removesuffix(SHOP_DOMAIN_SUFFIX)


def normalize_shop_domain(shop: str) -> str:
    """Return the canonical ``{name}.myshopify.com`` domain for a shop.

    Accepts either the bare shop name or the full domain.

    Raises:
        InvalidRequest: If the value is not a plausible myshopify shop.
    """
    name = shop_name_from_domain(shop)
    if not name or not _SHOP_NAME_RE.match(name):
        raise InvalidRequest(f"Invalid shop domain: {shop!r}")
    return f"{name}{SHOP_DOMAIN_SUFFIX}"


def build_hmac_message(query_params: Mapping[str, str], *, sort_params: bool = True) -> str:
    """Serialize query params into the message Shopify signs.

    ``hmac`` and ``signature`` are dropped. Shopify documents a lexicographic
    ordering; ``sort_params=False`` keeps the mapping's own iteration order.
    """
    items = [(k, v) for k, v in query_params.items() if k not in _UNSIGNED_PARAMS]
    if sort_params:
        items.sort(key=lambda kv: kv[0])
    return urlencode(items)


def verify_hmac(
    query_params: Mapping[str, str],
    secret: str,
    *,
    sort_params: bool = True,
) -> bool:
    """Verify Shopify OAuth callback HMAC signature.

    Args:
        query_params: All query parameters from the callback URL.
        secret: The Shopify client secret.
        sort_params: Serialize params in sorted order (Shopify's documented rule).

    Returns:
        True if HMAC is valid.
    """
    received_hmac = query_params.get("hmac", "")
    if not received_hmac:
        return False

    message = build_hmac_message(query_params, sort_params=sort_params)
    computed = hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    # Client-supplied values may hold non-ASCII text; compare as bytes
    return hmac.compare_digest(computed.encode(), received_hmac.encode("utf-8", "surrogateescape"))


def build_auth_url(shop: str, credentials: ShopifyCredentials, state: str) -> str:
    """Build the Shopify OAuth authorization URL.

    Args:
        shop: The shop domain (e.g. mystore.myshopify.com) or bare shop name.
        credentials: App credentials supplying client id, scopes and redirect URI.
        state: Random nonce echoed back on the callback.

    Returns:
        The full authorization URL to redirect the merchant to.
    """
    params = urlencode({
        "client_id": credentials.client_id,
        "scope": ",".join(credentials.scopes),
        "redirect_uri": credentials.callback_url,
        "state": state,
    })
    return f"https://{shop_name_from_domain(shop)}{SHOP_DOMAIN_SUFFIX}/admin/oauth/authorize?{params}"


@dataclass(frozen=True)
class TokenGrant:
    """A permanent access token issued for one shop."""

    shop_domain: str
    shop_name: str
    access_token: str
    scope: str = ""


class OAuthExchanger:
    """Trades an authorization code for an offline access token."""

    def __init__(self, credentials: ShopifyCredentials, timeout: float = 15.0) -> None:
        self.credentials = credentials
        self.timeout = timeout

    async def exchange(self, code: str, shop: str) -> TokenGrant:
        """Exchange the OAuth authorization code for a permanent access token.

        Raises:
            InvalidRequest: If code or shop is empty.
            TokenExchangeFailed: On a non-200 answer or a network failure.
        """
        if not code or not shop:
            raise InvalidRequest("Cannot generate Shopify access token: shop or code missing")

        shop_name = shop_name_from_domain(shop)
        url = f"https://{shop_name}{SHOP_DOMAIN_SUFFIX}/admin/oauth/access_token"
        payload = {
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "code": code,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Token exchange for %s failed: %s", shop, exc)
            raise TokenExchangeFailed(f"Token exchange request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error("Token exchange for %s rejected with %s", shop, response.status_code)
            raise TokenExchangeFailed(
                f"Shopify rejected the authorization code ({response.status_code})",
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise TokenExchangeFailed("Token response was not valid JSON", upstream_status=200) from exc
        if not isinstance(data, dict):
            raise TokenExchangeFailed("Token response was not a JSON object", upstream_status=200)

        access_token = data.get("access_token")
        if not access_token:
            raise TokenExchangeFailed(
                "Token response did not include an access_token", upstream_status=200
            )

        return TokenGrant(
            shop_domain=shop,
            shop_name=shop_name,
            access_token=access_token,
            scope=data.get("scope", ""),
        )
