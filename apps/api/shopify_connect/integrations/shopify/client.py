"""Shopify Admin API client using httpx."""

import logging
from typing import Any

import httpx

from shopify_connect.core.encryption import decrypt_token
from shopify_connect.integrations.shopify.errors import MissingCredentials, UpstreamError
from shopify_connect.integrations.shopify.oauth import SHOP_DOMAIN_SUFFIX, shop_name_from_domain
from shopify_connect.models.merchant import MerchantConnection

logger = logging.getLogger(__name__)


class ShopifyClient:
    """Async client for authenticated Shopify Admin REST calls on behalf of one shop."""

    def __init__(self, shop_domain: str, access_token: str, timeout: float = 30.0) -> None:
        self.shop_domain = shop_domain
        self.shop_name = shop_name_from_domain(shop_domain) if shop_domain else ""
        self.access_token = access_token
        self.timeout = timeout

    @classmethod
    def from_connection(cls, connection: MerchantConnection) -> "ShopifyClient":
        """Build a client from a stored connection, decrypting its token."""
        return cls(connection.shop_domain, decrypt_token(connection.access_token))

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_name}{SHOP_DOMAIN_SUFFIX}"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

    async def call(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Issue one Admin API request and return the decoded JSON body.

        Args:
            method: HTTP verb.
            endpoint: Path starting with ``/admin``.
            data: Optional JSON request body.
            params: Optional query parameters.

        Raises:
            MissingCredentials: If the shop or access token is unknown.
            UpstreamError: On transport failure or a non-2xx response.
        """
        if not self.shop_name or not self.access_token:
            raise MissingCredentials("Missing parameter for Shopify API call: shop or access token")

        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout) as client:
                response = await client.request(method, url, json=data, params=params)
        except httpx.HTTPError as exc:
            logger.error("%s %s for %s failed: %s", method, endpoint, self.shop_domain, exc)
            raise UpstreamError(f"Shopify request failed: {exc}") from exc

        if not response.is_success:
            body = _safe_json(response)
            logger.warning(
                "%s %s for %s returned %s",
                method,
                endpoint,
                self.shop_domain,
                response.status_code,
            )
            raise UpstreamError(
                f"Shopify returned {response.status_code} for {method} {endpoint}",
                upstream_status=response.status_code,
                body=body,
            )

        return _safe_json(response)


def _safe_json(response: httpx.Response) -> Any:
    """Decode a JSON body, tolerating empty or non-JSON payloads."""
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}
