"""Shopify webhook subscriptions and inbound HMAC verification."""

import asyncio
import base64
import hashlib
import hmac
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from shopify_connect.integrations.shopify.client import ShopifyClient
from shopify_connect.integrations.shopify.errors import ShopifyError

logger = logging.getLogger(__name__)


def verify_webhook(data: bytes, hmac_header: str, secret: str) -> bool:
    """Verify a Shopify webhook's HMAC-SHA256 signature.

    Args:
        data: The raw request body bytes.
        hmac_header: The X-Shopify-Hmac-Sha256 header value.
        secret: The Shopify client secret.

    Returns:
        True if the signature is valid.
    """
    computed = base64.b64encode(
        hmac.new(
            secret.encode("utf-8"),
            data,
            hashlib.sha256,
        ).digest()
    ).decode("utf-8")

    return hmac.compare_digest(computed.encode(), hmac_header.encode("utf-8", "surrogateescape"))


@dataclass
class WebhookRegistration:
    """Outcome of registering one topic/event pair."""

    topic: str
    event: str
    webhook: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RegistrationReport:
    """Joined outcome of a registration fan-out."""

    shop_domain: str
    registrations: list[WebhookRegistration] = field(default_factory=list)

    @property
    def succeeded(self) -> list[WebhookRegistration]:
        return [r for r in self.registrations if r.ok]

    @property
    def failed(self) -> list[WebhookRegistration]:
        return [r for r in self.registrations if not r.ok]

    @property
    def complete(self) -> bool:
        return not self.failed


class WebhookManager:
    """Lists, registers and deletes webhook subscriptions for one shop."""

    def __init__(
        self,
        client: ShopifyClient,
        topics: Mapping[str, Sequence[str]],
        base_url: str,
        api_version: str = "",
    ) -> None:
        self.client = client
        self.topics = topics
        self.base_url = base_url.rstrip("/")
        self.admin_path = f"/admin/api/{api_version}" if api_version else "/admin"

    def address_for(self, topic: str, shop_id: str) -> str:
        """Callback address Shopify will POST this topic's events to."""
        return f"{self.base_url}/{topic}/{shop_id}"

    async def register_webhook(self, shop_id: str, topic: str, event: str) -> dict[str, Any]:
        """Create one webhook subscription.

        No local check for an existing subscription is made; calling this twice
        issues two create requests and leaves deduplication to Shopify.
        """
        payload = {
            "webhook": {
                "topic": f"{topic}/{event}",
                "address": self.address_for(topic, shop_id),
                "format": "json",
            }
        }
        result = await self.client.call("POST", f"{self.admin_path}/webhooks.json", data=payload)
        webhook: dict[str, Any] = result.get("webhook", {})
        logger.info("Registered webhook %s/%s for %s", topic, event, self.client.shop_domain)
        return webhook

    async def register_webhooks_required_for_app(self, shop_id: str) -> RegistrationReport:
        """Register every configured topic/event pair concurrently.

        All outcomes are collected; a failed pair does not cancel the others.
        """
        pairs = [(topic, event) for topic, events in self.topics.items() for event in events]
        results = await asyncio.gather(
            *(self.register_webhook(shop_id, topic, event) for topic, event in pairs),
            return_exceptions=True,
        )

        report = RegistrationReport(shop_domain=self.client.shop_domain)
        for (topic, event), result in zip(pairs, results, strict=True):
            if isinstance(result, ShopifyError):
                logger.warning(
                    "Failed to register webhook %s/%s for %s: %s",
                    topic,
                    event,
                    self.client.shop_domain,
                    result,
                )
                report.registrations.append(
                    WebhookRegistration(topic=topic, event=event, error=str(result))
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                report.registrations.append(
                    WebhookRegistration(topic=topic, event=event, webhook=result)
                )
        return report

    async def list_webhooks(self) -> list[dict[str, Any]]:
        """Return the shop's current webhook subscriptions."""
        result = await self.client.call("GET", f"{self.admin_path}/webhooks.json")
        webhooks: list[dict[str, Any]] = result.get("webhooks", [])
        return webhooks

    async def delete_webhook(self, hook_id: int | str) -> None:
        """Delete one webhook subscription."""
        await self.client.call("DELETE", f"{self.admin_path}/webhooks/{hook_id}.json")
        logger.info("Deleted webhook %s for %s", hook_id, self.client.shop_domain)

    async def delete_all_webhooks(self) -> list[int | str]:
        """Delete every subscription the shop has.

        A failure while listing propagates before anything is deleted.
        """
        webhooks = await self.list_webhooks()
        deleted: list[int | str] = []
        for webhook in webhooks:
            await self.delete_webhook(webhook["id"])
            deleted.append(webhook["id"])
        return deleted
