"""Receiver for the webhooks this app registers with Shopify."""

import logging
from uuid import UUID

from fastapi import APIRouter, Request

from shopify_connect.core.deps import Credentials, Store
from shopify_connect.core.logging_config import shop_domain_var
from shopify_connect.integrations.shopify.errors import MissingParameters, SignatureMismatch
from shopify_connect.integrations.shopify.webhooks import verify_webhook
from shopify_connect.models.merchant import ConnectionStatus
from shopify_connect.schemas.shopify import WebhookAckResponse

logger = logging.getLogger(__name__)

router = APIRouter()

UNINSTALLED_TOPIC = "app/uninstalled"


async def _verify(request: Request, secret: str) -> bytes:
    """Read the raw body and verify its HMAC header."""
    body = await request.body()
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256", "")
    if not hmac_header:
        raise MissingParameters(["X-Shopify-Hmac-Sha256"])

    if not verify_webhook(body, hmac_header, secret):
        logger.warning("Webhook signature mismatch from %s", request.headers.get("X-Shopify-Shop-Domain"))
        raise SignatureMismatch("Invalid webhook signature")
    return body


@router.post("/{topic}/{shop_id}")
async def receive_webhook(
    topic: str,
    shop_id: UUID,
    request: Request,
    store: Store,
    credentials: Credentials,
) -> WebhookAckResponse:
    """Acknowledge a webhook addressed to ``{base}/{topic}/{shop_id}``."""
    await _verify(request, credentials.client_secret)

    connection = await store.get(shop_id)
    if connection is None:
        return WebhookAckResponse(status="ignored")

    shop_domain_var.set(connection.shop_domain)
    header_shop = request.headers.get("X-Shopify-Shop-Domain")
    if header_shop and header_shop != connection.shop_domain:
        logger.warning("Webhook for %s arrived with shop header %s", connection.shop_domain, header_shop)
        return WebhookAckResponse(status="ignored")

    full_topic = request.headers.get("X-Shopify-Topic", topic)
    if full_topic == UNINSTALLED_TOPIC:
        if connection.status == ConnectionStatus.ACTIVE:
            await store.mark_uninstalled(connection)
        return WebhookAckResponse(status="uninstalled", connection_id=connection.id)

    logger.info("Received webhook %s for %s", full_topic, connection.shop_domain)
    return WebhookAckResponse(status="accepted", connection_id=connection.id)
