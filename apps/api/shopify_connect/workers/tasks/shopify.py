"""Celery tasks for Shopify webhook registration."""

import asyncio
import logging
from typing import Any

from shopify_connect.core.database import async_session_maker
from shopify_connect.core.deps import build_webhook_manager
from shopify_connect.integrations.shopify.webhooks import RegistrationReport
from shopify_connect.models.merchant import ConnectionStatus
from shopify_connect.services.merchant_store import MerchantStore
from shopify_connect.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)


def _report_to_dict(report: RegistrationReport) -> dict[str, Any]:
    return {
        "shop_domain": report.shop_domain,
        "status": "complete" if report.complete else "partial",
        "registered": [f"{r.topic}/{r.event}" for r in report.succeeded],
        "failed": {f"{r.topic}/{r.event}": r.error for r in report.failed},
    }


@celery_app.task(
    name="tasks.shopify.register_required_webhooks",
    base=BaseTask,
    bind=True,
)
def register_required_webhooks(self: BaseTask, shop_domain: str) -> dict[str, Any]:  # noqa: ARG001
    """Register every webhook the app needs for a freshly connected shop."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_register_required_webhooks_async(shop_domain))
    finally:
        loop.close()


async def _register_required_webhooks_async(shop_domain: str) -> dict[str, Any]:
    """Async implementation of required webhook registration."""
    async with async_session_maker() as session:
        connection = await MerchantStore(session).find(shop_domain)

        if not connection or connection.status != ConnectionStatus.ACTIVE:
            return {"shop_domain": shop_domain, "status": "skipped", "reason": "no active connection"}

        manager = build_webhook_manager(connection)
        report = await manager.register_webhooks_required_for_app(str(connection.id))

    result = _report_to_dict(report)
    logger.info(
        "Webhook registration for %s: %d registered, %d failed",
        shop_domain,
        len(result["registered"]),
        len(result["failed"]),
    )
    return result
