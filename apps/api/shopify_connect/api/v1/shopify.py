"""Shopify OAuth, session and webhook management endpoints."""

import logging
import secrets
from collections.abc import Iterable, Mapping

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from shopify_connect.core.auth import (
    CurrentMerchant,
    OptionalMerchant,
    issue_session_token,
    login_with_shopify,
)
from shopify_connect.core.config import settings
from shopify_connect.core.deps import (
    CurrentConnection,
    Credentials,
    Store,
    Webhooks,
    build_webhook_manager,
    get_redis,
)
from shopify_connect.core.logging_config import shop_domain_var
from shopify_connect.core.rate_limit import OAUTH_RATE_LIMIT, limiter
from shopify_connect.integrations.shopify.errors import (
    InvalidState,
    MissingParameters,
    ShopifyError,
    SignatureMismatch,
)
from shopify_connect.integrations.shopify.oauth import (
    OAuthExchanger,
    build_auth_url,
    normalize_shop_domain,
    verify_hmac,
)
from shopify_connect.schemas.shopify import (
    DeletedWebhooksResponse,
    DisconnectResponse,
    InstallUrlResponse,
    RegistrationReportResponse,
    SessionResponse,
    ShopifyConfigResponse,
    WebhookCreateRequest,
    WebhookListResponse,
    WebhookRegistrationResponse,
    WebhookResponse,
)
from shopify_connect.workers.tasks.shopify import register_required_webhooks

logger = logging.getLogger(__name__)

router = APIRouter()

NONCE_KEY_PREFIX = "shopify_oauth:"
CALLBACK_REQUIRED_PARAMS = ("hmac", "signature", "shop", "code", "state")


def _require_params(params: Mapping[str, str], names: Iterable[str]) -> None:
    missing = [name for name in names if not params.get(name)]
    if missing:
        raise MissingParameters(missing)


async def _issue_nonce(r: aioredis.Redis, shop: str) -> str:
    """Create a one-time state value bound to ``shop``."""
    nonce = secrets.token_urlsafe(16)
    await r.set(f"{NONCE_KEY_PREFIX}{nonce}", shop, ex=settings.shopify_nonce_ttl_seconds)
    return nonce


async def _consume_nonce(r: aioredis.Redis, state: str, shop: str) -> None:
    """Validate and burn a state value.

    Raises:
        InvalidState: If the nonce is unknown, expired or was issued for another shop.
    """
    key = f"{NONCE_KEY_PREFIX}{state}"
    stored = await r.getdel(key)

    if not stored:
        raise InvalidState("Invalid or expired state")
    if stored != shop:
        raise InvalidState("Shop mismatch")


async def _queue_webhook_registration(shop: str) -> None:
    """Hand webhook registration to the worker without failing the login.

    Publishing to the broker blocks, so it runs in the threadpool.
    """
    try:
        await run_in_threadpool(register_required_webhooks.delay, shop)
    except Exception:
        # Registration can be repeated later through POST /webhooks/sync
        logger.exception("Could not queue webhook registration for %s", shop)


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
    )


@router.get("/config")
async def get_config(credentials: Credentials) -> ShopifyConfigResponse:
    """Public app configuration for the embedded front end."""
    return ShopifyConfigResponse(
        app_url=settings.app_url,
        api_key=credentials.client_id,
        scopes=list(credentials.scopes),
        shop=settings.shopify_shop or None,
    )


@router.get("/install-url")
@limiter.limit(OAUTH_RATE_LIMIT)
async def get_install_url(
    request: Request,  # noqa: ARG001
    credentials: Credentials,
    shop: str = Query(...),
    r: aioredis.Redis = Depends(get_redis),
) -> InstallUrlResponse:
    """Build a fresh authorization URL for a shop."""
    shop_domain = normalize_shop_domain(shop)
    nonce = await _issue_nonce(r, shop_domain)
    return InstallUrlResponse(install_url=build_auth_url(shop_domain, credentials, nonce))


@router.get("/install")
@limiter.limit(OAUTH_RATE_LIMIT)
async def install(
    request: Request,
    credentials: Credentials,
    merchant: OptionalMerchant,
    r: aioredis.Redis = Depends(get_redis),
) -> RedirectResponse:
    """Embedded app entry point.

    A merchant with a valid session for the shop goes straight to the app.
    Everyone else is sent through Shopify's OAuth flow; the app is
    re-authorized on every fresh login.
    """
    params = dict(request.query_params)
    raw_shop = params.get("shop") or settings.shopify_shop
    if not raw_shop:
        raise MissingParameters(["shop"])
    shop = normalize_shop_domain(raw_shop)
    shop_domain_var.set(shop)

    if merchant and merchant.get("shop") == shop:
        return RedirectResponse(settings.auth_success_url)

    logger.info("Not logged in, authorizing app for %s", shop)
    _require_params(params, ("hmac",))
    if not verify_hmac(params, credentials.client_secret):
        logger.warning("Install request signature mismatch for %s", shop)
        raise SignatureMismatch("Cannot validate Shopify install signature")

    nonce = await _issue_nonce(r, shop)
    logger.info("Sending authorization request to Shopify for %s", shop)
    return RedirectResponse(build_auth_url(shop, credentials, nonce))


@router.get("/authenticate")
@limiter.limit(OAUTH_RATE_LIMIT)
async def authenticate(
    request: Request,
    credentials: Credentials,
    store: Store,
    r: aioredis.Redis = Depends(get_redis),
) -> RedirectResponse:
    """Handle the Shopify OAuth callback.

    Verifies the signature and state, trades the code for an offline token,
    stores it, queues webhook registration and logs the merchant in.
    """
    params = dict(request.query_params)
    _require_params(params, CALLBACK_REQUIRED_PARAMS)

    shop = normalize_shop_domain(params["shop"])
    shop_domain_var.set(shop)

    if not verify_hmac(params, credentials.client_secret):
        logger.warning("OAuth callback signature mismatch for %s", shop)
        raise SignatureMismatch(
            "Cannot validate Shopify OAuth signature. There may be a security issue."
        )

    await _consume_nonce(r, params["state"], shop)

    logger.info("Authorization successful, requesting permanent access token for %s", shop)
    grant = await OAuthExchanger(credentials).exchange(params["code"], shop)

    account_id, _ = await store.connect(grant)

    await _queue_webhook_registration(shop)

    principal = login_with_shopify({"shopify": True, "user_id": str(account_id), "shop": shop})
    response = RedirectResponse(settings.auth_success_url)
    _set_session_cookie(response, issue_session_token(principal))
    logger.info("OAuth process completed for %s", shop)
    return response


@router.get("/session")
async def get_session(merchant: CurrentMerchant, connection: CurrentConnection) -> SessionResponse:
    """Return the logged-in merchant and their connection."""
    return SessionResponse(
        account_id=merchant["sub"],
        shop_domain=connection.shop_domain,
        status=connection.status.value,
        scopes=[s for s in connection.scopes.split(",") if s],
        installed_at=connection.installed_at,
    )


@router.get("/webhooks")
async def list_webhooks(webhooks: Webhooks) -> WebhookListResponse:
    """List the shop's webhook subscriptions."""
    hooks = await webhooks.list_webhooks()
    return WebhookListResponse(webhooks=[WebhookResponse.model_validate(h) for h in hooks])


@router.post("/webhooks", status_code=status.HTTP_201_CREATED)
async def create_webhook(
    body: WebhookCreateRequest,
    webhooks: Webhooks,
    connection: CurrentConnection,
) -> WebhookResponse:
    """Register a single webhook subscription."""
    hook = await webhooks.register_webhook(str(connection.id), body.topic, body.event)
    return WebhookResponse.model_validate(hook)


@router.post("/webhooks/sync")
async def sync_webhooks(webhooks: Webhooks, connection: CurrentConnection) -> RegistrationReportResponse:
    """Register every webhook the app requires and report each outcome."""
    report = await webhooks.register_webhooks_required_for_app(str(connection.id))
    return RegistrationReportResponse(
        shop_domain=report.shop_domain,
        complete=report.complete,
        registrations=[
            WebhookRegistrationResponse(
                topic=r.topic, event=r.event, ok=r.ok, webhook=r.webhook, error=r.error
            )
            for r in report.registrations
        ],
    )


@router.delete("/webhooks/{hook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(hook_id: int, webhooks: Webhooks) -> Response:
    """Delete one webhook subscription."""
    await webhooks.delete_webhook(hook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/webhooks")
async def delete_all_webhooks(webhooks: Webhooks) -> DeletedWebhooksResponse:
    """Delete all of the shop's webhook subscriptions."""
    deleted = await webhooks.delete_all_webhooks()
    return DeletedWebhooksResponse(deleted=deleted)


@router.post("/disconnect")
async def disconnect(connection: CurrentConnection, store: Store, response: Response) -> DisconnectResponse:
    """Disconnect the shop and end the session."""
    try:
        await build_webhook_manager(connection).delete_all_webhooks()
    except ShopifyError as exc:
        # Shopify drops an uninstalled app's webhooks on its own
        logger.warning("Could not delete webhooks for %s: %s", connection.shop_domain, exc)

    await store.mark_uninstalled(connection)
    response.delete_cookie(settings.session_cookie_name)
    return DisconnectResponse(status="disconnected", message="Shopify store disconnected")
