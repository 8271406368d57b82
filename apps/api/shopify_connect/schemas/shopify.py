"""Pydantic schemas for the Shopify OAuth and webhook endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from shopify_connect.schemas.common import BaseSchema


class ShopifyConfigResponse(BaseSchema):
    """Public app configuration. Never includes the client secret."""

    app_url: str
    api_key: str
    scopes: list[str]
    shop: str | None = None


class InstallUrlResponse(BaseSchema):
    install_url: str


class SessionResponse(BaseSchema):
    """The logged-in merchant and their connection."""

    account_id: str
    shop_domain: str
    status: str
    scopes: list[str] = []
    installed_at: datetime | None = None


class WebhookCreateRequest(BaseSchema):
    """Register a single topic/event subscription."""

    topic: str = Field(..., min_length=1, examples=["orders"])
    event: str = Field(..., min_length=1, examples=["create"])


class WebhookResponse(BaseSchema):
    """A subscription as Shopify reports it."""

    id: int | str
    topic: str
    address: str
    format: str = "json"
    created_at: datetime | str | None = None


class WebhookListResponse(BaseSchema):
    webhooks: list[WebhookResponse]


class WebhookRegistrationResponse(BaseSchema):
    topic: str
    event: str
    ok: bool
    webhook: dict[str, Any] | None = None
    error: str | None = None


class RegistrationReportResponse(BaseSchema):
    """Result of registering the app's required webhooks."""

    shop_domain: str
    complete: bool
    registrations: list[WebhookRegistrationResponse]


class DeletedWebhooksResponse(BaseSchema):
    deleted: list[int | str]


class DisconnectResponse(BaseSchema):
    status: str
    message: str


class WebhookAckResponse(BaseSchema):
    status: str
    connection_id: UUID | None = None
