"""Typed failures raised by the Shopify integration.

Every remote-call path raises one of these instead of handing error objects
back as data. ``status_code`` is the HTTP status the API answers with when the
error escapes a route.
"""

from typing import Any


class ShopifyError(Exception):
    """Base class for Shopify integration failures."""

    status_code: int = 500
    code: str = "shopify_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class MissingParameters(ShopifyError):
    """Required OAuth or webhook parameters are absent."""

    status_code = 400
    code = "missing_parameters"

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Shopify parameters missing, cannot authenticate: {', '.join(missing)}")


class InvalidRequest(ShopifyError):
    """A request was malformed before any remote call was made."""

    status_code = 400
    code = "invalid_request"


class SignatureMismatch(ShopifyError):
    """HMAC verification failed. Treat as a security event."""

    status_code = 401
    code = "signature_mismatch"


class InvalidState(ShopifyError):
    """The OAuth state nonce is unknown, expired or bound to another shop."""

    status_code = 400
    code = "invalid_state"


class TokenExchangeFailed(ShopifyError):
    """Shopify refused the authorization code or could not be reached."""

    status_code = 502
    code = "token_exchange_failed"

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        self.upstream_status = upstream_status
        super().__init__(message)


class MissingCredentials(ShopifyError):
    """Shop domain or access token could not be resolved for an API call."""

    status_code = 500
    code = "missing_credentials"


class UpstreamError(ShopifyError):
    """An Admin API call failed at the transport level or returned non-2xx."""

    status_code = 502
    code = "upstream_error"

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        body: Any = None,
    ) -> None:
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(message)


class MerchantNotConnected(ShopifyError):
    """No active connection exists for the shop."""

    status_code = 404
    code = "merchant_not_connected"
