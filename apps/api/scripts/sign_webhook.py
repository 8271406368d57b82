"""HMAC signing helper for simulating Shopify requests locally.

Reads input from stdin and prints a signature computed with the
SHOPIFY_CLIENT_SECRET from the environment (or .env file).

Webhook mode (default) signs a raw JSON body and prints the base64 value for
the X-Shopify-Hmac-Sha256 header. OAuth mode (``--oauth``) reads a query
string and prints the hex ``hmac`` parameter for it.

Usage:
    echo -n '{"id": 123}' | uv run python -m scripts.sign_webhook

    # Full curl example against a connection id:
    BODY='{"id":820982911946154508}'
    HMAC=$(echo -n "$BODY" | uv run python -m scripts.sign_webhook)
    curl -X POST http://localhost:8000/api/v1/webhooks/shopify/orders/$CONNECTION_ID \\
      -H "Content-Type: application/json" \\
      -H "X-Shopify-Hmac-Sha256: $HMAC" \\
      -H "X-Shopify-Topic: orders/create" \\
      -H "X-Shopify-Shop-Domain: test-store.myshopify.com" \\
      -d "$BODY"

    # Signing an OAuth callback:
    echo -n 'code=abc&shop=test-store.myshopify.com&state=n1&signature=x' \\
      | uv run python -m scripts.sign_webhook --oauth
"""

import base64
import hashlib
import hmac
import sys
from urllib.parse import parse_qsl

from shopify_connect.core.config import settings
from shopify_connect.integrations.shopify.oauth import build_hmac_message


def sign(body: bytes, secret: str) -> str:
    """Compute base64-encoded HMAC-SHA256 signature."""
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def sign_query(query: str, secret: str) -> str:
    """Compute the hex ``hmac`` value Shopify would attach to a query string."""
    params = dict(parse_qsl(query.strip(), keep_blank_values=True))
    message = build_hmac_message(params)
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def main() -> None:
    secret = settings.shopify_client_secret
    if not secret:
        print("ERROR: SHOPIFY_CLIENT_SECRET is not set in .env", file=sys.stderr)
        sys.exit(1)

    body = sys.stdin.buffer.read()
    if not body:
        print("ERROR: No input received on stdin", file=sys.stderr)
        sys.exit(1)

    if "--oauth" in sys.argv[1:]:
        print(sign_query(body.decode(), secret), end="")
    else:
        print(sign(body, secret), end="")


if __name__ == "__main__":
    main()
