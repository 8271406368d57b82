"""Merchant sessions issued after a completed Shopify OAuth flow."""

import time
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shopify_connect.core.config import settings

SESSION_ALGORITHM = "HS256"
SESSION_AUDIENCE = "shopify-connect"

# HTTP Bearer token security scheme (cookie is checked first)
bearer_scheme = HTTPBearer(auto_error=False)


def login_with_shopify(login_request: dict[str, Any]) -> dict[str, Any] | None:
    """Login handler for Shopify embedded-app logins.

    Returns the session principal, or None when the request is not a Shopify
    login so that other handlers can take it.
    """
    if not login_request.get("shopify"):
        return None

    user_id = login_request.get("user_id")
    if not user_id:
        raise ValueError("Shopify login request is missing user_id")

    return {
        "sub": str(user_id),
        "shop": login_request.get("shop", ""),
        "provider": "shopify",
    }


def issue_session_token(principal: dict[str, Any]) -> str:
    """Sign a principal into a session token."""
    now = int(time.time())
    payload = {
        **principal,
        "aud": SESSION_AUDIENCE,
        "iat": now,
        "exp": now + settings.session_ttl_seconds,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=SESSION_ALGORITHM)


def verify_session_token(token: str) -> dict[str, Any]:
    """Verify a session token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[SESSION_ALGORITHM],
            audience=SESSION_AUDIENCE,
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid session: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        return cookie
    if credentials is not None:
        return credentials.credentials
    return None


async def get_current_merchant(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    """Get the logged-in merchant from the session cookie or Bearer header.

    Raises:
        HTTPException: If no session is present or it is invalid
    """
    token = _extract_token(request, credentials)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_session_token(token)


async def get_optional_merchant(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any] | None:
    """Get the logged-in merchant if there is one, otherwise None."""
    token = _extract_token(request, credentials)
    if token is None:
        return None

    try:
        return verify_session_token(token)
    except HTTPException:
        return None


# Type aliases for dependency injection
CurrentMerchant = Annotated[dict[str, Any], Depends(get_current_merchant)]
OptionalMerchant = Annotated[dict[str, Any] | None, Depends(get_optional_merchant)]
