"""Pydantic schemas for request/response validation."""

from shopify_connect.schemas.common import ErrorResponse, HealthResponse

__all__ = [
    "HealthResponse",
    "ErrorResponse",
]
