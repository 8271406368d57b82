"""SQLAlchemy models."""

from shopify_connect.models.base import Base
from shopify_connect.models.merchant import (
    ConnectionStatus,
    MerchantAccount,
    MerchantConnection,
    PlatformType,
)

__all__ = [
    # Base
    "Base",
    # Merchants
    "MerchantAccount",
    "MerchantConnection",
    "PlatformType",
    "ConnectionStatus",
]
