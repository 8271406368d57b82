"""Merchant account and Shopify connection models."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopify_connect.models.base import Base, JSONType


class PlatformType(str, enum.Enum):
    """Platforms a connection can point at."""

    SHOPIFY = "shopify"


class ConnectionStatus(str, enum.Enum):
    """Connection lifecycle status."""

    ACTIVE = "active"
    UNINSTALLED = "uninstalled"


class MerchantAccount(Base):
    """Local account for a merchant that logged in through Shopify.

    Stands in for the host application's user record. One account per shop.
    """

    __tablename__ = "merchant_accounts"

    shop_domain: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Flexible profile storage (shop name, plan, etc.)
    profile: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )

    connections: Mapped[list["MerchantConnection"]] = relationship(
        "MerchantConnection",
        back_populates="account",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<MerchantAccount {self.shop_domain}>"


class MerchantConnection(Base):
    """A shop's OAuth connection and its (encrypted) offline access token.

    Exactly one row per shop domain. Re-authorizing replaces the token in place.
    """

    __tablename__ = "merchant_connections"

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("merchant_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    platform: Mapped[PlatformType] = mapped_column(
        Enum(PlatformType, name="platform_type", values_callable=lambda x: [e.value for e in x]),
        default=PlatformType.SHOPIFY,
        nullable=False,
    )
    shop_domain: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    shop_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Fernet-encrypted offline token
    access_token: Mapped[str] = mapped_column(Text, default="", nullable=False)
    scopes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    status: Mapped[ConnectionStatus] = mapped_column(
        Enum(
            ConnectionStatus,
            name="connection_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ConnectionStatus.ACTIVE,
        nullable=False,
    )
    installed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    uninstalled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    account: Mapped["MerchantAccount"] = relationship(
        "MerchantAccount",
        back_populates="connections",
    )

    def __repr__(self) -> str:
        return f"<MerchantConnection {self.platform.value}:{self.shop_domain} ({self.status.value})>"
