"""Persistence for merchant accounts and their Shopify connections."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shopify_connect.core.encryption import encrypt_token
from shopify_connect.integrations.shopify.oauth import TokenGrant, shop_name_from_domain
from shopify_connect.models.merchant import (
    ConnectionStatus,
    MerchantAccount,
    MerchantConnection,
    PlatformType,
)

logger = logging.getLogger(__name__)


class MerchantStore:
    """Reads and writes merchant records within one database session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find(self, shop_domain: str) -> MerchantConnection | None:
        """Look up a shop's connection by domain."""
        stmt = select(MerchantConnection).where(MerchantConnection.shop_domain == shop_domain)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, connection_id: UUID) -> MerchantConnection | None:
        return await self.session.get(MerchantConnection, connection_id)

    async def get_or_create_account(self, shop_domain: str) -> MerchantAccount:
        """Return the merchant account for a shop, creating it on first login."""
        stmt = select(MerchantAccount).where(MerchantAccount.shop_domain == shop_domain)
        result = await self.session.execute(stmt)
        account = result.scalar_one_or_none()
        if account:
            return account

        account = MerchantAccount(
            shop_domain=shop_domain,
            profile={"shop_name": shop_name_from_domain(shop_domain)},
        )
        self.session.add(account)
        await self.session.flush()
        logger.info("Created merchant account for %s", shop_domain)
        return account

    async def save(self, grant: TokenGrant, account_id: UUID) -> UUID:
        """Insert or update the connection for ``grant.shop_domain``.

        The token and the record are committed together.

        Returns:
            The connection id.
        """
        connection = await self.find(grant.shop_domain)
        now = datetime.now(UTC)

        if connection:
            connection.account_id = account_id
            connection.shop_name = grant.shop_name
            connection.access_token = encrypt_token(grant.access_token)
            connection.scopes = grant.scope
            connection.status = ConnectionStatus.ACTIVE
            connection.installed_at = now
            connection.uninstalled_at = None
            logger.info("Replaced access token for %s", grant.shop_domain)
        else:
            connection = MerchantConnection(
                account_id=account_id,
                platform=PlatformType.SHOPIFY,
                shop_domain=grant.shop_domain,
                shop_name=grant.shop_name,
                access_token=encrypt_token(grant.access_token),
                scopes=grant.scope,
                status=ConnectionStatus.ACTIVE,
                installed_at=now,
            )
            self.session.add(connection)
            logger.info("Stored new connection for %s", grant.shop_domain)

        await self.session.flush()
        connection_id = connection.id
        await self.session.commit()
        return connection_id

    async def connect(self, grant: TokenGrant) -> tuple[UUID, UUID]:
        """Store a grant, creating the shop's account on first login.

        Two first-time callbacks for one shop race on the unique shop_domain
        keys. The loser rolls back and retries once, updating the winner's rows.

        Returns:
            ``(account_id, connection_id)``.
        """
        try:
            return await self._connect(grant)
        except IntegrityError:
            await self.session.rollback()
            logger.info("Concurrent install for %s, retrying as an update", grant.shop_domain)
            return await self._connect(grant)

    async def _connect(self, grant: TokenGrant) -> tuple[UUID, UUID]:
        account = await self.get_or_create_account(grant.shop_domain)
        account_id = account.id
        connection_id = await self.save(grant, account_id)
        return account_id, connection_id

    async def mark_uninstalled(self, connection: MerchantConnection) -> None:
        """Drop the token and flag the connection as uninstalled."""
        connection.access_token = ""
        connection.status = ConnectionStatus.UNINSTALLED
        connection.uninstalled_at = datetime.now(UTC)
        await self.session.commit()
        logger.info("Marked %s as uninstalled", connection.shop_domain)
