"""
Redemption Token Manager

Issues the opaque code a customer presents at the salon, exactly once per
subscription, and resolves codes back to subscriptions.
"""

import secrets
from typing import Callable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from salonpass.core.config import settings
from salonpass.core.exceptions import AlreadyIssued, ConflictError, InvalidToken, ResourceNotFound
from salonpass.models.subscription import Subscription


class RedemptionTokenManager:
    """Unique, unguessable, immutable redemption tokens. There is no rotation."""

    MAX_GENERATION_ATTEMPTS = 5

    def __init__(
        self,
        token_factory: Optional[Callable[[], str]] = None,
        token_bytes: int = settings.REDEMPTION_TOKEN_BYTES
    ):
        self.token_factory = token_factory or (lambda: secrets.token_urlsafe(token_bytes))

    async def issue(self, db: AsyncSession, subscription_id: int) -> str:
        """
        Generate and store the subscription's token.

        Raises:
            AlreadyIssued: if the subscription already has a token
            ResourceNotFound: if the subscription does not exist
        """
        subscription = await db.get(Subscription, subscription_id, with_for_update=True)
        if subscription is None:
            raise ResourceNotFound("Subscription", subscription_id)

        if subscription.redemption_token is not None:
            raise AlreadyIssued(subscription_id)

        for _ in range(self.MAX_GENERATION_ATTEMPTS):
            token = self.token_factory()
            if not await self._exists(db, token):
                break
        else:
            raise ConflictError("Could not generate a unique redemption token")

        subscription.redemption_token = token
        await db.flush()

        logger.info(f"Issued redemption token for subscription {subscription_id}")
        return token

    async def resolve(self, db: AsyncSession, token: str) -> int:
        """Map a token to its subscription id, or raise InvalidToken"""
        if not isinstance(token, str) or not token.strip():
            raise InvalidToken("Redemption token is empty")

        subscription_id = await db.scalar(
            select(Subscription.id).where(Subscription.redemption_token == token.strip())
        )
        if subscription_id is None:
            raise InvalidToken()
        return subscription_id

    async def _exists(self, db: AsyncSession, token: str) -> bool:
        found = await db.scalar(select(Subscription.id).where(Subscription.redemption_token == token))
        return found is not None
