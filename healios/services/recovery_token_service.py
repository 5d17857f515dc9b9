"""Recovery link issuer: single-use, time-bounded cart recovery tokens."""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healios.core.config import settings
from healios.core.exceptions import (
    RecoveryTokenAlreadyUsed,
    RecoveryTokenExpired,
    RecoveryTokenNotFound,
)
from healios.core.security import generate_token, hash_token
from healios.models.recovery_token import RecoveryToken

logger = logging.getLogger(__name__)


class RecoveryTokenService:
    """Issues and redeems recovery tokens.

    Redemption is a single conditional UPDATE on ``consumed_at``; when it
    touches no row, a follow-up read only classifies the failure. Two
    concurrent redemptions of one token therefore yield exactly one success.
    """

    def __init__(self, db: AsyncSession, ttl: timedelta | None = None) -> None:
        self.db = db
        self.ttl = ttl or timedelta(days=settings.recovery_token_ttl_days)

    async def issue(
        self,
        cart_id: UUID,
        now: datetime | None = None,
        *,
        commit: bool = True,
    ) -> str:
        """Create a token bound to ``cart_id``; returns the plaintext once.

        With ``commit=False`` the row is only flushed and lives or dies with
        the caller's transaction.
        """
        now = now or datetime.now(UTC)
        token = generate_token()
        self.db.add(
            RecoveryToken(
                cart_id=cart_id,
                token_hash=hash_token(token),
                issued_at=now,
                expires_at=now + self.ttl,
            )
        )
        if commit:
            await self.db.commit()
            logger.info("Recovery token issued: cart=%s expires=%s", cart_id, now + self.ttl)
        else:
            await self.db.flush()
        return token

    async def redeem(self, token: str, now: datetime | None = None) -> UUID:
        """Consume a token and return its cart id.

        Raises:
            RecoveryTokenNotFound: unknown token
            RecoveryTokenExpired: past ``expires_at``
            RecoveryTokenAlreadyUsed: consumed earlier, or by a concurrent request
        """
        now = now or datetime.now(UTC)
        digest = hash_token(token)

        claimed = await self.db.execute(
            update(RecoveryToken)
            .where(
                RecoveryToken.token_hash == digest,
                RecoveryToken.consumed_at.is_(None),
                RecoveryToken.expires_at >= now,
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        row = (
            await self.db.execute(
                select(RecoveryToken.cart_id, RecoveryToken.expires_at, RecoveryToken.consumed_at)
                .where(RecoveryToken.token_hash == digest)
            )
        ).one_or_none()

        if claimed.rowcount == 1 and row is not None:  # type: ignore[attr-defined]
            logger.info("Recovery token redeemed: cart=%s", row.cart_id)
            return row.cart_id

        if row is None:
            raise RecoveryTokenNotFound()
        if now > row.expires_at:
            raise RecoveryTokenExpired()
        raise RecoveryTokenAlreadyUsed()
