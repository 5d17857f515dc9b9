"""Marketing consent lookup and revocation for cart owners."""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healios.models.cart import Cart
from healios.models.customer import ConsentState, Customer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    """Resolved contact details for a cart owner."""

    email: str | None
    first_name: str | None
    consent: ConsentState


class ConsentService:
    """Answers whether a cart's owner may receive reminder emails."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_recipient(self, cart: Cart) -> Recipient:
        """Resolve email and consent for a cart's owner.

        Registered carts use the customer profile. Guest carts fall back to the
        checkout email, matched against a profile when one exists; an unmatched
        guest has unknown consent.
        """
        customer: Customer | None = None
        if cart.customer_id is not None:
            customer = (
                await self.db.execute(select(Customer).where(Customer.id == cart.customer_id))
            ).scalar_one_or_none()
        elif cart.email:
            customer = (
                await self.db.execute(select(Customer).where(Customer.email == cart.email.lower()))
            ).scalar_one_or_none()

        if customer is None:
            return Recipient(email=cart.email, first_name=None, consent=ConsentState.UNKNOWN)
        return Recipient(
            email=customer.email,
            first_name=customer.first_name,
            consent=customer.marketing_consent,
        )

    async def get_consent_state(self, cart: Cart) -> ConsentState:
        return (await self.get_recipient(cart)).consent

    async def revoke(self, email: str) -> bool:
        """Revoke marketing consent for an address. Returns False if unknown."""
        result = await self.db.execute(
            update(Customer)
            .where(Customer.email == email.lower())
            .values(marketing_consent=ConsentState.REVOKED)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        revoked = bool(result.rowcount)  # type: ignore[attr-defined]
        if revoked:
            logger.info("Marketing consent revoked for %s", email)
        return revoked
