"""Customer profile model holding marketing consent."""

import enum

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from healios.models.base import Base


class ConsentState(str, enum.Enum):
    """Marketing email consent recorded on a customer profile."""

    GRANTED = "granted"
    REVOKED = "revoked"
    UNKNOWN = "unknown"


class Customer(Base):
    """Registered storefront customer.

    Only the fields the cart pipeline needs: contact address, greeting
    name, and the consent state that gates reminder emails.
    """

    __tablename__ = "customers"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )
    first_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    marketing_consent: Mapped[ConsentState] = mapped_column(
        Enum(
            ConsentState,
            name="consent_state",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ConsentState.UNKNOWN,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Customer {self.email} ({self.marketing_consent.value})>"
