"""Cart model tracking storefront carts through the abandonment lifecycle."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healios.models.base import Base, UTCDateTime, utcnow


class CartStatus(str, enum.Enum):
    """Derived lifecycle status of a cart (never stored)."""

    ACTIVE = "active"
    STALE = "stale"
    ABANDONED = "abandoned"
    CONVERTED = "converted"


class Cart(Base):
    """A shopper's cart, owned by a customer or an anonymous session.

    Status is derived from ``last_activity_at`` and ``converted_order_ref``
    by the lifecycle classifier. Once ``converted_order_ref`` is set the cart
    is terminal and excluded from reminder processing.
    """

    __tablename__ = "carts"
    __table_args__ = (
        CheckConstraint(
            "(customer_id IS NULL) <> (session_token IS NULL)",
            name="single_owner",
        ),
    )

    # Owner: exactly one of customer_id / session_token
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    session_token: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    # Contact captured at checkout start (guests)
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Items: [{"product_ref", "quantity", "unit_price_snapshot"}]
    items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="ZAR",
    )

    # Lifecycle
    last_activity_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        index=True,
    )
    converted_order_ref: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    converted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    # Reminder tracking
    reminder_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    last_reminder_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    @property
    def total(self) -> Decimal:
        """Cart value from item price snapshots."""
        return sum(
            (
                Decimal(str(item.get("unit_price_snapshot", "0"))) * int(item.get("quantity", 0))
                for item in self.items or []
            ),
            Decimal("0"),
        )

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None

    @property
    def is_converted(self) -> bool:
        return self.converted_order_ref is not None

    def __repr__(self) -> str:
        owner = self.customer_id or "guest"
        return f"<Cart {self.id} owner={owner} items={len(self.items or [])}>"
