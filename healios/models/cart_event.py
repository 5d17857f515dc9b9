"""CartEvent model for cart pipeline observability."""

import uuid
from typing import Any

from sqlalchemy import JSON, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healios.models.base import Base


class CartEvent(Base):
    """Append-only record of notable cart pipeline events.

    Events include: reminder_sent, reminder_blocked, reminder_failed,
    cart_merged, cart_converted, recovery_link_redeemed.
    """

    __tablename__ = "cart_events"

    cart_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("carts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CartEvent {self.event_type} cart={self.cart_id}>"
