"""RecoveryToken model backing single-use cart recovery links."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healios.models.base import Base, UTCDateTime


class RecoveryToken(Base):
    """Single-use, time-bounded credential bound to one cart.

    Only the SHA-256 digest of the token is stored. ``consumed_at`` is set
    exactly once, by a conditional update, on first successful redemption.
    """

    __tablename__ = "recovery_tokens"

    cart_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    issued_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )
    consumed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def __repr__(self) -> str:
        state = "consumed" if self.consumed_at else "open"
        return f"<RecoveryToken cart={self.cart_id} ({state})>"
