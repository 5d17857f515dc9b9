"""ReminderLog model: one row per (cart, reminder tier)."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healios.models.base import Base, UTCDateTime
from healios.models.customer import ConsentState


class ReminderStatus(str, enum.Enum):
    """Outcome recorded for a reminder tier."""

    PENDING = "pending"
    SENT = "sent"
    BLOCKED = "blocked"


class ReminderLog(Base):
    """Idempotency record for abandoned-cart reminders.

    The unique (cart_id, template) constraint is the guard against duplicate
    sends when sweeps overlap. A ``pending`` row is the claim written before
    the send; it becomes ``sent`` on success and is deleted on failure.
    """

    __tablename__ = "reminder_logs"
    __table_args__ = (
        UniqueConstraint("cart_id", "template", name="uq_reminder_logs_cart_template"),
    )

    cart_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    template: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    tier_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    status: Mapped[ReminderStatus] = mapped_column(
        Enum(
            ReminderStatus,
            name="reminder_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ReminderStatus.PENDING,
        nullable=False,
    )
    recipient_consent_state: Mapped[ConsentState] = mapped_column(
        Enum(
            ConsentState,
            name="consent_state",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    recipient_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    email_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ReminderLog cart={self.cart_id} {self.template} ({self.status.value})>"
