"""Order and ReorderLog models."""

import enum
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healios.models.base import Base


class OrderStatus(str, enum.Enum):
    """Payment status of an order."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class Order(Base):
    """An order placed from a cart at checkout."""

    __tablename__ = "orders"

    cart_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("carts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    customer_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=0,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="ZAR",
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=OrderStatus.COMPLETED,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.total_amount} {self.currency} ({self.status.value})>"


class ReorderStatus(str, enum.Enum):
    """Progress of a reorder started from a past order."""

    PENDING = "pending"
    COMPLETED = "completed"


class ReorderLog(Base):
    """Tracks a reorder from the pre-filled cart through to the new order."""

    __tablename__ = "reorder_logs"

    original_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
    )
    cart_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("carts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[ReorderStatus] = mapped_column(
        Enum(
            ReorderStatus,
            name="reorder_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ReorderStatus.PENDING,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ReorderLog from={self.original_order_id} ({self.status.value})>"
