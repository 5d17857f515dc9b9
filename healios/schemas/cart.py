"""Pydantic schemas for carts, checkout and orders."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import EmailStr, Field, field_serializer, field_validator

from healios.schemas.common import BaseSchema

MAX_ITEM_QUANTITY = 99


class CartItem(BaseSchema):
    """A validated cart line: product, quantity, and the price seen when added."""

    product_ref: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1, le=MAX_ITEM_QUANTITY)
    unit_price_snapshot: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)

    @field_validator("product_ref")
    @classmethod
    def strip_product_ref(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("product_ref must not be blank")
        return value

    @field_serializer("unit_price_snapshot")
    def serialize_price(self, value: Decimal) -> str:
        return f"{value:.2f}"

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_snapshot * self.quantity


class CartItemUpdate(BaseSchema):
    """Change the quantity of an existing line."""

    quantity: int = Field(..., ge=1, le=MAX_ITEM_QUANTITY)


class CartResponse(BaseSchema):
    """API response for a cart."""

    id: UUID
    customer_id: UUID | None
    is_guest: bool
    items: list[CartItem]
    total: str
    currency: str
    status: str
    reminder_count: int
    last_activity_at: datetime
    last_reminder_at: datetime | None
    converted_order_ref: str | None
    created_at: datetime


class CartMergeRequest(BaseSchema):
    """Merge the guest cart held by a session into the signed-in customer's cart."""

    session_token: str = Field(..., min_length=8, max_length=255)


class CartEmailRequest(BaseSchema):
    """Contact address for a guest cart, captured at checkout start."""

    email: EmailStr


class CheckoutRequest(BaseSchema):
    """Checkout input. Guests must supply an email address."""

    email: EmailStr | None = None


class OrderResponse(BaseSchema):
    """API response for an order."""

    id: UUID
    cart_id: UUID | None
    customer_id: UUID | None
    customer_email: str | None
    items: list[dict[str, Any]]
    total_amount: str
    currency: str
    status: str
    created_at: datetime


class ReorderResponse(BaseSchema):
    """Response for starting a reorder from a past order."""

    reorder_id: UUID
    cart: CartResponse
