"""Cart store: request-scoped cart mutations, merge, conversion and purge."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healios.core.config import settings
from healios.core.exceptions import CartConvertedError, CartNotFoundError, CartValidationError
from healios.models.cart import Cart, CartStatus
from healios.models.cart_event import CartEvent
from healios.models.recovery_token import RecoveryToken
from healios.models.reminder_log import ReminderLog
from healios.schemas.cart import MAX_ITEM_QUANTITY, CartItem, CartResponse
from healios.services.lifecycle import LifecycleThresholds, classify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartOwner:
    """Who a cart belongs to: a signed-in customer or an anonymous session."""

    customer_id: UUID | None = None
    session_token: str | None = None

    def __post_init__(self) -> None:
        if (self.customer_id is None) == (self.session_token is None):
            raise CartValidationError("A cart needs exactly one owner: customer or session")


def load_items(cart: Cart) -> list[CartItem]:
    """Validate the stored item list of a cart."""
    try:
        return [CartItem.model_validate(item) for item in cart.items or []]
    except ValidationError as exc:
        raise CartValidationError(f"Cart {cart.id} holds malformed items") from exc


def dump_items(items: list[CartItem]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


def to_response(
    cart: Cart,
    now: datetime | None = None,
    thresholds: LifecycleThresholds | None = None,
) -> CartResponse:
    """Build the API view of a cart including its derived status."""
    now = now or datetime.now(UTC)
    status = classify(
        cart.last_activity_at,
        cart.converted_order_ref,
        now,
        thresholds or LifecycleThresholds.from_settings(),
    )
    return CartResponse(
        id=cart.id,
        customer_id=cart.customer_id,
        is_guest=cart.is_guest,
        items=load_items(cart),
        total=f"{cart.total:.2f}",
        currency=cart.currency,
        status=status.value,
        reminder_count=cart.reminder_count,
        last_activity_at=cart.last_activity_at,
        last_reminder_at=cart.last_reminder_at,
        converted_order_ref=cart.converted_order_ref,
        created_at=cart.created_at,
    )


class CartService:
    """Holds session-scoped and customer-scoped carts."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_cart(self, cart_id: UUID) -> Cart:
        cart = (await self.db.execute(select(Cart).where(Cart.id == cart_id))).scalar_one_or_none()
        if not cart:
            raise CartNotFoundError(f"Cart {cart_id} not found")
        return cart

    async def get_current_cart(self, owner: CartOwner) -> Cart | None:
        """The owner's open (unconverted) cart, if any."""
        stmt = select(Cart).where(Cart.converted_order_ref.is_(None))
        if owner.customer_id is not None:
            stmt = stmt.where(Cart.customer_id == owner.customer_id)
        else:
            stmt = stmt.where(Cart.session_token == owner.session_token)
        stmt = stmt.order_by(Cart.last_activity_at.desc()).limit(1)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def add_item(self, owner: CartOwner, item: CartItem, now: datetime | None = None) -> Cart:
        """Add a line, or top up the quantity when the product is already in the cart.

        The newest price snapshot replaces the old one.
        """
        now = now or datetime.now(UTC)
        cart = await self.get_current_cart(owner)
        if cart is None:
            cart = Cart(
                customer_id=owner.customer_id,
                session_token=owner.session_token,
                items=[],
                created_at=now,
                last_activity_at=now,
            )
            self.db.add(cart)

        items = load_items(cart)
        for index, existing in enumerate(items):
            if existing.product_ref == item.product_ref:
                quantity = existing.quantity + item.quantity
                if quantity > MAX_ITEM_QUANTITY:
                    raise CartValidationError(
                        f"At most {MAX_ITEM_QUANTITY} of {item.product_ref} per order"
                    )
                items[index] = CartItem(
                    product_ref=item.product_ref,
                    quantity=quantity,
                    unit_price_snapshot=item.unit_price_snapshot,
                )
                break
        else:
            items.append(item)

        self.apply_items(cart, items, now)
        await self.db.commit()
        return cart

    async def update_item(
        self,
        owner: CartOwner,
        product_ref: str,
        quantity: int,
        now: datetime | None = None,
    ) -> Cart:
        if quantity < 1 or quantity > MAX_ITEM_QUANTITY:
            raise CartValidationError(f"Quantity must be between 1 and {MAX_ITEM_QUANTITY}")
        now = now or datetime.now(UTC)
        cart = await self._require_current(owner)
        items = load_items(cart)
        for index, existing in enumerate(items):
            if existing.product_ref == product_ref:
                items[index] = existing.model_copy(update={"quantity": quantity})
                break
        else:
            raise CartValidationError(f"{product_ref} is not in the cart")

        self.apply_items(cart, items, now)
        await self.db.commit()
        return cart

    async def remove_item(
        self,
        owner: CartOwner,
        product_ref: str,
        now: datetime | None = None,
    ) -> Cart:
        now = now or datetime.now(UTC)
        cart = await self._require_current(owner)
        items = load_items(cart)
        remaining = [i for i in items if i.product_ref != product_ref]
        if len(remaining) == len(items):
            raise CartValidationError(f"{product_ref} is not in the cart")

        self.apply_items(cart, remaining, now)
        await self.db.commit()
        return cart

    async def set_contact_email(self, cart: Cart, email: str) -> Cart:
        """Record the contact address a guest gave at checkout."""
        if cart.is_converted:
            raise CartConvertedError()
        cart.email = email
        await self.db.commit()
        return cart

    async def merge_guest_cart(
        self,
        session_token: str,
        customer_id: UUID,
        now: datetime | None = None,
    ) -> Cart | None:
        """Fold the session's guest cart into the customer's cart on login.

        Quantities for the same product are summed (capped), the newest price
        snapshot wins, and ``last_activity_at`` is reset to ``now``. The guest
        cart is deleted. Returns the customer's cart, or None if neither
        cart exists.
        """
        now = now or datetime.now(UTC)
        guest = await self.get_current_cart(CartOwner(session_token=session_token))
        target = await self.get_current_cart(CartOwner(customer_id=customer_id))

        if guest is None:
            return target

        if target is None:
            # Adopt the guest cart as-is
            guest.customer_id = customer_id
            guest.session_token = None
            guest.last_activity_at = now
            self.db.add(
                CartEvent(cart_id=guest.id, event_type="cart_merged", metadata_={"adopted": True})
            )
            await self.db.commit()
            logger.info("Guest cart %s adopted by customer %s", guest.id, customer_id)
            return guest

        merged: dict[str, CartItem] = {i.product_ref: i for i in load_items(target)}
        for item in load_items(guest):
            existing = merged.get(item.product_ref)
            if existing is None:
                merged[item.product_ref] = item
                continue
            newer_price = (
                item.unit_price_snapshot
                if guest.last_activity_at >= target.last_activity_at
                else existing.unit_price_snapshot
            )
            merged[item.product_ref] = CartItem(
                product_ref=item.product_ref,
                quantity=min(existing.quantity + item.quantity, MAX_ITEM_QUANTITY),
                unit_price_snapshot=newer_price,
            )

        target.items = dump_items(list(merged.values()))
        target.last_activity_at = now
        target.reminder_count = max(target.reminder_count, guest.reminder_count)
        if target.email is None:
            target.email = guest.email

        guest_id = guest.id
        await self.db.delete(guest)
        self.db.add(
            CartEvent(
                cart_id=target.id,
                event_type="cart_merged",
                metadata_={"guest_cart_id": str(guest_id), "items": len(merged)},
            )
        )
        await self.db.commit()
        logger.info("Merged guest cart %s into cart %s", guest_id, target.id)
        return target

    async def mark_converted(
        self,
        cart_id: UUID,
        order_ref: str,
        now: datetime | None = None,
    ) -> Cart:
        """Link a cart to its order. Terminal: a cart converts at most once."""
        now = now or datetime.now(UTC)
        result = await self.db.execute(
            update(Cart)
            .where(Cart.id == cart_id, Cart.converted_order_ref.is_(None))
            .values(converted_order_ref=order_ref, converted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            await self.db.rollback()
            cart = await self.get_cart(cart_id)
            raise CartConvertedError(
                f"Cart {cart_id} was already converted ({cart.converted_order_ref})"
            )

        self.db.add(
            CartEvent(cart_id=cart_id, event_type="cart_converted", metadata_={"order": order_ref})
        )
        await self.db.commit()
        logger.info("Cart %s converted: order=%s", cart_id, order_ref)

        cart = await self.get_cart(cart_id)
        await self.db.refresh(cart)
        return cart

    async def purge_expired(
        self,
        now: datetime | None = None,
        retention: timedelta | None = None,
    ) -> int:
        """Delete unconverted carts idle for longer than the retention window."""
        now = now or datetime.now(UTC)
        retention = retention or timedelta(days=settings.cart_retention_days)
        cutoff = now - retention
        expired = select(Cart.id).where(
            Cart.converted_order_ref.is_(None), Cart.last_activity_at < cutoff
        )
        # Dependent rows go first; SQLite does not enforce ON DELETE CASCADE by default
        for model in (RecoveryToken, ReminderLog):
            await self.db.execute(
                delete(model)
                .where(model.cart_id.in_(expired))
                .execution_options(synchronize_session=False)
            )
        result = await self.db.execute(
            delete(Cart)
            .where(Cart.converted_order_ref.is_(None), Cart.last_activity_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        purged = result.rowcount or 0  # type: ignore[attr-defined]
        logger.info("Purged %d carts idle since before %s", purged, cutoff.isoformat())
        return purged

    def status_of(self, cart: Cart, now: datetime | None = None) -> CartStatus:
        return classify(
            cart.last_activity_at,
            cart.converted_order_ref,
            now or datetime.now(UTC),
            LifecycleThresholds.from_settings(),
        )

    async def _require_current(self, owner: CartOwner) -> Cart:
        cart = await self.get_current_cart(owner)
        if cart is None:
            raise CartNotFoundError("No open cart")
        return cart

    @staticmethod
    def apply_items(cart: Cart, items: list[CartItem], now: datetime) -> None:
        """Write items back and advance last activity (never backwards)."""
        cart.items = dump_items(items)
        if cart.last_activity_at is None or now > cart.last_activity_at:
            cart.last_activity_at = now

