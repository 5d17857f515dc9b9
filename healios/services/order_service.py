"""Checkout and reorder service."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healios.core.exceptions import CartConvertedError, CartValidationError, OrderNotFoundError
from healios.models.cart import Cart
from healios.models.customer import Customer
from healios.models.order import Order, OrderStatus, ReorderLog, ReorderStatus
from healios.schemas.cart import MAX_ITEM_QUANTITY, CartItem, OrderResponse
from healios.services.cart_service import CartOwner, CartService, load_items

logger = logging.getLogger(__name__)


def to_order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        cart_id=order.cart_id,
        customer_id=order.customer_id,
        customer_email=order.customer_email,
        items=order.items,
        total_amount=f"{order.total_amount:.2f}",
        currency=order.currency,
        status=order.status.value,
        created_at=order.created_at,
    )


class OrderService:
    """Turns carts into orders and orders back into carts."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.carts = CartService(db)

    async def get_order(self, order_id: UUID, customer_id: UUID | None = None) -> Order:
        """Fetch an order, optionally scoped to its customer."""
        stmt = select(Order).where(Order.id == order_id)
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        order = (await self.db.execute(stmt)).scalar_one_or_none()
        if not order:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def list_orders(self, customer_id: UUID, limit: int = 20) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def place_order(
        self,
        cart: Cart,
        email: str | None = None,
        now: datetime | None = None,
    ) -> Order:
        """Create an order from the cart and mark the cart converted.

        A pending reorder tied to the cart is completed in the same commit.
        """
        now = now or datetime.now(UTC)
        if cart.is_converted:
            raise CartConvertedError()
        items = load_items(cart)
        if not items:
            raise CartValidationError("Cart is empty")

        customer_email = email or cart.email
        if customer_email is None and cart.customer_id is not None:
            customer_email = (
                await self.db.execute(
                    select(Customer.email).where(Customer.id == cart.customer_id)
                )
            ).scalar_one_or_none()

        order = Order(
            cart_id=cart.id,
            customer_id=cart.customer_id,
            customer_email=customer_email,
            items=[item.model_dump(mode="json") for item in items],
            total_amount=cart.total,
            currency=cart.currency,
            status=OrderStatus.COMPLETED,
        )
        self.db.add(order)
        await self.db.flush()
        order_id = order.id

        await self.db.execute(
            update(ReorderLog)
            .where(ReorderLog.cart_id == cart.id, ReorderLog.status == ReorderStatus.PENDING)
            .values(status=ReorderStatus.COMPLETED, order_id=order_id)
            .execution_options(synchronize_session=False)
        )

        # Commits the order together with the conversion, or rolls both back
        await self.carts.mark_converted(cart.id, str(order_id), now=now)
        logger.info(
            "Order placed: order=%s cart=%s total=%s", order_id, cart.id, order.total_amount
        )
        return order

    async def start_reorder(
        self,
        order_id: UUID,
        customer_id: UUID,
        now: datetime | None = None,
    ) -> tuple[ReorderLog, Cart]:
        """Pre-fill the customer's cart from a past order.

        Items go into the customer's open cart (created if needed) at the
        prices recorded on the order; quantities are capped per line.
        """
        now = now or datetime.now(UTC)
        order = await self.get_order(order_id, customer_id=customer_id)

        cart = await self.carts.get_current_cart(CartOwner(customer_id=customer_id))
        if cart is None:
            cart = Cart(
                customer_id=customer_id,
                items=[],
                currency=order.currency,
                last_activity_at=now,
            )
            self.db.add(cart)
            await self.db.flush()

        merged: dict[str, CartItem] = {i.product_ref: i for i in load_items(cart)}
        for raw in order.items:
            item = CartItem.model_validate(raw)
            existing = merged.get(item.product_ref)
            quantity = item.quantity + (existing.quantity if existing else 0)
            merged[item.product_ref] = CartItem(
                product_ref=item.product_ref,
                quantity=min(quantity, MAX_ITEM_QUANTITY),
                unit_price_snapshot=item.unit_price_snapshot,
            )
        CartService.apply_items(cart, list(merged.values()), now)

        reorder = ReorderLog(
            original_order_id=order.id,
            customer_id=customer_id,
            cart_id=cart.id,
            status=ReorderStatus.PENDING,
        )
        self.db.add(reorder)
        await self.db.commit()
        logger.info("Reorder started: order=%s cart=%s", order.id, cart.id)
        return reorder, cart
