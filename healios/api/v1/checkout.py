"""Checkout endpoint: turns the open cart into an order."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from healios.api.v1.errors import http_error
from healios.core.deps import CartOwnerDep, DBSession
from healios.core.exceptions import HealiosError
from healios.core.rate_limit import CHECKOUT_LIMIT, cart_session_key, limiter
from healios.schemas.cart import CheckoutRequest, OrderResponse
from healios.services.cart_service import CartService
from healios.services.order_service import OrderService, to_order_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(CHECKOUT_LIMIT, key_func=cart_session_key)
async def checkout(
    request: Request,  # noqa: ARG001
    data: CheckoutRequest,
    owner: CartOwnerDep,
    db: DBSession,
) -> OrderResponse:
    """Place an order for the open cart. Payment capture happens elsewhere."""
    carts = CartService(db)
    cart = await carts.get_current_cart(owner)
    if cart is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No open cart")

    email = str(data.email) if data.email else None
    if cart.is_guest and not (email or cart.email):
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "An email address is required for guest checkout",
        )

    try:
        if email and cart.is_guest:
            await carts.set_contact_email(cart, email)
        order = await OrderService(db).place_order(cart, email=email)
    except HealiosError as e:
        raise http_error(e) from e
    return to_order_response(order)
