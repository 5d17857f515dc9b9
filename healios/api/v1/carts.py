"""Cart API endpoints for guests and signed-in customers."""

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status

from healios.api.v1.errors import http_error
from healios.core.deps import CartOwnerDep, CurrentUser, DBSession, customer_id_from
from healios.core.exceptions import HealiosError
from healios.core.rate_limit import CART_WRITE_LIMIT, cart_session_key, limiter
from healios.schemas.cart import (
    CartEmailRequest,
    CartItem,
    CartItemUpdate,
    CartMergeRequest,
    CartResponse,
)
from healios.services.cart_service import CartService, to_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=CartResponse)
async def get_cart(owner: CartOwnerDep, db: DBSession) -> CartResponse:
    """Get the shopper's open cart."""
    cart = await CartService(db).get_current_cart(owner)
    if cart is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No open cart")
    return to_response(cart)


@router.post("/items", response_model=CartResponse)
@limiter.limit(CART_WRITE_LIMIT, key_func=cart_session_key)
async def add_item(
    request: Request,  # noqa: ARG001
    data: CartItem,
    owner: CartOwnerDep,
    db: DBSession,
) -> CartResponse:
    """Add a product, or increase its quantity if it is already in the cart."""
    try:
        cart = await CartService(db).add_item(owner, data)
    except HealiosError as e:
        raise http_error(e) from e
    return to_response(cart)


@router.patch("/items/{product_ref}", response_model=CartResponse)
@limiter.limit(CART_WRITE_LIMIT, key_func=cart_session_key)
async def update_item(
    request: Request,  # noqa: ARG001
    product_ref: str,
    data: CartItemUpdate,
    owner: CartOwnerDep,
    db: DBSession,
) -> CartResponse:
    """Set the quantity of a line."""
    try:
        cart = await CartService(db).update_item(owner, product_ref, data.quantity)
    except HealiosError as e:
        raise http_error(e) from e
    return to_response(cart)


@router.delete("/items/{product_ref}", response_model=CartResponse)
@limiter.limit(CART_WRITE_LIMIT, key_func=cart_session_key)
async def remove_item(
    request: Request,  # noqa: ARG001
    product_ref: str,
    owner: CartOwnerDep,
    db: DBSession,
) -> CartResponse:
    """Remove a line from the cart."""
    try:
        cart = await CartService(db).remove_item(owner, product_ref)
    except HealiosError as e:
        raise http_error(e) from e
    return to_response(cart)


@router.put("/email", response_model=CartResponse)
async def set_email(data: CartEmailRequest, owner: CartOwnerDep, db: DBSession) -> CartResponse:
    """Record the contact email for the open cart."""
    service = CartService(db)
    cart = await service.get_current_cart(owner)
    if cart is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No open cart")
    try:
        cart = await service.set_contact_email(cart, str(data.email))
    except HealiosError as e:
        raise http_error(e) from e
    return to_response(cart)


@router.post("/merge", response_model=CartResponse, responses={204: {"description": "No cart"}})
async def merge_cart(
    data: CartMergeRequest,
    user: CurrentUser,
    db: DBSession,
) -> CartResponse | Response:
    """Fold the guest session's cart into the signed-in customer's cart."""
    customer_id = customer_id_from(user)
    cart = await CartService(db).merge_guest_cart(data.session_token, customer_id)
    if cart is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return to_response(cart)
