"""Order history and reorder endpoints for signed-in customers."""

import logging
from uuid import UUID

from fastapi import APIRouter, Query, status

from healios.api.v1.errors import http_error
from healios.core.deps import CurrentUser, DBSession, customer_id_from
from healios.core.exceptions import HealiosError
from healios.schemas.cart import OrderResponse, ReorderResponse
from healios.services.cart_service import to_response
from healios.services.order_service import OrderService, to_order_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    user: CurrentUser,
    db: DBSession,
    limit: int = Query(20, ge=1, le=100),
) -> list[OrderResponse]:
    """Most recent orders first."""
    orders = await OrderService(db).list_orders(customer_id_from(user), limit=limit)
    return [to_order_response(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: UUID, user: CurrentUser, db: DBSession) -> OrderResponse:
    try:
        order = await OrderService(db).get_order(order_id, customer_id=customer_id_from(user))
    except HealiosError as e:
        raise http_error(e) from e
    return to_order_response(order)


@router.post(
    "/{order_id}/reorder",
    response_model=ReorderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reorder(order_id: UUID, user: CurrentUser, db: DBSession) -> ReorderResponse:
    """Copy a past order's items into the customer's cart."""
    try:
        log, cart = await OrderService(db).start_reorder(order_id, customer_id_from(user))
    except HealiosError as e:
        raise http_error(e) from e
    return ReorderResponse(reorder_id=log.id, cart=to_response(cart))
