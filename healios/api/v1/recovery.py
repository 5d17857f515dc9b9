"""Public recovery-link and unsubscribe endpoints."""

import logging

import jwt
from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from healios.api.v1.errors import status_for
from healios.core.config import settings
from healios.core.deps import DBSession
from healios.core.exceptions import RecoveryTokenError
from healios.core.rate_limit import RECOVERY_LIMIT, limiter
from healios.core.security import read_unsubscribe_token
from healios.models.cart_event import CartEvent
from healios.schemas.recovery import RecoveryErrorResponse, RecoveryRedeemResponse
from healios.services.cart_service import CartService, to_response
from healios.services.consent_service import ConsentService
from healios.services.recovery_token_service import RecoveryTokenService

logger = logging.getLogger(__name__)

router = APIRouter()

_PAGE = (
    "<html><body style='font-family: sans-serif; text-align: center; padding: 60px;'>"
    "<h1>{title}</h1><p>{body}</p></body></html>"
)


@router.get("/unsubscribe", response_class=HTMLResponse)
async def unsubscribe(db: DBSession, token: str = Query(...)) -> HTMLResponse:
    """Revoke marketing consent via the signed link in a reminder email."""
    try:
        email = read_unsubscribe_token(token)
    except jwt.InvalidTokenError:
        return HTMLResponse(
            _PAGE.format(
                title="Invalid Link",
                body="This unsubscribe link is invalid or has expired.",
            ),
            status_code=400,
        )

    await ConsentService(db).revoke(email)
    return HTMLResponse(
        _PAGE.format(
            title="Unsubscribed",
            body="You won't receive any more cart reminder emails from Healios.",
        )
    )


@router.get(
    "/{token}",
    response_model=RecoveryRedeemResponse,
    responses={
        404: {"model": RecoveryErrorResponse},
        409: {"model": RecoveryErrorResponse},
        410: {"model": RecoveryErrorResponse},
    },
)
@limiter.limit(RECOVERY_LIMIT)
async def redeem_recovery_link(
    request: Request,  # noqa: ARG001
    token: str,
    db: DBSession,
) -> RecoveryRedeemResponse | JSONResponse:
    """Redeem a single-use recovery link and return the restored cart.

    Each failure has its own status and ``reason`` so the storefront can
    tell an unknown link from an expired or already used one.
    """
    try:
        cart_id = await RecoveryTokenService(db).redeem(token)
    except RecoveryTokenError as e:
        logger.info("Recovery link rejected: reason=%s", e.code)
        body = RecoveryErrorResponse(detail=e.message, reason=e.code)
        return JSONResponse(status_code=status_for(e), content=body.model_dump())

    cart = await CartService(db).get_cart(cart_id)
    db.add(CartEvent(cart_id=cart.id, event_type="recovery_link_redeemed", metadata_={}))
    await db.commit()

    return RecoveryRedeemResponse(
        cart=to_response(cart),
        checkout_url=f"{settings.frontend_url}/checkout?cart={cart.id}",
        session_token=cart.session_token,
    )
