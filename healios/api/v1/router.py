"""API v1 router combining all route modules."""

from fastapi import APIRouter

from healios.api.v1 import admin, carts, checkout, health, orders, recovery

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Carts (guest via X-Session-Token, or bearer token)
api_router.include_router(
    carts.router,
    prefix="/carts",
    tags=["carts"],
)

# Checkout
api_router.include_router(
    checkout.router,
    prefix="/checkout",
    tags=["checkout"],
)

# Order history and reorders (requires auth)
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["orders"],
)

# Recovery links and unsubscribe (public, linked from emails)
api_router.include_router(
    recovery.router,
    prefix="/recovery",
    tags=["recovery"],
)

# Admin dashboard (admin role required)
api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
)
