"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request

SESSION_HEADER = "X-Session-Token"

# Per-endpoint limits
CART_WRITE_LIMIT = "60/minute"
CHECKOUT_LIMIT = "10/minute"
RECOVERY_LIMIT = "20/minute"
SWEEP_TRIGGER_LIMIT = "6/minute"


def client_ip(request: Request) -> str:
    """Extract the real client IP behind a reverse proxy."""
    return (
        request.headers.get("CF-Connecting-IP")
        or request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        or (request.client.host if request.client else "127.0.0.1")
    )


def cart_session_key(request: Request) -> str:
    """Guests are limited per cart session, everyone else per client IP."""
    token = request.headers.get(SESSION_HEADER)
    if token:
        return f"session:{token}"
    return client_ip(request)


limiter = Limiter(key_func=client_ip)
