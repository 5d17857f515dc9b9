"""Security utilities for opaque tokens and signed links."""

import hashlib
import secrets
from typing import Any

import jwt

from healios.core.config import settings


def generate_token(length: int = 32) -> str:
    """Generate a secure random URL-safe token."""
    return secrets.token_urlsafe(length)


def hash_token(token: str) -> str:
    """SHA-256 digest used to store opaque tokens without the plaintext."""
    return hashlib.sha256(token.encode()).hexdigest()


def sign_unsubscribe_token(email: str) -> str:
    """Sign an unsubscribe payload for an email address."""
    payload = {"email": email, "purpose": "unsubscribe"}
    return jwt.encode(payload, settings.secret_key, algorithm="HS256")


def read_unsubscribe_token(token: str) -> str:
    """Return the email address from a signed unsubscribe token.

    Raises:
        jwt.InvalidTokenError: If the signature or payload is invalid
    """
    payload: dict[str, Any] = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
    if payload.get("purpose") != "unsubscribe" or not payload.get("email"):
        raise jwt.InvalidTokenError("Not an unsubscribe token")
    return str(payload["email"])
