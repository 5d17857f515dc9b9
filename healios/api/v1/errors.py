"""Translate domain errors into HTTP errors."""

from fastapi import HTTPException, status

from healios.core.exceptions import (
    CartConvertedError,
    CartNotFoundError,
    CartValidationError,
    HealiosError,
    OrderNotFoundError,
    RecoveryTokenAlreadyUsed,
    RecoveryTokenExpired,
    RecoveryTokenNotFound,
)

# Checked in order; subclasses before their bases
_STATUS_BY_ERROR: list[tuple[type[HealiosError], int]] = [
    (CartConvertedError, status.HTTP_409_CONFLICT),
    (CartValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (CartNotFoundError, status.HTTP_404_NOT_FOUND),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (RecoveryTokenNotFound, status.HTTP_404_NOT_FOUND),
    (RecoveryTokenExpired, status.HTTP_410_GONE),
    (RecoveryTokenAlreadyUsed, status.HTTP_409_CONFLICT),
]


def status_for(exc: HealiosError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def http_error(exc: HealiosError) -> HTTPException:
    """HTTPException carrying the domain error's message."""
    return HTTPException(status_code=status_for(exc), detail=exc.message)
