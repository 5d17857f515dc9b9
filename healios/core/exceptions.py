"""Domain errors raised by services and translated to HTTP responses by routes."""


class HealiosError(Exception):
    """Base class for domain errors."""

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code)


class CartValidationError(HealiosError):
    """Malformed cart or item input."""

    code = "invalid_cart"


class CartNotFoundError(HealiosError):
    """Cart does not exist."""

    code = "cart_not_found"


class CartConvertedError(CartValidationError):
    """Cart has already been checked out."""

    code = "cart_converted"


class OrderNotFoundError(HealiosError):
    """Order does not exist."""

    code = "order_not_found"


class RecoveryTokenError(HealiosError):
    """Recovery link could not be redeemed."""

    code = "invalid_token"


class RecoveryTokenNotFound(RecoveryTokenError):
    """Recovery link is not recognised."""

    code = "not_found"


class RecoveryTokenExpired(RecoveryTokenError):
    """Recovery link has expired."""

    code = "expired"


class RecoveryTokenAlreadyUsed(RecoveryTokenError):
    """Recovery link has already been used."""

    code = "already_used"
