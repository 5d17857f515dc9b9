"""Pydantic schemas for API request/response validation."""

from healios.schemas.analytics import (
    AbandonedCartsResponse,
    CartStats,
    EmailJobStats,
    ReorderSummary,
    TemplateCount,
)
from healios.schemas.cart import (
    CartEmailRequest,
    CartItem,
    CartItemUpdate,
    CartMergeRequest,
    CartResponse,
    CheckoutRequest,
    OrderResponse,
    ReorderResponse,
)
from healios.schemas.common import BaseSchema, ErrorResponse, HealthResponse, PaginatedResponse
from healios.schemas.recovery import (
    RecoveryErrorResponse,
    RecoveryRedeemResponse,
    ReminderLogResponse,
    SweepResult,
    SweepStatus,
)

__all__ = [
    # Common
    "BaseSchema",
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
    # Carts
    "CartEmailRequest",
    "CartItem",
    "CartItemUpdate",
    "CartMergeRequest",
    "CartResponse",
    "CheckoutRequest",
    "OrderResponse",
    "ReorderResponse",
    # Recovery
    "RecoveryErrorResponse",
    "RecoveryRedeemResponse",
    "ReminderLogResponse",
    "SweepResult",
    "SweepStatus",
    # Analytics
    "AbandonedCartsResponse",
    "CartStats",
    "EmailJobStats",
    "ReorderSummary",
    "TemplateCount",
]
