"""Pydantic schemas for cart recovery links and the reminder sweep."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from healios.schemas.cart import CartResponse
from healios.schemas.common import BaseSchema


class RecoveryRedeemResponse(BaseSchema):
    """Cart restored from a recovery link."""

    cart: CartResponse
    checkout_url: str
    session_token: str | None = None


class RecoveryErrorResponse(BaseSchema):
    """Distinct failure outcome so the storefront can explain what happened."""

    detail: str
    reason: str = Field(..., description="not_found | expired | already_used")


class SweepResult(BaseSchema):
    """Counters for a single reminder sweep."""

    trigger: str = "schedule"
    started_at: datetime
    finished_at: datetime | None = None
    scanned: int = 0
    sent: int = 0
    blocked: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class SweepStatus(BaseSchema):
    """Current reminder sweep state for the admin dashboard."""

    in_flight: bool
    last_run_at: datetime | None
    runs: int
    last_result: SweepResult | None = None


class ReminderLogResponse(BaseSchema):
    """A reminder log row."""

    id: UUID
    cart_id: UUID
    template: str
    tier_minutes: int
    status: str
    recipient_consent_state: str
    sent_at: datetime | None
    created_at: datetime
