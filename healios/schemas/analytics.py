"""Pydantic schemas for admin cart and reorder analytics."""

from healios.schemas.cart import CartResponse
from healios.schemas.common import BaseSchema


class CartStats(BaseSchema):
    """Aggregate cart statistics for one time window."""

    window_hours: int
    total_carts: int
    active: int
    stale: int
    abandoned: int
    converted: int
    abandoned_value: float
    average_abandoned_value: float
    guest_abandoned: int
    registered_abandoned: int
    conversion_rate: float
    reminders_sent: int
    reminders_blocked: int


class AbandonedCartsResponse(BaseSchema):
    """Abandoned carts in a window together with their stats."""

    carts: list[CartResponse]
    stats: CartStats


class TemplateCount(BaseSchema):
    """Reminder log counts for one template."""

    template: str
    sent: int
    blocked: int


class EmailJobStats(BaseSchema):
    """Reminder email counters for the email jobs page."""

    abandoned_now: int
    templates: list[TemplateCount]
    total_sent: int
    total_blocked: int
    failures: int


class ReorderSummary(BaseSchema):
    """Summary of reorders started from past orders."""

    total_reorders: int
    completed_reorders: int
    completion_rate: float
    total_revenue: float
