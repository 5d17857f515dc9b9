"""Admin endpoints: cart analytics, manual recovery and reminder email jobs."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import select

from healios.api.v1.errors import http_error
from healios.core.deps import AdminUser, DBSession, EmailServiceDep, SessionFactory, SweepStateDep
from healios.core.exceptions import CartConvertedError, HealiosError
from healios.core.rate_limit import SWEEP_TRIGGER_LIMIT, limiter
from healios.models.reminder_log import ReminderLog
from healios.schemas.analytics import (
    AbandonedCartsResponse,
    CartStats,
    EmailJobStats,
    ReorderSummary,
)
from healios.schemas.cart import CartResponse
from healios.schemas.recovery import ReminderLogResponse, SweepResult, SweepStatus
from healios.services.cart_analytics_service import CartAnalyticsService
from healios.services.cart_service import CartService, to_response
from healios.services.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

router = APIRouter()

MANUAL_RECOVERY_REF = "manual_recovery"


# --- Carts ---


@router.get("/carts/abandoned", response_model=AbandonedCartsResponse)
async def abandoned_carts(
    _admin: AdminUser,
    db: DBSession,
    hours: int = Query(1, ge=1, le=24 * 30),
) -> AbandonedCartsResponse:
    """Carts abandoned for at least ``hours`` hours, with stats."""
    service = CartAnalyticsService(db)
    carts = await service.get_abandoned_carts(hours)
    stats = await service.get_stats(hours)
    return AbandonedCartsResponse(carts=[to_response(c) for c in carts], stats=stats)


@router.get("/carts/stats", response_model=CartStats)
async def cart_stats(
    _admin: AdminUser,
    db: DBSession,
    hours: int = Query(1, ge=1, le=24 * 30),
) -> CartStats:
    return await CartAnalyticsService(db).get_stats(hours)


@router.get("/carts/analytics", response_model=list[CartStats])
async def cart_analytics(_admin: AdminUser, db: DBSession) -> list[CartStats]:
    """Stats for the 1h, 6h, 24h and 72h windows."""
    return await CartAnalyticsService(db).get_window_breakdown()


@router.post("/carts/{cart_id}/recover", response_model=CartResponse)
async def recover_cart(cart_id: UUID, admin: AdminUser, db: DBSession) -> CartResponse:
    """Mark a cart recovered by hand (e.g. an order taken over the phone)."""
    try:
        cart = await CartService(db).mark_converted(cart_id, MANUAL_RECOVERY_REF)
    except CartConvertedError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, e.message) from e
    except HealiosError as e:
        raise http_error(e) from e
    logger.info("Cart %s manually recovered by %s", cart_id, admin.get("sub"))
    return to_response(cart)


@router.get("/carts/{cart_id}/reminders", response_model=list[ReminderLogResponse])
async def cart_reminders(
    cart_id: UUID,
    _admin: AdminUser,
    db: DBSession,
) -> list[ReminderLogResponse]:
    """Reminder log for one cart, oldest first."""
    stmt = (
        select(ReminderLog)
        .where(ReminderLog.cart_id == cart_id)
        .order_by(ReminderLog.tier_minutes)
    )
    logs = (await db.execute(stmt)).scalars().all()
    return [
        ReminderLogResponse(
            id=log.id,
            cart_id=log.cart_id,
            template=log.template,
            tier_minutes=log.tier_minutes,
            status=log.status.value,
            recipient_consent_state=log.recipient_consent_state.value,
            sent_at=log.sent_at,
            created_at=log.created_at,
        )
        for log in logs
    ]


# --- Email jobs ---


@router.post("/email-jobs/abandoned-carts", response_model=SweepResult)
@limiter.limit(SWEEP_TRIGGER_LIMIT)
async def trigger_reminder_sweep(
    request: Request,  # noqa: ARG001
    admin: AdminUser,
    session_factory: SessionFactory,
    email_service: EmailServiceDep,
    sweep_state: SweepStateDep,
) -> SweepResult:
    """Run the reminder sweep now.

    Safe to call while a scheduled sweep is running; tiers already claimed
    are skipped.
    """
    logger.info("Manual reminder sweep requested by %s", admin.get("sub"))
    scheduler = ReminderScheduler(session_factory, email_service=email_service)
    return await scheduler.run_sweep(sweep_state, trigger="manual")


@router.get("/email-jobs/status", response_model=SweepStatus)
async def sweep_status(_admin: AdminUser, sweep_state: SweepStateDep) -> SweepStatus:
    return SweepStatus(
        in_flight=sweep_state.in_flight,
        last_run_at=sweep_state.last_run_at,
        runs=sweep_state.runs,
        last_result=sweep_state.last_result,
    )


@router.get("/email-jobs/stats", response_model=EmailJobStats)
async def email_job_stats(_admin: AdminUser, db: DBSession) -> EmailJobStats:
    """Sent and blocked reminder counts per template."""
    return await CartAnalyticsService(db).get_email_job_stats()


# --- Reorders ---


@router.get("/reorders/summary", response_model=ReorderSummary)
async def reorder_summary(_admin: AdminUser, db: DBSession) -> ReorderSummary:
    return await CartAnalyticsService(db).get_reorder_summary()
