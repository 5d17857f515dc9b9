"""Admin analytics over carts, reminders and reorders."""

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from healios.core.config import Settings, settings
from healios.models.cart import Cart, CartStatus
from healios.models.cart_event import CartEvent
from healios.models.order import Order, ReorderLog, ReorderStatus
from healios.models.reminder_log import ReminderLog, ReminderStatus
from healios.schemas.analytics import CartStats, EmailJobStats, ReorderSummary, TemplateCount
from healios.services.lifecycle import LifecycleThresholds, classify

logger = logging.getLogger(__name__)

DEFAULT_WINDOWS = (1, 6, 24, 72)


class CartAnalyticsService:
    """Read-only reporting for the admin dashboard.

    A window of ``hours`` reports the carts that have been abandoned for at
    least that long (unconverted, holding items, idle ``hours`` or more and
    past the abandoned threshold) next to the carts converted within the last
    ``hours``. Active and stale counts are a snapshot of live carts and do not
    depend on the window.
    """

    def __init__(self, db: AsyncSession, config: Settings = settings) -> None:
        self.db = db
        self.config = config
        self.thresholds = LifecycleThresholds.from_settings(config)

    async def _idle_carts(self, cutoff: datetime) -> list[Cart]:
        """Unconverted carts with items, idle since ``cutoff`` or earlier."""
        stmt = (
            select(Cart)
            .where(Cart.converted_order_ref.is_(None), Cart.last_activity_at <= cutoff)
            .order_by(Cart.last_activity_at.desc())
        )
        carts = (await self.db.execute(stmt)).scalars().all()
        return [c for c in carts if c.items]

    async def get_abandoned_carts(self, hours: int = 1, now: datetime | None = None) -> list[Cart]:
        """Carts abandoned for at least ``hours``, most recently active first."""
        now = now or datetime.now(UTC)
        cutoff = min(now - timedelta(hours=hours), now - self.thresholds.abandoned)
        return await self._idle_carts(cutoff)

    async def _live_counts(self, now: datetime) -> dict[CartStatus, int]:
        stmt = select(Cart).where(
            Cart.converted_order_ref.is_(None),
            Cart.last_activity_at > now - self.thresholds.abandoned,
        )
        counts = {CartStatus.ACTIVE: 0, CartStatus.STALE: 0}
        for cart in (await self.db.execute(stmt)).scalars().all():
            if not cart.items:
                continue
            status = classify(cart.last_activity_at, None, now, self.thresholds)
            if status in counts:
                counts[status] += 1
        return counts

    async def get_stats(self, hours: int = 1, now: datetime | None = None) -> CartStats:
        """Abandoned value, guest split and conversion rate for one window."""
        now = now or datetime.now(UTC)
        since = now - timedelta(hours=hours)

        abandoned_carts = await self.get_abandoned_carts(hours, now)
        abandoned = len(abandoned_carts)
        abandoned_value = sum((c.total for c in abandoned_carts), Decimal("0"))
        guest_abandoned = sum(1 for c in abandoned_carts if c.is_guest)

        converted = (
            await self.db.execute(
                select(func.count()).where(
                    Cart.converted_at.is_not(None),
                    Cart.converted_at >= since,
                    Cart.converted_at <= now,
                )
            )
        ).scalar() or 0
        live = await self._live_counts(now)

        decided = converted + abandoned
        conversion_rate = converted / decided if decided > 0 else 0.0
        average = abandoned_value / abandoned if abandoned > 0 else Decimal("0")

        reminder_stmt = select(
            func.count(case((ReminderLog.status == ReminderStatus.SENT, 1), else_=None)).label(
                "sent"
            ),
            func.count(case((ReminderLog.status == ReminderStatus.BLOCKED, 1), else_=None)).label(
                "blocked"
            ),
        ).where(ReminderLog.created_at >= since)
        reminder_row = (await self.db.execute(reminder_stmt)).one()

        return CartStats(
            window_hours=hours,
            total_carts=live[CartStatus.ACTIVE] + live[CartStatus.STALE] + abandoned + converted,
            active=live[CartStatus.ACTIVE],
            stale=live[CartStatus.STALE],
            abandoned=abandoned,
            converted=converted,
            abandoned_value=round(float(abandoned_value), 2),
            average_abandoned_value=round(float(average), 2),
            guest_abandoned=guest_abandoned,
            registered_abandoned=abandoned - guest_abandoned,
            conversion_rate=round(conversion_rate, 3),
            reminders_sent=reminder_row.sent or 0,
            reminders_blocked=reminder_row.blocked or 0,
        )

    async def get_window_breakdown(
        self,
        windows: tuple[int, ...] = DEFAULT_WINDOWS,
        now: datetime | None = None,
    ) -> list[CartStats]:
        now = now or datetime.now(UTC)
        return [await self.get_stats(hours, now) for hours in windows]

    async def get_email_job_stats(self, now: datetime | None = None) -> EmailJobStats:
        """Reminder counters per template for the email jobs page."""
        now = now or datetime.now(UTC)
        abandoned_now = len(await self._idle_carts(now - self.thresholds.abandoned))

        template_stmt = (
            select(
                ReminderLog.template,
                func.count(
                    case((ReminderLog.status == ReminderStatus.SENT, 1), else_=None)
                ).label("sent"),
                func.count(
                    case((ReminderLog.status == ReminderStatus.BLOCKED, 1), else_=None)
                ).label("blocked"),
            )
            .group_by(ReminderLog.template)
            .order_by(ReminderLog.template)
        )
        rows = (await self.db.execute(template_stmt)).all()
        templates = [
            TemplateCount(template=row.template, sent=row.sent, blocked=row.blocked)
            for row in rows
        ]

        failures = (
            await self.db.execute(
                select(func.count()).where(CartEvent.event_type == "reminder_failed")
            )
        ).scalar() or 0

        return EmailJobStats(
            abandoned_now=abandoned_now,
            templates=templates,
            total_sent=sum(t.sent for t in templates),
            total_blocked=sum(t.blocked for t in templates),
            failures=failures,
        )

    async def get_reorder_summary(self) -> ReorderSummary:
        """Reorder funnel: started, completed and the revenue they brought in."""
        stmt = select(
            func.count(ReorderLog.id).label("total"),
            func.count(
                case((ReorderLog.status == ReorderStatus.COMPLETED, 1), else_=None)
            ).label("completed"),
            func.coalesce(func.sum(Order.total_amount), 0).label("revenue"),
        ).select_from(ReorderLog).outerjoin(Order, Order.id == ReorderLog.order_id)
        row = (await self.db.execute(stmt)).one()

        total = row.total or 0
        completed = row.completed or 0
        rate = (completed / total) * 100 if total > 0 else 0.0

        return ReorderSummary(
            total_reorders=total,
            completed_reorders=completed,
            completion_rate=round(rate, 1),
            total_revenue=round(float(row.revenue or 0), 2),
        )
