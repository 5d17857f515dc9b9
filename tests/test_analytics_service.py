"""Tests for admin cart analytics."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from healios.models.cart import Cart
from healios.models.cart_event import CartEvent
from healios.models.customer import ConsentState, Customer
from healios.models.order import Order, ReorderLog, ReorderStatus
from healios.models.reminder_log import ReminderLog, ReminderStatus
from healios.services.cart_analytics_service import DEFAULT_WINDOWS, CartAnalyticsService

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def carts(
    db_session: AsyncSession,
    customer: Customer,
    customer_factory: Callable[..., Any],
    cart_factory: Callable[..., Any],
) -> dict[str, Cart]:
    """One cart in each state, a cart idle for two days and an emptied cart."""
    other = await customer_factory()
    created = {
        "active": await cart_factory(
            customer_id=customer.id, last_activity_at=NOW - timedelta(minutes=5)
        ),
        "stale": await cart_factory(last_activity_at=NOW - timedelta(minutes=30)),
        "converted": await cart_factory(
            last_activity_at=NOW - timedelta(minutes=60), converted_order_ref="order-1"
        ),
        "abandoned": await cart_factory(
            customer_id=other.id, last_activity_at=NOW - timedelta(minutes=90)
        ),
        "abandoned_guest": await cart_factory(
            email="guest@thehealios.com", last_activity_at=NOW - timedelta(minutes=100)
        ),
        "old": await cart_factory(last_activity_at=NOW - timedelta(hours=48)),
        "emptied": await cart_factory(items=[], last_activity_at=NOW - timedelta(minutes=120)),
    }

    for cart_key, template, status in (
        ("abandoned", "abandoned_cart_1h", ReminderStatus.SENT),
        ("abandoned_guest", "abandoned_cart_1h", ReminderStatus.BLOCKED),
        ("old", "abandoned_cart_24h", ReminderStatus.SENT),
    ):
        db_session.add(
            ReminderLog(
                cart_id=created[cart_key].id,
                template=template,
                tier_minutes=60 if template.endswith("1h") else 1440,
                status=status,
                recipient_consent_state=ConsentState.GRANTED,
                created_at=NOW - timedelta(minutes=10),
            )
        )
    db_session.add(CartEvent(cart_id=created["abandoned"].id, event_type="reminder_failed"))
    await db_session.commit()
    return created


class TestCartStats:
    @pytest.mark.asyncio
    async def test_one_hour_window(self, db_session: AsyncSession, carts: dict[str, Cart]) -> None:
        stats = await CartAnalyticsService(db_session).get_stats(1, now=NOW)

        assert stats.window_hours == 1
        assert stats.active == 1
        assert stats.stale == 1
        assert stats.abandoned == 3
        assert stats.converted == 1
        assert stats.total_carts == 6
        assert stats.abandoned_value == 2481.0
        assert stats.average_abandoned_value == 827.0
        assert stats.guest_abandoned == 2
        assert stats.registered_abandoned == 1
        assert stats.conversion_rate == 0.25
        assert stats.reminders_sent == 2
        assert stats.reminders_blocked == 1

    @pytest.mark.asyncio
    async def test_longer_window_keeps_long_idle_carts(
        self, db_session: AsyncSession, carts: dict[str, Cart]
    ) -> None:
        stats = await CartAnalyticsService(db_session).get_stats(24, now=NOW)

        assert stats.abandoned == 1
        assert stats.guest_abandoned == 1
        assert stats.converted == 1
        assert stats.conversion_rate == 0.5
        assert stats.active == 1
        assert stats.stale == 1

    @pytest.mark.asyncio
    async def test_conversions_counted_by_conversion_time(
        self, db_session: AsyncSession, cart_factory: Callable[..., Any]
    ) -> None:
        cart = await cart_factory(
            last_activity_at=NOW - timedelta(hours=30), converted_order_ref="order-9"
        )
        cart.converted_at = NOW - timedelta(minutes=20)
        await db_session.commit()

        stats = await CartAnalyticsService(db_session).get_stats(1, now=NOW)

        assert stats.converted == 1
        assert stats.abandoned == 0
        assert stats.conversion_rate == 1.0

    @pytest.mark.asyncio
    async def test_empty_store(self, db_session: AsyncSession) -> None:
        stats = await CartAnalyticsService(db_session).get_stats(24, now=NOW)

        assert stats.total_carts == 0
        assert stats.conversion_rate == 0.0
        assert stats.average_abandoned_value == 0.0

    @pytest.mark.asyncio
    async def test_window_breakdown(self, db_session: AsyncSession, carts: dict[str, Cart]) -> None:
        breakdown = await CartAnalyticsService(db_session).get_window_breakdown(now=NOW)

        assert [s.window_hours for s in breakdown] == list(DEFAULT_WINDOWS)
        assert [s.abandoned for s in breakdown] == [3, 1, 1, 0]


class TestAbandonedCarts:
    @pytest.mark.asyncio
    async def test_idle_at_least_window_most_recent_first(
        self, db_session: AsyncSession, carts: dict[str, Cart]
    ) -> None:
        service = CartAnalyticsService(db_session)

        found = await service.get_abandoned_carts(1, now=NOW)
        assert [c.id for c in found] == [
            carts["abandoned"].id,
            carts["abandoned_guest"].id,
            carts["old"].id,
        ]

        found = await service.get_abandoned_carts(24, now=NOW)
        assert [c.id for c in found] == [carts["old"].id]

    @pytest.mark.asyncio
    async def test_empty_carts_are_not_abandoned(
        self, db_session: AsyncSession, carts: dict[str, Cart]
    ) -> None:
        found = await CartAnalyticsService(db_session).get_abandoned_carts(1, now=NOW)

        assert carts["emptied"].id not in {c.id for c in found}


class TestEmailJobStats:
    @pytest.mark.asyncio
    async def test_template_counts(self, db_session: AsyncSession, carts: dict[str, Cart]) -> None:
        stats = await CartAnalyticsService(db_session).get_email_job_stats(now=NOW)

        assert stats.abandoned_now == 3
        by_template = {t.template: t for t in stats.templates}
        assert by_template["abandoned_cart_1h"].sent == 1
        assert by_template["abandoned_cart_1h"].blocked == 1
        assert by_template["abandoned_cart_24h"].sent == 1
        assert stats.total_sent == 2
        assert stats.total_blocked == 1
        assert stats.failures == 1


class TestReorderSummary:
    @pytest.mark.asyncio
    async def test_completion_rate_and_revenue(
        self,
        db_session: AsyncSession,
        customer: Customer,
        order_factory: Callable[..., Any],
    ) -> None:
        original: Order = await order_factory(customer_id=customer.id)
        repeat: Order = await order_factory(customer_id=customer.id)
        db_session.add_all(
            [
                ReorderLog(
                    original_order_id=original.id,
                    customer_id=customer.id,
                    order_id=repeat.id,
                    status=ReorderStatus.COMPLETED,
                ),
                ReorderLog(
                    original_order_id=original.id,
                    customer_id=customer.id,
                    status=ReorderStatus.PENDING,
                ),
            ]
        )
        await db_session.commit()

        summary = await CartAnalyticsService(db_session).get_reorder_summary()

        assert summary.total_reorders == 2
        assert summary.completed_reorders == 1
        assert summary.completion_rate == 50.0
        assert summary.total_revenue == 827.0

    @pytest.mark.asyncio
    async def test_no_reorders(self, db_session: AsyncSession) -> None:
        summary = await CartAnalyticsService(db_session).get_reorder_summary()

        assert summary.total_reorders == 0
        assert summary.completion_rate == 0.0
