"""Tests for the reminder sweep.

Covers:
- Tier timeline (1h then 24h) and the reminder cap
- Idempotency across repeated and overlapping sweeps
- Consent gating and guest recipients
- Converted carts, age limit and production address exclusion
- Failure handling: retry on the next sweep, per-cart isolation, stale claims
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healios.core.config import settings
from healios.models.cart import Cart
from healios.models.cart_event import CartEvent
from healios.models.customer import ConsentState, Customer
from healios.models.recovery_token import RecoveryToken
from healios.models.reminder_log import ReminderLog, ReminderStatus
from healios.services.email_service import SendResult
from healios.services.reminder_scheduler import (
    ReminderScheduler,
    SweepState,
    email_is_excluded,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    email_service: MagicMock,
) -> ReminderScheduler:
    return ReminderScheduler(session_factory, email_service=email_service)


async def _logs(db: AsyncSession) -> list[ReminderLog]:
    stmt = select(ReminderLog).order_by(ReminderLog.tier_minutes)
    return list((await db.execute(stmt)).scalars().all())


async def _events(db: AsyncSession, event_type: str) -> list[CartEvent]:
    stmt = select(CartEvent).where(CartEvent.event_type == event_type)
    return list((await db.execute(stmt)).scalars().all())


async def _reload(db: AsyncSession, cart: Cart) -> Cart:
    await db.refresh(cart)
    return cart


class TestTierTimeline:
    """Reminders at 1h and 24h after last activity, never more than the cap."""

    @pytest.mark.asyncio
    async def test_one_hour_then_twenty_four_hours(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        cart = await cart_factory(customer_id=customer.id, last_activity_at=T0)
        state = SweepState()

        first = await scheduler.run_sweep(state, now=T0 + timedelta(minutes=61))
        assert first.sent == 1
        cart = await _reload(db_session, cart)
        assert cart.reminder_count == 1
        assert cart.last_reminder_at == T0 + timedelta(minutes=61)

        second = await scheduler.run_sweep(state, now=T0 + timedelta(minutes=1441))
        assert second.sent == 1
        cart = await _reload(db_session, cart)
        assert cart.reminder_count == 2

        logs = await _logs(db_session)
        assert [(log.template, log.status) for log in logs] == [
            ("abandoned_cart_1h", ReminderStatus.SENT),
            ("abandoned_cart_24h", ReminderStatus.SENT),
        ]
        assert all(log.recipient_consent_state == ConsentState.GRANTED for log in logs)
        assert email_service.send_email.await_count == 2
        assert len(await _events(db_session, "reminder_sent")) == 2

        third = await scheduler.run_sweep(state, now=T0 + timedelta(minutes=1500))
        assert third.scanned == 0
        assert email_service.send_email.await_count == 2
        assert state.runs == 3

    @pytest.mark.asyncio
    async def test_nothing_before_abandoned_threshold(
        self,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        await cart_factory(customer_id=customer.id, last_activity_at=T0)

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(minutes=59))

        assert result.scanned == 0
        email_service.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_capped_cart_not_scanned(
        self,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        await cart_factory(customer_id=customer.id, last_activity_at=T0, reminder_count=2)

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(hours=30))

        assert result.scanned == 0
        email_service.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_carts_past_max_age_ignored(
        self,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
    ) -> None:
        await cart_factory(customer_id=customer.id, last_activity_at=T0)

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(days=4))

        assert result.scanned == 0

    @pytest.mark.asyncio
    async def test_converted_cart_never_reminded(
        self,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        await cart_factory(
            customer_id=customer.id, last_activity_at=T0, converted_order_ref="order-1"
        )

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(minutes=61))

        assert result.scanned == 0
        email_service.send_email.assert_not_called()


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_repeat_sweep_skips_sent_tier(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        await cart_factory(customer_id=customer.id, last_activity_at=T0)
        now = T0 + timedelta(minutes=61)

        first = await scheduler.run_sweep(SweepState(), now=now)
        second = await scheduler.run_sweep(SweepState(), now=now + timedelta(minutes=5))

        assert first.sent == 1
        assert second.sent == 0
        assert second.skipped == 1
        assert email_service.send_email.await_count == 1
        assert len(await _logs(db_session)) == 1

    @pytest.mark.asyncio
    async def test_overlapping_sweeps_send_once(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        """A scheduled and a manual sweep racing over the same carts."""
        carts = [
            await cart_factory(customer_id=customer.id, last_activity_at=T0),
            await cart_factory(
                session_token="session-a", email=customer.email, last_activity_at=T0
            ),
        ]
        now = T0 + timedelta(minutes=61)
        state = SweepState()

        results = await asyncio.gather(
            ReminderScheduler(session_factory, email_service=email_service).run_sweep(
                state, now=now, trigger="schedule"
            ),
            ReminderScheduler(session_factory, email_service=email_service).run_sweep(
                state, now=now, trigger="manual"
            ),
        )

        assert sum(r.sent for r in results) == len(carts)
        assert email_service.send_email.await_count == len(carts)
        for cart in carts:
            cart = await _reload(db_session, cart)
            assert cart.reminder_count == 1
        assert state.runs == 2
        assert not state.in_flight

    @pytest.mark.asyncio
    async def test_emptied_cart_keeps_its_tiers(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        cart = await cart_factory(customer_id=customer.id, items=[], last_activity_at=T0)

        empty = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(minutes=61))

        assert empty.sent == 0
        assert empty.blocked == 0
        assert await _logs(db_session) == []
        email_service.send_email.assert_not_called()

        refilled_at = T0 + timedelta(minutes=70)
        cart.items = [
            {"product_ref": "omega-3-fish-oil", "quantity": 1, "unit_price_snapshot": "299.00"}
        ]
        cart.last_activity_at = refilled_at
        await db_session.commit()

        result = await scheduler.run_sweep(SweepState(), now=refilled_at + timedelta(minutes=61))

        assert result.sent == 1
        logs = await _logs(db_session)
        assert [(log.template, log.status) for log in logs] == [
            ("abandoned_cart_1h", ReminderStatus.SENT)
        ]


class TestConsent:
    @pytest.mark.asyncio
    async def test_revoked_consent_blocks(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer_factory: Callable[..., Any],
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        revoked = await customer_factory(consent=ConsentState.REVOKED)
        cart = await cart_factory(customer_id=revoked.id, last_activity_at=T0)
        now = T0 + timedelta(minutes=61)

        result = await scheduler.run_sweep(SweepState(), now=now)

        assert result.blocked == 1
        email_service.send_email.assert_not_called()
        logs = await _logs(db_session)
        assert len(logs) == 1
        assert logs[0].status == ReminderStatus.BLOCKED
        assert logs[0].recipient_consent_state == ConsentState.REVOKED
        events = await _events(db_session, "reminder_blocked")
        assert len(events) == 1
        assert events[0].metadata_["consent"] == "revoked"
        cart = await _reload(db_session, cart)
        assert cart.reminder_count == 0

        again = await scheduler.run_sweep(SweepState(), now=now + timedelta(minutes=10))
        assert again.blocked == 0
        assert again.skipped == 1

    @pytest.mark.asyncio
    async def test_unknown_guest_blocked(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        await cart_factory(email="stranger@thehealios.com", last_activity_at=T0)

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(minutes=61))

        assert result.blocked == 1
        email_service.send_email.assert_not_called()
        logs = await _logs(db_session)
        assert logs[0].recipient_consent_state == ConsentState.UNKNOWN

    @pytest.mark.asyncio
    async def test_guest_matched_to_consenting_customer(
        self,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        await cart_factory(email=customer.email, last_activity_at=T0)

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(minutes=61))

        assert result.sent == 1
        assert email_service.send_email.call_args.kwargs["to_email"] == customer.email


class TestFailures:
    @pytest.mark.asyncio
    async def test_transport_failure_retried_next_sweep(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        cart = await cart_factory(customer_id=customer.id, last_activity_at=T0)
        now = T0 + timedelta(minutes=61)
        email_service.send_email = AsyncMock(return_value=SendResult.failure("http_503", 503))

        failed = await scheduler.run_sweep(SweepState(), now=now)

        assert failed.failed == 1
        assert await _logs(db_session) == []
        failures = await _events(db_session, "reminder_failed")
        assert len(failures) == 1
        assert failures[0].metadata_["status_code"] == 503
        assert (await db_session.execute(select(RecoveryToken))).scalars().all() == []
        cart = await _reload(db_session, cart)
        assert cart.reminder_count == 0

        email_service.send_email = AsyncMock(return_value=SendResult.success("email-456", 200))
        retried = await scheduler.run_sweep(SweepState(), now=now + timedelta(minutes=60))

        assert retried.sent == 1
        cart = await _reload(db_session, cart)
        assert cart.reminder_count == 1

    @pytest.mark.asyncio
    async def test_one_bad_cart_does_not_stop_the_sweep(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer: Customer,
        customer_factory: Callable[..., Any],
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        other = await customer_factory()
        await cart_factory(
            customer_id=customer.id,
            last_activity_at=T0,
            items=[{"product_ref": "", "quantity": "many"}],
        )
        good = await cart_factory(customer_id=other.id, last_activity_at=T0 + timedelta(minutes=1))

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(minutes=62))

        assert result.scanned == 2
        assert result.sent == 1
        assert result.failed == 1
        assert len(result.errors) == 1
        good = await _reload(db_session, good)
        assert good.reminder_count == 1

    @pytest.mark.asyncio
    async def test_stale_claim_released(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        """A pending claim left by a crashed sweep is retried after the timeout."""
        cart = await cart_factory(customer_id=customer.id, last_activity_at=T0)
        now = T0 + timedelta(minutes=90)
        db_session.add(
            ReminderLog(
                cart_id=cart.id,
                template="abandoned_cart_1h",
                tier_minutes=60,
                status=ReminderStatus.PENDING,
                recipient_consent_state=ConsentState.GRANTED,
                created_at=now - timedelta(minutes=20),
            )
        )
        await db_session.commit()

        result = await scheduler.run_sweep(SweepState(), now=now)

        assert result.sent == 1
        db_session.expire_all()
        logs = await _logs(db_session)
        assert len(logs) == 1
        assert logs[0].status == ReminderStatus.SENT

    @pytest.mark.asyncio
    async def test_recent_claim_respected(
        self,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer: Customer,
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        cart = await cart_factory(customer_id=customer.id, last_activity_at=T0)
        now = T0 + timedelta(minutes=90)
        db_session.add(
            ReminderLog(
                cart_id=cart.id,
                template="abandoned_cart_1h",
                tier_minutes=60,
                status=ReminderStatus.PENDING,
                recipient_consent_state=ConsentState.GRANTED,
                created_at=now - timedelta(minutes=5),
            )
        )
        await db_session.commit()

        result = await scheduler.run_sweep(SweepState(), now=now)

        assert result.skipped == 1
        email_service.send_email.assert_not_called()


class TestExclusions:
    def test_email_is_excluded(self) -> None:
        patterns = settings.exclude_email_patterns
        assert email_is_excluded("qa.runner@thehealios.com", patterns)
        assert email_is_excluded("someone@shop.test", patterns)
        assert email_is_excluded("DEMO@thehealios.com", patterns)
        assert not email_is_excluded("thandi@thehealios.com", patterns)

    def test_invalid_pattern_ignored(self) -> None:
        assert not email_is_excluded("thandi@thehealios.com", ["(unclosed"])

    @pytest.mark.asyncio
    async def test_excluded_addresses_skipped_in_production(
        self,
        monkeypatch: pytest.MonkeyPatch,
        db_session: AsyncSession,
        scheduler: ReminderScheduler,
        customer_factory: Callable[..., Any],
        cart_factory: Callable[..., Any],
        email_service: MagicMock,
    ) -> None:
        monkeypatch.setattr(settings, "environment", "production")
        qa = await customer_factory(email="qa.runner@thehealios.com")
        await cart_factory(customer_id=qa.id, last_activity_at=T0)

        result = await scheduler.run_sweep(SweepState(), now=T0 + timedelta(minutes=61))

        assert result.skipped == 1
        email_service.send_email.assert_not_called()
        assert await _logs(db_session) == []
