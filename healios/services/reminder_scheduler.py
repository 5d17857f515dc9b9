"""Reminder scheduler: periodic sweep over abandoned carts."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healios.core.config import Settings, settings
from healios.core.logging_config import generate_request_id, sweep_id_var
from healios.models.cart import Cart
from healios.models.cart_event import CartEvent
from healios.models.customer import ConsentState
from healios.models.reminder_log import ReminderLog, ReminderStatus
from healios.schemas.recovery import SweepResult
from healios.services.consent_service import ConsentService
from healios.services.email_service import EmailService
from healios.services.lifecycle import ReminderTier, build_tiers, due_tier
from healios.services.reminder_dispatcher import DispatchOutcome, DispatchResult, ReminderDispatcher

logger = logging.getLogger(__name__)

# A pending claim older than this is left over from a crashed sweep
CLAIM_TIMEOUT = timedelta(minutes=15)


@dataclass
class SweepState:
    """Scheduler bookkeeping, passed into each sweep."""

    last_run_at: datetime | None = None
    active_runs: int = 0
    runs: int = 0
    last_result: SweepResult | None = None

    @property
    def in_flight(self) -> bool:
        return self.active_runs > 0


@dataclass
class _Tally:
    sent: int = 0
    blocked: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def email_is_excluded(email: str, patterns: list[str]) -> bool:
    """Check if an email matches any of the exclusion patterns."""
    for pattern in patterns:
        try:
            if re.search(pattern, email, re.IGNORECASE):
                return True
        except re.error:
            continue
    return False


class ReminderScheduler:
    """Sends tiered reminders for abandoned carts.

    Sweeps may overlap (beat schedule plus a manual admin trigger). Each
    (cart, template) pair is claimed by inserting a ``pending`` reminder log
    row under a unique constraint before anything is sent, so at most one
    sweep ever sends a given tier. Every cart is handled in its own session
    and a failure for one cart never stops the rest of the sweep.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = settings,
        email_service: EmailService | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.email_service = email_service or EmailService()
        self.tiers = build_tiers(config.reminder_schedule)

    async def run_sweep(
        self,
        state: SweepState,
        now: datetime | None = None,
        trigger: str = "schedule",
    ) -> SweepResult:
        """Run one sweep and record it on ``state``."""
        now = now or datetime.now(UTC)
        started_at = datetime.now(UTC)
        state.active_runs += 1
        context = sweep_id_var.set(generate_request_id())
        tally = _Tally()
        try:
            cart_ids = await self._candidate_ids(now)
            logger.info("Reminder sweep started: trigger=%s candidates=%d", trigger, len(cart_ids))

            for cart_id in cart_ids:
                try:
                    outcome = await self._process_cart(cart_id, now)
                except Exception as exc:
                    logger.exception("Reminder processing failed for cart %s", cart_id)
                    tally.failed += 1
                    tally.errors.append(f"{cart_id}: {exc}")
                    continue

                if outcome is None:
                    tally.skipped += 1
                    continue
                if outcome.outcome == DispatchOutcome.SENT:
                    tally.sent += 1
                elif outcome.outcome == DispatchOutcome.BLOCKED:
                    tally.blocked += 1
                else:
                    tally.failed += 1
                    tally.errors.append(f"{cart_id}: {outcome.error}")

            result = SweepResult(
                trigger=trigger,
                started_at=started_at,
                finished_at=datetime.now(UTC),
                scanned=len(cart_ids),
                sent=tally.sent,
                blocked=tally.blocked,
                failed=tally.failed,
                skipped=tally.skipped,
                errors=tally.errors,
            )
        finally:
            state.active_runs -= 1
            sweep_id_var.reset(context)

        state.runs += 1
        state.last_run_at = now
        state.last_result = result
        logger.info(
            "Reminder sweep complete: sent=%d blocked=%d failed=%d skipped=%d",
            result.sent,
            result.blocked,
            result.failed,
            result.skipped,
        )
        return result

    async def _candidate_ids(self, now: datetime) -> list[UUID]:
        """Unconverted carts past the abandoned threshold with reminders left."""
        cutoff = now - timedelta(minutes=self.config.abandoned_threshold_minutes)
        oldest = now - timedelta(minutes=self.config.reminder_max_age_minutes)
        async with self.session_factory() as session:
            stmt = (
                select(Cart.id)
                .where(
                    Cart.converted_order_ref.is_(None),
                    Cart.last_activity_at <= cutoff,
                    Cart.last_activity_at >= oldest,
                    Cart.reminder_count < self.config.max_reminders,
                )
                .order_by(Cart.last_activity_at)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def _process_cart(self, cart_id: UUID, now: datetime) -> DispatchResult | None:
        """Handle one cart. Returns None when nothing was due."""
        async with self.session_factory() as session:
            cart = await session.get(Cart, cart_id)
            if cart is None or cart.is_converted:
                return None
            # Empty carts claim nothing, so their tiers stay open for when items return
            if not cart.items:
                return None
            if cart.reminder_count >= self.config.max_reminders:
                return None

            tier = due_tier(cart.last_activity_at, now, self.tiers)
            if tier is None:
                return None
            if await self._tier_taken(session, cart_id, tier, now):
                return None

            consent_service = ConsentService(session)
            recipient = await consent_service.get_recipient(cart)

            if (
                self.config.environment == "production"
                and recipient.email
                and email_is_excluded(recipient.email, self.config.exclude_email_patterns)
            ):
                logger.debug("Skipping excluded address for cart %s", cart_id)
                return None

            if recipient.consent != ConsentState.GRANTED:
                return await self._record_blocked(
                    session, cart, tier, recipient.consent, recipient.email, "no_consent", now
                )

            # Claim the tier; a concurrent sweep that got here first wins
            claim = ReminderLog(
                cart_id=cart_id,
                template=tier.template,
                tier_minutes=tier.minutes,
                status=ReminderStatus.PENDING,
                recipient_consent_state=recipient.consent,
                recipient_email=recipient.email,
                created_at=now,
            )
            session.add(claim)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return None
            claim_id = claim.id

            dispatcher = ReminderDispatcher(session, email_service=self.email_service)
            try:
                result = await dispatcher.send(cart, tier, recipient)
            except Exception as exc:
                logger.exception("Reminder dispatch raised for cart %s", cart_id)
                await session.rollback()
                result = DispatchResult.failed(str(exc))

            if result.outcome == DispatchOutcome.SENT:
                await self._record_sent(session, claim_id, cart_id, tier, result, now)
            elif result.outcome == DispatchOutcome.BLOCKED:
                await session.execute(
                    update(ReminderLog)
                    .where(ReminderLog.id == claim_id)
                    .values(status=ReminderStatus.BLOCKED)
                )
                session.add(
                    CartEvent(
                        cart_id=cart_id,
                        event_type="reminder_blocked",
                        metadata_={"template": tier.template, "reason": result.reason},
                    )
                )
                await session.commit()
            else:
                await self._release_claim(session, claim_id, cart_id, tier, result)

        if self.config.reminder_send_interval_seconds > 0:
            await asyncio.sleep(self.config.reminder_send_interval_seconds)
        return result

    async def _tier_taken(
        self,
        session: AsyncSession,
        cart_id: UUID,
        tier: ReminderTier,
        now: datetime,
    ) -> bool:
        """True if a log row already holds this tier.

        A pending row older than ``CLAIM_TIMEOUT`` is dropped so the tier can
        be retried.
        """
        log = (
            await session.execute(
                select(ReminderLog).where(
                    ReminderLog.cart_id == cart_id,
                    ReminderLog.template == tier.template,
                )
            )
        ).scalar_one_or_none()
        if log is None:
            return False
        if log.status == ReminderStatus.PENDING and now - log.created_at > CLAIM_TIMEOUT:
            logger.warning(
                "Releasing stale reminder claim: cart=%s template=%s", cart_id, tier.template
            )
            await session.delete(log)
            await session.commit()
            return False
        return True

    async def _record_blocked(
        self,
        session: AsyncSession,
        cart: Cart,
        tier: ReminderTier,
        consent: ConsentState,
        email: str | None,
        reason: str,
        now: datetime,
    ) -> DispatchResult | None:
        cart_id = cart.id
        session.add(
            ReminderLog(
                cart_id=cart_id,
                template=tier.template,
                tier_minutes=tier.minutes,
                status=ReminderStatus.BLOCKED,
                recipient_consent_state=consent,
                recipient_email=email,
                created_at=now,
            )
        )
        session.add(
            CartEvent(
                cart_id=cart_id,
                event_type="reminder_blocked",
                metadata_={"template": tier.template, "reason": reason, "consent": consent.value},
            )
        )
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return None
        logger.info(
            "Reminder blocked: cart=%s template=%s consent=%s",
            cart_id,
            tier.template,
            consent.value,
        )
        return DispatchResult.blocked(reason)

    async def _record_sent(
        self,
        session: AsyncSession,
        log_id: UUID,
        cart_id: UUID,
        tier: ReminderTier,
        result: DispatchResult,
        now: datetime,
    ) -> None:
        await session.execute(
            update(ReminderLog)
            .where(ReminderLog.id == log_id)
            .values(status=ReminderStatus.SENT, email_id=result.email_id, sent_at=now)
        )
        # Guarded increment: the cap holds even under overlapping sweeps
        await session.execute(
            update(Cart)
            .where(
                Cart.id == cart_id,
                Cart.reminder_count < self.config.max_reminders,
                Cart.converted_order_ref.is_(None),
            )
            .values(reminder_count=Cart.reminder_count + 1, last_reminder_at=now)
            .execution_options(synchronize_session=False)
        )
        session.add(
            CartEvent(
                cart_id=cart_id,
                event_type="reminder_sent",
                metadata_={"template": tier.template, "email_id": result.email_id},
            )
        )
        await session.commit()
        logger.info("Reminder sent: cart=%s template=%s", cart_id, tier.template)

    async def _release_claim(
        self,
        session: AsyncSession,
        log_id: UUID,
        cart_id: UUID,
        tier: ReminderTier,
        result: DispatchResult,
    ) -> None:
        """Drop the claim so the next sweep retries this tier."""
        await session.execute(delete(ReminderLog).where(ReminderLog.id == log_id))
        session.add(
            CartEvent(
                cart_id=cart_id,
                event_type="reminder_failed",
                metadata_={
                    "template": tier.template,
                    "error": result.error,
                    "status_code": result.status_code,
                },
            )
        )
        await session.commit()
        logger.warning(
            "Reminder failed, will retry next sweep: cart=%s template=%s error=%s",
            cart_id,
            tier.template,
            result.error,
        )
