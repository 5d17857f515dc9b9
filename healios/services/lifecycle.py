"""Cart lifecycle classification and reminder tier selection.

Everything here is pure: callers pass ``now`` explicitly so classification
is deterministic and easy to test.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from healios.core.config import Settings, settings
from healios.models.cart import CartStatus


@dataclass(frozen=True)
class LifecycleThresholds:
    """Inactivity thresholds that drive classification."""

    stale: timedelta
    abandoned: timedelta

    def __post_init__(self) -> None:
        if self.stale > self.abandoned:
            raise ValueError("stale threshold must not exceed abandoned threshold")

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "LifecycleThresholds":
        return cls(
            stale=timedelta(minutes=config.stale_threshold_minutes),
            abandoned=timedelta(minutes=config.abandoned_threshold_minutes),
        )


@dataclass(frozen=True)
class ReminderTier:
    """One scheduled reminder offset."""

    index: int
    minutes: int

    @property
    def template(self) -> str:
        if self.minutes % 60 == 0:
            return f"abandoned_cart_{self.minutes // 60}h"
        return f"abandoned_cart_{self.minutes}m"

    @property
    def offset(self) -> timedelta:
        return timedelta(minutes=self.minutes)


def build_tiers(schedule_minutes: list[int]) -> list[ReminderTier]:
    return [ReminderTier(index=i, minutes=m) for i, m in enumerate(sorted(schedule_minutes))]


def classify(
    last_activity_at: datetime,
    converted_order_ref: str | None,
    now: datetime,
    thresholds: LifecycleThresholds,
) -> CartStatus:
    """Derive a cart's status.

    Converted wins over everything; otherwise the status follows the time
    since last activity.
    """
    if converted_order_ref is not None:
        return CartStatus.CONVERTED

    idle = now - last_activity_at
    if idle < thresholds.stale:
        return CartStatus.ACTIVE
    if idle < thresholds.abandoned:
        return CartStatus.STALE
    return CartStatus.ABANDONED


def due_tier(
    last_activity_at: datetime,
    now: datetime,
    tiers: list[ReminderTier],
) -> ReminderTier | None:
    """Latest tier whose offset from last activity has elapsed.

    Offsets are absolute (measured from ``last_activity_at``), so a sweep
    that runs late sends only the most recent due tier, never a burst of
    missed ones.
    """
    idle = now - last_activity_at
    due: ReminderTier | None = None
    for tier in tiers:
        if idle >= tier.offset:
            due = tier
    return due
