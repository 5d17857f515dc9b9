"""Celery tasks for the abandoned-cart pipeline: reminder sweep and retention purge."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from healios.core.database import async_session_maker, engine
from healios.services.cart_service import CartService
from healios.services.reminder_scheduler import ReminderScheduler, SweepState
from healios.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    asyncpg connections are bound to the loop that created them, so pooled
    connections must not outlive the loop of the task that opened them.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.carts.sweep_abandoned_carts",
    base=BaseTask,
    bind=True,
)
def sweep_abandoned_carts(
    self: BaseTask,  # noqa: ARG001
    trigger: str = "schedule",
) -> dict[str, Any]:
    """Periodic task: send due reminder emails for abandoned carts."""
    return _run_async(_sweep_abandoned_carts_async(trigger))


async def _sweep_abandoned_carts_async(trigger: str) -> dict[str, Any]:
    """Async implementation of the reminder sweep."""
    scheduler = ReminderScheduler(async_session_maker)
    result = await scheduler.run_sweep(SweepState(), trigger=trigger)
    return result.model_dump(mode="json")


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.carts.purge_expired_carts",
    base=BaseTask,
    bind=True,
)
def purge_expired_carts(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Daily task: delete unconverted carts past the retention window."""
    return _run_async(_purge_expired_carts_async())


async def _purge_expired_carts_async() -> dict[str, Any]:
    async with async_session_maker() as session:
        purged = await CartService(session).purge_expired()
    return {"status": "completed", "purged": purged}
