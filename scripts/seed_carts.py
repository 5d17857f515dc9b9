"""Seed script for abandoned-cart pipeline testing.

Creates carts in every lifecycle state so the admin dashboard and the
reminder sweep have something to work with:
- 3 customers (consent granted, revoked, unknown)
- 1 active, 1 stale, 3 abandoned and 1 converted cart
- 1 abandoned guest cart with a checkout email
- 1 completed order for the converted cart

Usage:
    uv run python -m scripts.seed_carts
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from healios.core.database import async_session_maker
from healios.models import (
    Cart,
    CartEvent,
    ConsentState,
    Customer,
    Order,
    OrderStatus,
    RecoveryToken,
    ReminderLog,
)

# Fixed UUIDs for easy reference
ALICE_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")  # consent granted
BOB_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000002")  # consent revoked
CAROL_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000003")  # consent unknown

CART_ACTIVE_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000001")
CART_STALE_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000002")
CART_ABANDONED_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000003")  # alice, 90 min idle
CART_REVOKED_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000004")  # bob, 2h idle
CART_GUEST_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000005")  # guest, 26h idle
CART_CONVERTED_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000006")

ORDER_ID = uuid.UUID("cccccccc-0000-0000-0000-000000000001")

CART_IDS = [
    CART_ACTIVE_ID,
    CART_STALE_ID,
    CART_ABANDONED_ID,
    CART_REVOKED_ID,
    CART_GUEST_ID,
    CART_CONVERTED_ID,
]

SAMPLE_ITEMS = [
    {"product_ref": "vitamin-d3-4000iu", "quantity": 2, "unit_price_snapshot": "249.00"},
    {"product_ref": "magnesium-glycinate", "quantity": 1, "unit_price_snapshot": "329.00"},
]

SINGLE_ITEM = [
    {"product_ref": "collagen-powder", "quantity": 1, "unit_price_snapshot": "449.00"},
]


def _cart(
    cart_id: uuid.UUID,
    idle: timedelta,
    now: datetime,
    *,
    customer_id: uuid.UUID | None = None,
    session_token: str | None = None,
    email: str | None = None,
    items: list[dict[str, object]] | None = None,
) -> Cart:
    return Cart(
        id=cart_id,
        customer_id=customer_id,
        session_token=session_token,
        email=email,
        items=items or SAMPLE_ITEMS,
        created_at=now - idle - timedelta(minutes=5),
        last_activity_at=now - idle,
    )


async def seed(session: AsyncSession) -> None:
    now = datetime.now(UTC)

    # ── Cleanup existing seed data ──────────────────────────────────────
    # Delete in reverse dependency order
    await session.execute(delete(Order).where(Order.id == ORDER_ID))
    for model in (CartEvent, ReminderLog, RecoveryToken):
        await session.execute(delete(model).where(model.cart_id.in_(CART_IDS)))
    await session.execute(delete(Cart).where(Cart.id.in_(CART_IDS)))
    await session.execute(delete(Customer).where(Customer.id.in_([ALICE_ID, BOB_ID, CAROL_ID])))
    await session.flush()

    # ── Customers ───────────────────────────────────────────────────────
    session.add_all(
        [
            Customer(
                id=ALICE_ID,
                email="alice@thehealios.com",
                first_name="Alice",
                marketing_consent=ConsentState.GRANTED,
            ),
            Customer(
                id=BOB_ID,
                email="bob@thehealios.com",
                first_name="Bob",
                marketing_consent=ConsentState.REVOKED,
            ),
            Customer(
                id=CAROL_ID,
                email="carol@thehealios.com",
                first_name="Carol",
                marketing_consent=ConsentState.UNKNOWN,
            ),
        ]
    )
    await session.flush()

    # ── Carts ───────────────────────────────────────────────────────────
    session.add_all(
        [
            _cart(CART_ACTIVE_ID, timedelta(minutes=5), now, customer_id=CAROL_ID),
            _cart(CART_STALE_ID, timedelta(minutes=30), now, session_token="seed-guest-stale"),
            _cart(CART_ABANDONED_ID, timedelta(minutes=90), now, customer_id=ALICE_ID),
            _cart(
                CART_REVOKED_ID,
                timedelta(hours=2),
                now,
                customer_id=BOB_ID,
                items=SINGLE_ITEM,
            ),
            _cart(
                CART_GUEST_ID,
                timedelta(hours=26),
                now,
                session_token="seed-guest-abandoned",
                email="guest.shopper@thehealios.com",
            ),
        ]
    )

    converted = _cart(CART_CONVERTED_ID, timedelta(hours=3), now, customer_id=ALICE_ID)
    converted.converted_order_ref = str(ORDER_ID)
    converted.converted_at = now - timedelta(hours=2)
    session.add(converted)
    await session.flush()

    # ── Order for the converted cart ────────────────────────────────────
    session.add(
        Order(
            id=ORDER_ID,
            cart_id=CART_CONVERTED_ID,
            customer_id=ALICE_ID,
            customer_email="alice@thehealios.com",
            items=SAMPLE_ITEMS,
            total_amount=Decimal("827.00"),
            currency="ZAR",
            status=OrderStatus.COMPLETED,
        )
    )

    await session.commit()


async def main() -> None:
    async with async_session_maker() as session:
        await seed(session)

    print("=" * 60)
    print("  Cart seed data created successfully!")
    print("=" * 60)
    print()
    print(f"  Alice (consent granted):  {ALICE_ID}")
    print(f"  Bob (consent revoked):    {BOB_ID}")
    print(f"  Carol (consent unknown):  {CAROL_ID}")
    print()
    print("  Carts:")
    print(f"    active (carol, 5 min):        {CART_ACTIVE_ID}")
    print(f"    stale (guest, 30 min):        {CART_STALE_ID}")
    print(f"    abandoned (alice, 90 min):    {CART_ABANDONED_ID}")
    print(f"    abandoned (bob, revoked):     {CART_REVOKED_ID}")
    print(f"    abandoned (guest, 26 h):      {CART_GUEST_ID}")
    print(f"    converted (alice):            {CART_CONVERTED_ID}")
    print()
    print("  Trigger a sweep: POST /api/v1/admin/email-jobs/abandoned-carts")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
