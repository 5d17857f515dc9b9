"""Email dispatcher for abandoned-cart reminders."""

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader
from sqlalchemy.ext.asyncio import AsyncSession

from healios.core.config import settings
from healios.core.security import sign_unsubscribe_token
from healios.models.cart import Cart
from healios.services.cart_service import load_items
from healios.services.consent_service import Recipient
from healios.services.email_service import EmailService
from healios.services.lifecycle import ReminderTier
from healios.services.recovery_token_service import RecoveryTokenService

logger = logging.getLogger(__name__)

# Jinja2 template environment
TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"
_jinja_env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=True)

FIRST_TIER_COPY = {
    "subject": "You left something in your cart",
    "heading": "Your wellness essentials are waiting",
    "intro": "We saved the items in your cart so you can pick up right where you left off.",
    "cta_text": "Return to your cart",
}

FOLLOW_UP_COPY = {
    "subject": "Still thinking it over? Here's {discount} off",
    "heading": "A little something to help you decide",
    "intro": "Your cart is still saved. Use code {code} at checkout for {discount} off your order.",
    "cta_text": "Complete your order",
}


class DispatchOutcome(str, enum.Enum):
    SENT = "sent"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one reminder send: Sent, Blocked(reason) or Failed(error)."""

    outcome: DispatchOutcome
    email_id: str | None = None
    reason: str | None = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def sent(cls, email_id: str) -> "DispatchResult":
        return cls(DispatchOutcome.SENT, email_id=email_id)

    @classmethod
    def blocked(cls, reason: str) -> "DispatchResult":
        return cls(DispatchOutcome.BLOCKED, reason=reason)

    @classmethod
    def failed(cls, error: str, status_code: int | None = None) -> "DispatchResult":
        return cls(DispatchOutcome.FAILED, error=error, status_code=status_code)


class ReminderDispatcher:
    """Renders a tier's reminder with a fresh recovery link and delivers it."""

    def __init__(
        self,
        db: AsyncSession,
        email_service: EmailService | None = None,
        token_service: RecoveryTokenService | None = None,
    ) -> None:
        self.db = db
        self.email_service = email_service or EmailService()
        self.token_service = token_service or RecoveryTokenService(db)

    async def send(self, cart: Cart, tier: ReminderTier, recipient: Recipient) -> DispatchResult:
        """Send the reminder for ``tier``. Transport errors come back as Failed.

        The recovery token is committed only once the email is accepted; a
        failed send rolls it back so no undelivered link stays valid.
        """
        if not recipient.email:
            return DispatchResult.blocked("no_recipient")
        if not cart.items:
            return DispatchResult.blocked("empty_cart")

        cart_id = cart.id
        token = await self.token_service.issue(cart_id, commit=False)
        recovery_url = build_recovery_url(token, tier)
        subject, html = render_reminder(cart, tier, recipient, recovery_url)

        tags = [
            {"name": "cart_id", "value": str(cart_id)},
            {"name": "template", "value": tier.template},
        ]
        sent = await self.email_service.send_email(
            to_email=recipient.email,
            subject=subject,
            html_content=html,
            tags=tags,
        )
        if not sent.ok or sent.email_id is None:
            await self.db.rollback()
            logger.warning(
                "Reminder transport failure: cart=%s template=%s error=%s",
                cart_id,
                tier.template,
                sent.error,
            )
            return DispatchResult.failed(sent.error or "transport_error", sent.status_code)

        await self.db.commit()
        return DispatchResult.sent(sent.email_id)


def build_recovery_url(token: str, tier: ReminderTier) -> str:
    """Storefront deep link that redeems the token, tagged for attribution."""
    query = urlencode(
        {
            "token": token,
            "utm_source": "healios",
            "utm_medium": "email",
            "utm_campaign": "cart_recovery",
            "utm_content": tier.template,
        }
    )
    return f"{settings.frontend_url}/cart/recover?{query}"


def build_unsubscribe_url(email: str) -> str:
    token = sign_unsubscribe_token(email)
    return f"{settings.api_url}{settings.api_v1_prefix}/recovery/unsubscribe?token={token}"


def render_reminder(
    cart: Cart,
    tier: ReminderTier,
    recipient: Recipient,
    recovery_url: str,
) -> tuple[str, str]:
    """Return (subject, html) for a tier. Follow-up tiers carry the discount code."""
    items = load_items(cart)
    offer_discount = tier.index > 0 and bool(settings.recovery_discount_code)
    copy = FOLLOW_UP_COPY if offer_discount else FIRST_TIER_COPY
    fmt: dict[str, Any] = {
        "code": settings.recovery_discount_code,
        "discount": settings.recovery_discount_label,
    }
    subject = copy["subject"].format(**fmt)

    template = _jinja_env.get_template("cart_reminder.html")
    html = template.render(
        subject=subject,
        heading=copy["heading"],
        intro=copy["intro"].format(**fmt),
        cta_text=copy["cta_text"],
        first_name=recipient.first_name or "Valued Customer",
        items=[
            {
                "product_ref": item.product_ref,
                "quantity": item.quantity,
                "line_total": f"{item.line_total:.2f}",
            }
            for item in items
        ],
        total=f"{cart.total:.2f}",
        currency=cart.currency,
        recovery_url=recovery_url,
        discount_code=settings.recovery_discount_code if offer_discount else None,
        unsubscribe_url=build_unsubscribe_url(recipient.email or ""),
    )
    return subject, html
