"""Mail transport for reminder emails, backed by the Resend HTTP API."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from healios.core.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class SendResult:
    """Transport outcome. ``ok`` carries the provider's email id."""

    ok: bool
    email_id: str | None = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, email_id: str, status_code: int) -> "SendResult":
        return cls(ok=True, email_id=email_id, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: int | None = None) -> "SendResult":
        return cls(ok=False, error=error, status_code=status_code)


class EmailService:
    """Delivers one rendered email per call. Never raises on transport errors."""

    def __init__(
        self,
        api_key: str | None = None,
        sender: str | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.api_key = settings.resend_api_key if api_key is None else api_key
        self.sender = sender or settings.email_from
        self.timeout = timeout

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        tags: list[dict[str, str]] | None = None,
    ) -> SendResult:
        if not self.api_key:
            logger.warning("Resend API key not configured, email not sent to %s", to_email)
            return SendResult.failure("not_configured")

        payload: dict[str, Any] = {
            "from": self.sender,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if tags:
            payload["tags"] = tags

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error("Resend request failed for %s: %s", to_email, e)
            return SendResult.failure("network_error")

        if not response.is_success:
            logger.error(
                "Resend rejected email: to=%s status=%s body=%s",
                to_email,
                response.status_code,
                response.text[:500],
            )
            return SendResult.failure(f"http_{response.status_code}", response.status_code)

        try:
            email_id = response.json().get("id")
        except ValueError:
            logger.error("Resend returned a non-JSON body: status=%s", response.status_code)
            return SendResult.failure("invalid_response", response.status_code)

        if not email_id:
            logger.error("Resend response missing email id: status=%s", response.status_code)
            return SendResult.failure("missing_id", response.status_code)

        logger.info("Email sent: to=%s id=%s", to_email, email_id)
        return SendResult.success(str(email_id), response.status_code)
