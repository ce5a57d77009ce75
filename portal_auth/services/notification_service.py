"""Notification sender for magic-link and password-reset emails.

The auth flows depend only on `NotificationSender.send(to, subject, html)`.
Production uses Resend over httpx; without RESEND_API_KEY a sender that only
logs is used and every send reports "Email service not configured".
"""

from __future__ import annotations

import asyncio
import html as html_module
import logging
import random
from dataclasses import dataclass
from typing import Protocol

import httpx

from portal_auth.core.config import settings
from portal_auth.core.structured_logging import mask_email

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0
RETRY_STATUSES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class NotificationSender(Protocol):
    key: str

    async def send(self, *, to: str, subject: str, html: str) -> SendResult:
        """Deliver one email. Must not raise for provider errors."""


class ResendNotificationSender:
    """Send email through the Resend HTTP API with retry/backoff."""

    key = "resend"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        max_attempts: int = RESEND_MAX_ATTEMPTS,
        base_delay: float = RESEND_RETRY_BASE_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.transport = transport

    async def _post_with_retries(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        for attempt in range(self.max_attempts):
            last_attempt = attempt >= self.max_attempts - 1
            try:
                response = await client.post(RESEND_SEND_URL, headers=headers, json=payload)
            except httpx.RequestError as exc:
                if last_attempt:
                    raise
                logger.warning("Resend request failed, retrying", exc_info=exc)
                await self._backoff(attempt)
                continue

            if response.status_code in RETRY_STATUSES and not last_attempt:
                logger.warning("Resend returned %s, retrying", response.status_code)
                await self._backoff(attempt)
                continue
            return response
        return response

    async def _backoff(self, attempt: int) -> None:
        delay = min(RESEND_RETRY_MAX_DELAY, self.base_delay * (2**attempt))
        if delay:
            await asyncio.sleep(delay + random.uniform(0, delay / 2))

    async def send(self, *, to: str, subject: str, html: str) -> SendResult:
        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            async with httpx.AsyncClient(
                timeout=RESEND_TIMEOUT_SECONDS, transport=self.transport
            ) as client:
                response = await self._post_with_retries(client, payload)
        except httpx.HTTPError as exc:
            logger.error("Email send error to %s: %s", mask_email(to), exc)
            return SendResult(success=False, error="Failed to send email")

        if 200 <= response.status_code < 300:
            message_id = None
            try:
                message_id = response.json().get("id")
            except ValueError:
                pass
            logger.info("Sent email to %s (id: %s)", mask_email(to), message_id)
            return SendResult(success=True, message_id=message_id)

        logger.error(
            "Resend API error %s sending to %s: %s",
            response.status_code,
            mask_email(to),
            response.text[:500],
        )
        return SendResult(success=False, error="Email service temporarily unavailable")


class LogOnlyNotificationSender:
    """Used when no provider is configured; nothing is delivered."""

    key = "log"

    async def send(self, *, to: str, subject: str, html: str) -> SendResult:
        logger.warning("RESEND_API_KEY not configured, email to %s not sent", mask_email(to))
        return SendResult(success=False, error="Email service not configured")


def get_notification_sender() -> NotificationSender:
    """FastAPI dependency: pick the sender from settings."""
    if settings.email_configured:
        return ResendNotificationSender(settings.RESEND_API_KEY, settings.EMAIL_FROM)
    return LogOnlyNotificationSender()


# =============================================================================
# Templates
# =============================================================================

_BUTTON_STYLE = (
    "display: inline-block; background: #2563eb; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; margin: 16px 0;"
)


def _layout(greeting_name: str, body: str, link: str, button: str, footer_lines: list[str], brand: str) -> str:
    footer = "".join(
        f'<p style="color: #666; font-size: 14px;">{html_module.escape(line)}</p>'
        for line in footer_lines
    )
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>Hi {html_module.escape(greeting_name)},</h2>"
        f"<p>{html_module.escape(body)}</p>"
        f'<a href="{html_module.escape(link, quote=True)}" style="{_BUTTON_STYLE}">'
        f"{html_module.escape(button)}</a>"
        f"{footer}"
        '<hr style="border: none; border-top: 1px solid #eee; margin: 24px 0;" />'
        f'<p style="color: #999; font-size: 12px;">{html_module.escape(brand)}</p>'
        "</div>"
    )


def render_magic_link_email(
    customer_name: str | None,
    business_name: str | None,
    link: str,
) -> tuple[str, str]:
    """Return (subject, html) for a magic-link email."""
    brand = business_name or settings.PORTAL_BRAND_NAME
    subject = f"Access your project portal - {brand}"
    html = _layout(
        customer_name or "there",
        "Click the button below to access your project portal:",
        link,
        "View Your Projects",
        [
            f"This link expires in {settings.MAGIC_LINK_TTL_HOURS} hours.",
            "Want easier access next time? Create a permanent account with Google "
            "or email after signing in.",
        ],
        brand,
    )
    return subject, html


def render_password_reset_email(
    customer_name: str | None,
    business_name: str | None,
    link: str,
) -> tuple[str, str]:
    """Return (subject, html) for a password-reset email."""
    brand = business_name or settings.PORTAL_BRAND_NAME
    subject = f"Reset your password - {brand}"
    hours = settings.RESET_TOKEN_TTL_HOURS
    html = _layout(
        customer_name or "Customer",
        "We received a request to reset your password for your customer portal account.",
        link,
        "Reset Password",
        [
            f"This link expires in {hours} hour{'s' if hours != 1 else ''}.",
            "If you didn't request this, you can safely ignore this email.",
        ],
        brand,
    )
    return subject, html
