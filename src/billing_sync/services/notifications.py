"""Confirmation emails sent through the Resend HTTP API."""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape

import httpx
from loguru import logger

from billing_sync.config import settings


class NotificationError(RuntimeError):
    """Raised when an email could not be handed to the provider."""


def _format_timestamp(value: int | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d")


def render_purchase_confirmation(
    course_title: str,
    course_image_url: str,
    amount: int,
    course_url: str,
) -> str:
    """HTML body for a completed course purchase. Amount is in cents."""
    title = escape(course_title)
    return f"""
<div>
    <h1>Purchase confirmed!</h1>
    <p>Thank you for your purchase of {title}.</p>
    <img src="{escape(course_image_url)}" alt="{title}" />
    <p>Amount: {amount / 100:.2f}</p>
    <p>Click the link below to get started:
        <br />
        <a href="{escape(course_url)}">MasterClass</a>
    </p>
</div>
"""


def render_pro_plan_welcome(
    user_name: str | None,
    plan_type: str,
    period_start: int | None,
    period_end: int | None,
    app_url: str,
) -> str:
    """HTML body for an activated Pro subscription."""
    return f"""
<div>
    <h1>Welcome to MasterClass Pro!</h1>
    <p>Thank you {escape(user_name or "there")} for subscribing to MasterClass Pro.</p>
    <p>Plan: {escape(plan_type)}</p>
    <p>Current Period Start: {_format_timestamp(period_start)}</p>
    <p>Current Period End: {_format_timestamp(period_end)}</p>
    <p>Click the link below to get started:
        <br />
        <a href="{escape(app_url)}">MasterClass</a>
    </p>
</div>
"""


class EmailNotifier:
    """Sends transactional email via Resend."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        sender: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or settings.resend_api_key
        self.api_url = (api_url or settings.resend_api_url).rstrip("/")
        self.sender = sender or settings.email_from
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        sender: str | None = None,
    ) -> str | None:
        """Send one email.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: HTML body.
            sender: Overrides the configured From address.

        Returns:
            Provider message id, if the provider returned one.

        Raises:
            NotificationError: If the key is missing or the provider rejects the request.
        """
        if not self.api_key:
            raise NotificationError("RESEND_API_KEY not configured")

        payload = {
            "from": sender or self.sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            response = await self.client.post(
                f"{self.api_url}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to send email '{}' to {}: {}", subject, to, e)
            raise NotificationError(str(e)) from e

        message_id = response.json().get("id")
        logger.info("Sent email '{}' to {} (ID: {})", subject, to, message_id)
        return message_id

    async def close(self) -> None:
        await self.client.aclose()


_notifier: EmailNotifier | None = None


def get_notifier() -> EmailNotifier:
    """Get or create global notifier instance."""
    global _notifier
    if _notifier is None:
        _notifier = EmailNotifier()
    return _notifier


def set_notifier(notifier: EmailNotifier | None) -> None:
    """Set global notifier instance (useful for testing)."""
    global _notifier
    _notifier = notifier


async def close_notifier() -> None:
    """Close and drop the global notifier, if one was created."""
    global _notifier
    if _notifier is not None:
        await _notifier.close()
        _notifier = None
