"""Outbound channel delivery.

SMS goes through the Twilio REST API and email through the Resend API, both
over httpx. ``send_message`` never raises for provider failures: the outcome is
reported in the returned SendResult so callers can record it.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from app.core.config import get_settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


class SendResult(BaseModel):
    """Outcome of one outbound delivery."""

    delivered: bool
    channel: str
    provider_message_id: str | None = None
    error: str | None = None


async def _send_via_twilio(to_number: str, body: str) -> dict[str, Any]:
    """Send SMS via Twilio."""
    settings = get_settings()

    if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN or not settings.TWILIO_FROM_NUMBER:
        raise ValueError("Twilio credentials not configured")

    async with httpx.AsyncClient(timeout=15) as client:
        response = await client.post(
            TWILIO_API_URL.format(account_sid=settings.TWILIO_ACCOUNT_SID),
            auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
            data={"To": to_number, "From": settings.TWILIO_FROM_NUMBER, "Body": body},
        )
        response.raise_for_status()

        data = response.json()
        message_id = data.get("sid", "")
        logger.info(f"Twilio SMS sent, message_id={message_id}")

        return {"message_id": message_id, "status": data.get("status", "queued")}


async def _send_via_resend(
    to_emails: list[str],
    subject: str,
    html_body: str,
    text_body: str | None = None,
) -> dict[str, Any]:
    """Send email via Resend API."""
    settings = get_settings()

    if not settings.RESEND_API_KEY:
        raise ValueError("RESEND_API_KEY not configured")

    payload: dict[str, Any] = {
        "from": f"{settings.RESEND_FROM_NAME} <{settings.RESEND_FROM_EMAIL}>",
        "to": to_emails,
        "subject": subject,
        "html": html_body,
    }
    if text_body:
        payload["text"] = text_body

    async with httpx.AsyncClient(timeout=15) as client:
        response = await client.post(
            RESEND_API_URL,
            headers={
                "Authorization": f"Bearer {settings.RESEND_API_KEY}",
                "Content-Type": "application/json",
            },
            json=payload,
        )
        response.raise_for_status()

        data = response.json()
        message_id = data.get("id", "")
        logger.info(
            f"Resend email sent to {len(to_emails)} recipients, "
            f"subject='{subject}', message_id={message_id}"
        )

        return {"message_id": message_id, "status": "sent"}


async def send_email(
    to: str | list[str],
    subject: str,
    html_body: str,
    text_body: str | None = None,
) -> dict[str, Any]:
    """
    Send a transactional email.

    Args:
        to: Single email or list of emails
        subject: Email subject
        html_body: HTML content
        text_body: Optional plain text fallback

    Returns:
        Dict with message_id and status
    """
    to_list = [to] if isinstance(to, str) else to
    return await _send_via_resend(to_list, subject, html_body, text_body)


async def send_message(
    channel: str,
    recipient: str,
    content: str,
    subject: str | None = None,
) -> SendResult:
    """
    Deliver a message over SMS or email.

    Args:
        channel: sms or email
        recipient: E.164 phone number or email address
        content: Message body
        subject: Email subject (email only)

    Returns:
        SendResult with delivered=False and the provider error on failure
    """
    try:
        if channel == "sms":
            result = await _send_via_twilio(recipient, content)
        elif channel == "email":
            html = "<p>" + content.replace("\n", "<br>") + "</p>"
            result = await send_email(
                recipient,
                subject or f"Message from {get_settings().RESEND_FROM_NAME}",
                html,
                text_body=content,
            )
        else:
            return SendResult(delivered=False, channel=channel, error=f"Unsupported channel: {channel}")

    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"{channel} delivery failed: {e}")
        return SendResult(delivered=False, channel=channel, error=str(e))

    return SendResult(delivered=True, channel=channel, provider_message_id=result.get("message_id"))
