"""Inbound channel webhooks.

Registered WITHOUT API key auth; uses provider signature verification.
Handles: Twilio inbound SMS, inbound email (JSON relay), web chat.

Every handler claims the provider's message id in webhook_events before any
side effect, so a provider retry of the same delivery is acknowledged and
skipped.
"""

import base64
import hashlib
import hmac
import logging
import uuid

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.phone import normalize_phone
from app.core.rate_limiter import check_inbound_rate_limit
from app.core.schemas_sessions import ChannelType, InboundMessage
from app.db.companies import find_company_by_phone
from app.db.webhook_events import claim_event
from app.graphs.inbound_message_graph import process_inbound_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks")

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def _twiml() -> Response:
    return Response(content=EMPTY_TWIML, media_type="application/xml")


def twilio_signature(url: str, params: dict[str, str], auth_token: str) -> str:
    """Expected X-Twilio-Signature: base64 HMAC-SHA1 of the URL plus sorted form params."""
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode(), payload.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


async def _run_pipeline(message: InboundMessage) -> None:
    try:
        result = await process_inbound_message(message)
        logger.info(
            f"Inbound {message.channel_type.value} processed: route={result['route']}, "
            f"delivered={result['delivered']}"
        )
    except Exception:
        logger.exception(f"Inbound {message.channel_type.value} pipeline failed")


# ============================================================================
# Twilio SMS
# ============================================================================


@router.post("/twilio/sms")
async def twilio_sms(request: Request, background_tasks: BackgroundTasks):
    """
    Receive an inbound SMS from Twilio.

    Replies are sent through the Twilio REST API by the pipeline, so the TwiML
    response is always empty.
    """
    settings = get_settings()
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}

    if settings.TWILIO_VALIDATE_SIGNATURE and settings.TWILIO_AUTH_TOKEN:
        signature = request.headers.get("x-twilio-signature", "")
        expected = twilio_signature(str(request.url), params, settings.TWILIO_AUTH_TOKEN)
        if not hmac.compare_digest(signature, expected):
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

    sender = normalize_phone(params.get("From"))
    body = params.get("Body", "").strip()
    message_sid = params.get("MessageSid") or params.get("SmsSid")
    if not sender or not message_sid:
        raise HTTPException(status_code=400, detail="From and MessageSid are required")

    check_inbound_rate_limit(ChannelType.SMS.value, sender)

    if not claim_event("twilio", message_sid):
        return _twiml()

    if not body:
        logger.info(f"Twilio inbound {message_sid}: empty body, skipping")
        return _twiml()

    to_number = normalize_phone(params.get("To"))
    company = find_company_by_phone(to_number) if to_number else None

    message = InboundMessage(
        channel_type=ChannelType.SMS,
        channel_identifier=sender,
        body=body,
        provider_message_id=message_sid,
        company_hint=company["id"] if company else None,
    )
    background_tasks.add_task(_run_pipeline, message)
    return _twiml()


# ============================================================================
# Inbound email
# ============================================================================


class InboundEmailPayload(BaseModel):
    """JSON body posted by the inbound email relay."""

    message_id: str
    from_email: str = Field(..., alias="from")
    to: str | None = None
    subject: str | None = None
    text: str = ""
    sender_name: str | None = None
    company_id: str | None = None

    model_config = {"populate_by_name": True}


@router.post("/email/inbound")
async def email_inbound(request: Request, background_tasks: BackgroundTasks):
    """Receive an inbound email."""
    settings = get_settings()
    body_bytes = await request.body()

    if settings.INBOUND_EMAIL_WEBHOOK_SECRET:
        signature = request.headers.get("x-webhook-signature", "")
        expected = hmac.new(
            settings.INBOUND_EMAIL_WEBHOOK_SECRET.encode(),
            body_bytes,
            hashlib.sha256,
        ).hexdigest()
        if not hmac.compare_digest(signature, expected):
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = InboundEmailPayload.model_validate_json(body_bytes)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid email payload")

    sender = payload.from_email.strip().lower()
    if "@" not in sender:
        raise HTTPException(status_code=400, detail="Invalid sender address")

    check_inbound_rate_limit(ChannelType.EMAIL.value, sender)

    if not claim_event("email", payload.message_id):
        return {"status": "duplicate"}

    text = payload.text.strip()
    if not text:
        return {"status": "skipped", "reason": "empty_body"}

    message = InboundMessage(
        channel_type=ChannelType.EMAIL,
        channel_identifier=sender,
        body=text,
        provider_message_id=payload.message_id,
        company_hint=payload.company_id,
        sender_name=payload.sender_name,
    )
    background_tasks.add_task(_run_pipeline, message)
    return {"status": "accepted"}


# ============================================================================
# Web chat
# ============================================================================


class WebChatMessage(BaseModel):
    """Message posted by the web chat widget."""

    company_id: str
    session_key: str = Field(..., min_length=8, description="Browser session id")
    message: str = Field(..., min_length=1)
    message_id: str | None = None
    sender_name: str | None = None


@router.post("/web/chat")
async def web_chat(body: WebChatMessage) -> dict:
    """
    Handle a web chat message synchronously; the reply is returned in the response.
    """
    check_inbound_rate_limit(ChannelType.WEB.value, body.session_key)

    message_id = body.message_id or str(uuid.uuid4())
    if not claim_event("web", message_id):
        return {"status": "duplicate", "reply": None}

    message = InboundMessage(
        channel_type=ChannelType.WEB,
        channel_identifier=body.session_key,
        body=body.message.strip(),
        provider_message_id=message_id,
        company_hint=body.company_id,
        sender_name=body.sender_name,
    )
    result = await process_inbound_message(message)
    return {
        "status": "processed",
        "route": result["route"],
        "session_id": result["session_id"],
        "reply": result["reply"],
    }
