"""channel_response: reply to a user on the channel their session came in on."""

from app.core.logging import get_logger
from app.core.messaging_service import send_message
from app.core.schemas_sessions import ChannelType
from app.core.schemas_tools import (
    AccessDeniedError,
    NotFoundError,
    ToolResponse,
    UpstreamError,
    success_response,
)
from app.db.chat_sessions import append_message, get_session

from .guards import ToolCall, require_arg, tool_handler

logger = get_logger(__name__)

EMAIL_SUBJECT = "Re: your project"


@tool_handler("channel_response")
async def channel_response(call: ToolCall) -> ToolResponse:
    """
    Record the reply in the session history and deliver it.

    Web replies are only recorded; the web client reads them from the history.
    """
    session_id = str(require_arg(call.args, "session_id"))
    message = str(require_arg(call.args, "message")).strip()

    session = get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if str(session.get("company_id")) != str(call.context.company_id):
        logger.warning(
            f"Tenant mismatch on session {session_id}",
            extra={"company_id": call.context.company_id, "tool": "channel_response"},
        )
        raise AccessDeniedError()
    if call.context.is_contact and session.get("contact_id") and session["contact_id"] != call.context.contact_id:
        raise AccessDeniedError()

    updated = append_message(session_id, call.context.company_id, "assistant", message)
    if updated is None:
        raise NotFoundError("Session not found")

    channel = ChannelType(session["channel_type"])
    data = {
        "session_id": session_id,
        "channel_type": channel.value,
        "delivered": channel == ChannelType.WEB,
        "history_length": len(updated.get("conversation_history") or []),
    }

    if channel != ChannelType.WEB:
        result = await send_message(
            channel.value,
            session["channel_identifier"],
            message,
            subject=EMAIL_SUBJECT if channel == ChannelType.EMAIL else None,
        )
        if not result.delivered:
            raise UpstreamError(f"Failed to deliver {channel.value} message: {result.error}")
        data["delivered"] = True
        data["provider_message_id"] = result.provider_message_id

    return success_response(data, f"Response sent via {channel.value}")
