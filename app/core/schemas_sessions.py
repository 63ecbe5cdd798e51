"""Pydantic models for chat sessions and inbound channel messages."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChannelType(str, Enum):
    """Conversation channel."""

    SMS = "sms"
    WEB = "web"
    EMAIL = "email"


class MemoryMode(str, Enum):
    """Session sub-state.

    While a session is in a selection mode it is a disambiguation prompt, not
    a conversation: the next numeric reply is consumed as a menu choice.
    """

    STANDARD = "standard"
    COMPANY_SELECTION = "company_selection"
    PROJECT_SELECTION = "project_selection"


SELECTION_MODES: frozenset[MemoryMode] = frozenset(
    {MemoryMode.COMPANY_SELECTION, MemoryMode.PROJECT_SELECTION}
)


class HistoryEntry(BaseModel):
    """One conversation turn."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: str | None = None


class SelectionOption(BaseModel):
    """One numbered entry of a disambiguation menu."""

    company_id: str
    project_id: str | None = None
    contact_id: str | None = None
    label: str


class ChatSession(BaseModel):
    """Persisted ``chat_sessions`` row."""

    model_config = ConfigDict(extra="ignore")

    id: str
    channel_type: ChannelType
    channel_identifier: str
    company_id: str | None = None
    contact_id: str | None = None
    project_id: str | None = None
    memory_mode: MemoryMode = MemoryMode.STANDARD
    conversation_history: list[HistoryEntry] = Field(default_factory=list)
    selection_options: list[SelectionOption] = Field(default_factory=list)
    active: bool = True
    expires_at: datetime | None = None
    last_activity_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_selection(self) -> bool:
        return self.memory_mode in SELECTION_MODES

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now


class InboundMessage(BaseModel):
    """Normalized inbound message produced by a channel webhook."""

    channel_type: ChannelType
    channel_identifier: str
    body: str
    provider_message_id: str | None = None
    company_hint: str | None = None
    sender_name: str | None = None


def session_ttl_minutes(channel_type: ChannelType, settings: Any) -> int:
    """Channel-dependent session lifetime (web 1h, sms 24h, email 7d by default)."""
    ttl = {
        ChannelType.WEB: settings.SESSION_TTL_WEB_MINUTES,
        ChannelType.SMS: settings.SESSION_TTL_SMS_MINUTES,
        ChannelType.EMAIL: settings.SESSION_TTL_EMAIL_MINUTES,
    }
    return ttl[ChannelType(channel_type)]
