"""Pydantic models for action records and their lifecycle.

An action record stages any side-effecting operation (send a message, mutate
project data, write to a CRM) for review. Lifecycle:

  pending ──approve──▶ approved ──execute──▶ executed
     │                     └───────────────▶ failed
     └──reject──▶ rejected

rejected / executed / failed are terminal. Re-running an action means creating
a new record.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.schemas_tools import ValidationFailedError

# =============================================================================
# Enums
# =============================================================================


class ActionType(str, Enum):
    """Which executor and payload shape apply to a record."""

    MESSAGE = "message"
    DATA_UPDATE = "data_update"
    SET_FUTURE_REMINDER = "set_future_reminder"
    CRM_WRITE = "crm_write"
    ESCALATION = "escalation"
    HUMAN_IN_LOOP = "human_in_loop"
    NO_ACTION = "no_action"
    # Legacy rows only; never created, never executed
    NOTION_INTEGRATION = "notion_integration"


DEPRECATED_ACTION_TYPES: frozenset[ActionType] = frozenset({ActionType.NOTION_INTEGRATION})

CREATABLE_ACTION_TYPES: frozenset[ActionType] = frozenset(ActionType) - DEPRECATED_ACTION_TYPES


class ActionStatus(str, Enum):
    """Action record state."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[ActionStatus] = frozenset(
    {ActionStatus.REJECTED, ActionStatus.EXECUTED, ActionStatus.FAILED}
)

ALLOWED_TRANSITIONS: dict[ActionStatus, frozenset[ActionStatus]] = {
    ActionStatus.PENDING: frozenset({ActionStatus.APPROVED, ActionStatus.REJECTED}),
    ActionStatus.APPROVED: frozenset({ActionStatus.EXECUTED, ActionStatus.FAILED}),
    ActionStatus.REJECTED: frozenset(),
    ActionStatus.EXECUTED: frozenset(),
    ActionStatus.FAILED: frozenset(),
}


def can_transition(current: ActionStatus, new: ActionStatus) -> bool:
    """Whether the state machine allows current → new."""
    return new in ALLOWED_TRANSITIONS[current]


class MessageChannel(str, Enum):
    """Outbound delivery channel for message actions."""

    SMS = "sms"
    EMAIL = "email"


# Free-form action names the model tends to produce → closed set
ACTION_TYPE_SYNONYMS: dict[str, ActionType] = {
    "message": ActionType.MESSAGE,
    "send_message": ActionType.MESSAGE,
    "send_sms": ActionType.MESSAGE,
    "send_email": ActionType.MESSAGE,
    "sms": ActionType.MESSAGE,
    "email": ActionType.MESSAGE,
    "notify": ActionType.MESSAGE,
    "data_update": ActionType.DATA_UPDATE,
    "update_data": ActionType.DATA_UPDATE,
    "update_field": ActionType.DATA_UPDATE,
    "update_project": ActionType.DATA_UPDATE,
    "set_future_reminder": ActionType.SET_FUTURE_REMINDER,
    "reminder": ActionType.SET_FUTURE_REMINDER,
    "set_reminder": ActionType.SET_FUTURE_REMINDER,
    "future_reminder": ActionType.SET_FUTURE_REMINDER,
    "follow_up": ActionType.SET_FUTURE_REMINDER,
    "crm_write": ActionType.CRM_WRITE,
    "crm_update": ActionType.CRM_WRITE,
    "escalation": ActionType.ESCALATION,
    "escalate": ActionType.ESCALATION,
    "human_in_loop": ActionType.HUMAN_IN_LOOP,
    "human_in_the_loop": ActionType.HUMAN_IN_LOOP,
    "human_review": ActionType.HUMAN_IN_LOOP,
    "no_action": ActionType.NO_ACTION,
    "none": ActionType.NO_ACTION,
    "noop": ActionType.NO_ACTION,
}


def normalize_action_type(raw: str | None) -> ActionType:
    """
    Normalize a free-form action type into the closed set.

    Args:
        raw: Action type as produced by the model ("Send Message", "reminder", ...)

    Returns:
        ActionType (defaults to MESSAGE when omitted)

    Raises:
        ValidationFailedError: Unknown or deprecated action type
    """
    if raw is None or not str(raw).strip():
        return ActionType.MESSAGE

    key = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    action_type = ACTION_TYPE_SYNONYMS.get(key)
    if action_type is None:
        if key == ActionType.NOTION_INTEGRATION.value:
            raise ValidationFailedError("notion_integration actions are deprecated")
        raise ValidationFailedError(f"Unknown action_type: {raw}")
    return action_type


# =============================================================================
# Payloads (tagged by action_type)
# =============================================================================


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")

    priority: Literal["low", "medium", "high"] = "medium"
    description: str | None = None


class MessagePayload(_Payload):
    recipient_id: str
    content: str = Field(min_length=1)
    channel: MessageChannel | None = None
    sender_type: Literal["agent", "user"] = "agent"

    @field_validator("content")
    @classmethod
    def _strip_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message content must not be blank")
        return v


class DataUpdatePayload(_Payload):
    field: str = Field(min_length=1, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    value: Any = None


class ReminderPayload(_Payload):
    days_until_check: int = Field(ge=0)
    check_reason: str | None = None
    reminder_date: datetime


class CrmWritePayload(_Payload):
    resource_type: Literal["project", "task", "note", "contact"]
    operation_type: Literal["create", "update", "delete"]
    resource_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        if self.operation_type in ("update", "delete") and not self.resource_id:
            raise ValueError(f"resource_id is required for {self.operation_type} operations")


class EscalationPayload(_Payload):
    reason: str = "Project requires escalation"
    escalation_details: str | None = None
    project_details: dict[str, Any] = Field(default_factory=dict)


class HumanInLoopPayload(_Payload):
    reason: str | None = None


class NoActionPayload(_Payload):
    reason: str | None = None


PAYLOAD_MODELS: dict[ActionType, type[_Payload]] = {
    ActionType.MESSAGE: MessagePayload,
    ActionType.DATA_UPDATE: DataUpdatePayload,
    ActionType.SET_FUTURE_REMINDER: ReminderPayload,
    ActionType.CRM_WRITE: CrmWritePayload,
    ActionType.ESCALATION: EscalationPayload,
    ActionType.HUMAN_IN_LOOP: HumanInLoopPayload,
    ActionType.NO_ACTION: NoActionPayload,
}


def parse_action_payload(action_type: ActionType, payload: dict[str, Any]) -> _Payload:
    """
    Validate a payload against the shape its action type declares.

    Raises:
        ValidationFailedError: Payload does not match, or type is deprecated
    """
    model = PAYLOAD_MODELS.get(action_type)
    if model is None:
        raise ValidationFailedError(f"{action_type.value} actions cannot carry a payload")
    try:
        return model.model_validate(payload)
    except (ValidationError, ValueError) as e:
        if isinstance(e, ValidationError):
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            detail = f"{loc}: {first['msg']}" if loc else first["msg"]
        else:
            detail = str(e)
        raise ValidationFailedError(f"Invalid {action_type.value} payload: {detail}") from e


def compute_reminder_date(days_until_check: int, now: datetime | None = None) -> datetime:
    """Absolute reminder date ``now + days`` (0 days → now)."""
    if days_until_check < 0:
        raise ValidationFailedError("days_until_check must be >= 0")
    base = now or datetime.now(timezone.utc)
    return base + timedelta(days=days_until_check)


# =============================================================================
# Approval policy
# =============================================================================


class ApprovalPolicy(BaseModel):
    """Which action types skip human approval.

    Built once per request from settings and passed explicitly.
    """

    model_config = ConfigDict(frozen=True)

    auto_approved: frozenset[ActionType] = frozenset({ActionType.SET_FUTURE_REMINDER})

    @classmethod
    def from_settings(cls, settings: Any) -> "ApprovalPolicy":
        types = set()
        for raw in settings.AUTO_APPROVED_ACTION_TYPES:
            action_type = ActionType(raw)
            if action_type in DEPRECATED_ACTION_TYPES:
                continue
            types.add(action_type)
        return cls(auto_approved=frozenset(types))

    def requires_approval(self, action_type: ActionType) -> bool:
        return action_type not in self.auto_approved


# =============================================================================
# Record
# =============================================================================


class ActionRecord(BaseModel):
    """Persisted action record (``action_records`` row)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str | None = None
    company_id: str | None = None
    prompt_run_id: str | None = None
    action_type: ActionType
    action_payload: dict[str, Any] = Field(default_factory=dict)
    status: ActionStatus = ActionStatus.PENDING
    requires_approval: bool = True
    message: str | None = None
    recipient_id: str | None = None
    sender_id: str | None = None
    reminder_date: datetime | None = None
    dedup_key: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    executed_at: datetime | None = None
    execution_result: dict[str, Any] | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_deprecated(self) -> bool:
        return self.action_type in DEPRECATED_ACTION_TYPES

    def typed_payload(self) -> _Payload:
        return parse_action_payload(self.action_type, self.action_payload)


class ApprovalOutcome(BaseModel):
    """Result of approve / reject / execute for the approval UI."""

    success: bool
    action_id: str
    status: ActionStatus | None = None
    already_processed: bool = False
    deprecated: bool = False
    result: dict[str, Any] | None = None
    error: str | None = None
    message: str | None = None
