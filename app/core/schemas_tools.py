"""Request/response envelope shared by every tool.

Wire contract:
  Request:  {securityContext, args, metadata?}
  Response: {status: success|error|no_action, data?, error?, message?, metadata?}

``no_action`` is not an error: the tool understood the request and decided
nothing should happen. Transport success is not business success; the HTTP
status that accompanies a response is derived from the error that produced it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Errors raised inside tool handlers
# =============================================================================


class ToolError(Exception):
    """Base class for errors a tool handler converts into an error response."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailedError(ToolError):
    """Malformed or missing tool arguments."""

    status_code = 400


class SecurityContextError(ToolError):
    """Security context missing required fields."""

    status_code = 403


class AccessDeniedError(ToolError):
    """Tenant mismatch or contact not associated with the project.

    The message is intentionally generic so responses never reveal whether a
    resource exists in another tenant.
    """

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(ToolError):
    """Project, session, contact or action record absent."""

    status_code = 404


class RecipientNotFoundError(NotFoundError):
    """No project contact matched a message recipient."""


class UpstreamError(ToolError):
    """External provider (AI, CRM, SMS, email, embeddings) failed."""

    status_code = 502


# =============================================================================
# Envelope
# =============================================================================


class ToolStatus(str, Enum):
    """Closed tri-state tool outcome."""

    SUCCESS = "success"
    ERROR = "error"
    NO_ACTION = "no_action"


class ToolRequestMetadata(BaseModel):
    """Tracing metadata attached to a tool request."""

    orchestrator: str = "unknown"
    prompt_run_id: str | None = None
    trace_id: str | None = None
    timestamp: str | None = None


class ToolRequest(BaseModel):
    """Standard request body for every tool."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    security_context: dict[str, Any] | None = Field(default=None, alias="securityContext")
    args: dict[str, Any] = Field(default_factory=dict)
    metadata: ToolRequestMetadata = Field(default_factory=ToolRequestMetadata)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ToolResponse(BaseModel):
    """Standard response body for every tool."""

    status: ToolStatus
    data: dict[str, Any] | None = None
    error: str | None = None
    message: str | None = None
    metadata: dict[str, Any] | None = None

    # HTTP-equivalent code; not part of the serialized body
    status_code: int = Field(default=200, exclude=True)

    @property
    def ok(self) -> bool:
        return self.status != ToolStatus.ERROR

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_wire(cls, body: Any, status_code: int = 200) -> "ToolResponse":
        """Parse a remote tool response body, tolerating malformed payloads."""
        if not isinstance(body, dict) or body.get("status") not in {s.value for s in ToolStatus}:
            return error_response(
                "Malformed tool response",
                status_code=502,
            )
        response = cls.model_validate(body)
        response.status_code = status_code
        return response


def success_response(
    data: dict[str, Any] | None = None,
    message: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ToolResponse:
    """Create a success response."""
    return ToolResponse(status=ToolStatus.SUCCESS, data=data, message=message, metadata=metadata)


def error_response(
    error: str,
    message: str | None = None,
    status_code: int = 500,
    metadata: dict[str, Any] | None = None,
) -> ToolResponse:
    """Create an error response."""
    return ToolResponse(
        status=ToolStatus.ERROR,
        error=error,
        message=message or error,
        metadata=metadata,
        status_code=status_code,
    )


def no_action_response(
    message: str,
    data: dict[str, Any] | None = None,
) -> ToolResponse:
    """Create a no-action response."""
    return ToolResponse(status=ToolStatus.NO_ACTION, message=message, data=data)


def response_from_error(err: ToolError) -> ToolResponse:
    """Convert a handler error into its error response."""
    return error_response(err.message, status_code=err.status_code)


def utc_now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()
