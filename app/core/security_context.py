"""Security context carried by every tool invocation.

The context is built by the orchestrator (inbound agent, approval UI, external
tool API) and passed to tools for access control. It is never persisted.
``company_id`` is the isolation boundary: every query a tool runs must be
filtered by it.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from app.core.schemas_tools import SecurityContextError


class UserType(str, Enum):
    """Who is calling."""

    ADMIN = "admin"  # Company user via the web app
    CONTACT = "contact"  # End customer via SMS / chat / email
    SYSTEM = "system"  # Background workflow or external API key


class SecurityFailure(str, Enum):
    """Reasons a security context can be rejected."""

    MISSING_CONTEXT = "MissingContext"
    MISSING_TENANT = "MissingTenant"
    MISSING_USER_TYPE = "MissingUserType"
    PROJECT_REQUIRED = "ProjectRequired"
    IDENTITY_REQUIRED = "IdentityRequired"


_FAILURE_MESSAGES: dict[SecurityFailure, str] = {
    SecurityFailure.MISSING_CONTEXT: "Security context is required",
    SecurityFailure.MISSING_TENANT: "company_id is required in security context",
    SecurityFailure.MISSING_USER_TYPE: "user_type is required in security context",
    SecurityFailure.PROJECT_REQUIRED: "project_id is required for this operation",
    SecurityFailure.IDENTITY_REQUIRED: "user_id or contact_id is required for this operation",
}


class SecurityContext(BaseModel):
    """Immutable capability token describing the caller."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    company_id: str
    user_type: UserType
    user_id: str | None = None
    contact_id: str | None = None
    project_id: str | None = None
    permissions: tuple[str, ...] | None = None

    @property
    def is_contact(self) -> bool:
        return self.user_type == UserType.CONTACT

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN

    @property
    def actor_id(self) -> str | None:
        """Identity within the tenant (user or contact), if any."""
        return self.user_id or self.contact_id

    def with_project(self, project_id: str | None) -> "SecurityContext":
        """Return a copy pre-scoped to a single project."""
        return self.model_copy(update={"project_id": project_id})

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the tool wire contract (None fields dropped)."""
        return self.model_dump(mode="json", exclude_none=True)


class SecurityValidationResult(BaseModel):
    """Outcome of validating a security context."""

    valid: bool
    error: str | None = None
    code: SecurityFailure | None = None


def _fail(code: SecurityFailure) -> SecurityValidationResult:
    return SecurityValidationResult(valid=False, error=_FAILURE_MESSAGES[code], code=code)


def validate_security_context(
    context: SecurityContext | dict[str, Any] | None,
    require_project: bool = False,
    require_user: bool = False,
) -> SecurityValidationResult:
    """
    Validate that a security context has the minimum required fields.

    Pure function: accepts either a parsed context or the raw wire dict and
    never raises.

    Args:
        context: Context to check (model, raw dict, or None)
        require_project: Operation needs a pre-scoped project_id
        require_user: Operation needs a user_id or contact_id

    Returns:
        SecurityValidationResult with the first failure found
    """
    if context is None:
        return _fail(SecurityFailure.MISSING_CONTEXT)

    if isinstance(context, SecurityContext):
        raw: dict[str, Any] = context.model_dump()
    elif isinstance(context, dict):
        raw = context
    else:
        return _fail(SecurityFailure.MISSING_CONTEXT)

    if not raw.get("company_id"):
        return _fail(SecurityFailure.MISSING_TENANT)

    user_type = raw.get("user_type")
    if not user_type:
        return _fail(SecurityFailure.MISSING_USER_TYPE)
    try:
        UserType(user_type)
    except ValueError:
        return SecurityValidationResult(
            valid=False,
            error=f"user_type must be one of: admin, contact, system (got {user_type!r})",
            code=SecurityFailure.MISSING_USER_TYPE,
        )

    if require_project and not raw.get("project_id"):
        return _fail(SecurityFailure.PROJECT_REQUIRED)

    if require_user and not raw.get("user_id") and not raw.get("contact_id"):
        return _fail(SecurityFailure.IDENTITY_REQUIRED)

    return SecurityValidationResult(valid=True)


def parse_security_context(
    raw: SecurityContext | dict[str, Any] | None,
    require_project: bool = False,
    require_user: bool = False,
) -> SecurityContext:
    """
    Validate and parse a wire security context.

    Raises:
        SecurityContextError: If validation fails
    """
    result = validate_security_context(raw, require_project, require_user)
    if not result.valid:
        raise SecurityContextError(result.error or "Invalid security context")

    if isinstance(raw, SecurityContext):
        return raw

    data = dict(raw or {})
    if data.get("permissions") is not None:
        data["permissions"] = tuple(data["permissions"])
    try:
        return SecurityContext.model_validate(data)
    except ValidationError as e:
        raise SecurityContextError(f"Malformed security context: {e.errors()[0]['msg']}") from e


def has_permission(context: SecurityContext, permission: str) -> bool:
    """Check a fine-grained grant. Contexts without a permission list are unrestricted."""
    if context.permissions is None:
        return True
    return permission in context.permissions


def build_system_context(company_id: str, project_id: str | None = None) -> SecurityContext:
    """Build a security context for background/system orchestrators."""
    return SecurityContext(company_id=company_id, user_type=UserType.SYSTEM, project_id=project_id)


def build_contact_context(
    company_id: str, contact_id: str, project_id: str | None = None
) -> SecurityContext:
    """Build a security context for customer-facing orchestrators."""
    return SecurityContext(
        company_id=company_id,
        contact_id=contact_id,
        user_type=UserType.CONTACT,
        project_id=project_id,
    )


def build_admin_context(
    company_id: str, user_id: str, project_id: str | None = None
) -> SecurityContext:
    """Build a security context for admin users of the web app."""
    return SecurityContext(
        company_id=company_id,
        user_id=user_id,
        user_type=UserType.ADMIN,
        project_id=project_id,
    )


