"""Shared handler contract.

Every tool handler is wrapped by ``tool_handler``, which runs the same steps
before the tool's own logic:

  1. parse and validate the security context (403 on failure)
  2. resolve the effective project: context.project_id, else args.project_id
  3. tenant check: the project's company must equal context.company_id (403)
  4. contacts must be associated with the project (403)
  5. run the tool, converting every exception into an error response

Handlers are therefore safe to call directly, without going through the invoker.
"""

import functools
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from app.core.logging import get_logger
from app.core.schemas_tools import (
    AccessDeniedError,
    NotFoundError,
    ToolError,
    ToolRequest,
    ToolRequestMetadata,
    ToolResponse,
    ValidationFailedError,
    error_response,
    response_from_error,
)
from app.core.security_context import SecurityContext, parse_security_context
from app.db.contacts import is_contact_on_project
from app.db.projects import get_project

logger = get_logger(__name__)


@dataclass
class ToolCall:
    """Validated input handed to a tool's own logic."""

    context: SecurityContext
    args: dict[str, Any]
    metadata: ToolRequestMetadata
    project: dict[str, Any] | None = None

    @property
    def project_id(self) -> str | None:
        return self.project["id"] if self.project else None


ToolLogic = Callable[[ToolCall], Awaitable[ToolResponse]]
ToolHandler = Callable[[ToolRequest], Awaitable[ToolResponse]]


def ensure_project_access(context: SecurityContext, project_id: str) -> dict[str, Any]:
    """
    Load a project and verify the caller may act on it.

    Args:
        context: Validated security context
        project_id: Project to check

    Returns:
        Project dict

    Raises:
        NotFoundError: Project does not exist
        AccessDeniedError: Project belongs to another company, or the contact
            is not associated with it
    """
    project = get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found")

    if str(project.get("company_id")) != str(context.company_id):
        logger.warning(
            f"Tenant mismatch on project {project_id}",
            extra={"company_id": context.company_id},
        )
        raise AccessDeniedError()

    if context.is_contact:
        if not context.contact_id or not is_contact_on_project(context.contact_id, project_id):
            logger.warning(
                f"Contact {context.contact_id} not associated with project {project_id}",
                extra={"company_id": context.company_id},
            )
            raise AccessDeniedError()

    return project


def resolve_project_id(context: SecurityContext, args: dict[str, Any]) -> str | None:
    """
    Effective project for a call.

    Raises:
        AccessDeniedError: Args name a different project than the context is scoped to
    """
    arg_project = args.get("project_id") or None
    if context.project_id:
        if arg_project and str(arg_project) != str(context.project_id):
            raise AccessDeniedError()
        return context.project_id
    return str(arg_project) if arg_project else None


def tool_handler(
    name: str,
    require_project: bool = False,
    require_user: bool = False,
) -> Callable[[ToolLogic], ToolHandler]:
    """
    Wrap a tool's logic in the shared handler contract.

    Args:
        name: Tool name (for logging)
        require_project: Security context must carry project_id
        require_user: Security context must carry user_id or contact_id
    """

    def decorator(logic: ToolLogic) -> ToolHandler:
        @functools.wraps(logic)
        async def handler(request: ToolRequest) -> ToolResponse:
            started = time.monotonic()
            company_id = (request.security_context or {}).get("company_id")
            log_extra = {
                "tool": name,
                "company_id": company_id,
                "prompt_run_id": request.metadata.prompt_run_id,
                "trace_id": request.metadata.trace_id,
            }

            try:
                context = parse_security_context(request.security_context, require_project, require_user)
                args = dict(request.args or {})

                project = None
                project_id = resolve_project_id(context, args)
                if project_id:
                    project = ensure_project_access(context, project_id)

                call = ToolCall(context=context, args=args, metadata=request.metadata, project=project)
                response = await logic(call)

            except ToolError as e:
                response = response_from_error(e)
            except Exception as e:
                logger.error(f"Tool {name} failed: {e}", exc_info=True, extra=log_extra)
                response = error_response(str(e) or type(e).__name__, status_code=500)

            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info(
                f"Tool {name} -> {response.status.value} ({response.status_code}) in {duration_ms}ms",
                extra=log_extra,
            )
            return response

        handler.tool_name = name  # type: ignore[attr-defined]
        return handler

    return decorator


def require_arg(args: dict[str, Any], key: str, message: str | None = None) -> Any:
    """
    Fetch a required, non-empty argument.

    Raises:
        ValidationFailedError: Argument missing or blank
    """
    value = args.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationFailedError(message or f"{key} is required")
    return value
