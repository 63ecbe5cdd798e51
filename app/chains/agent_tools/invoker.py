"""Tool invoker: dispatch a named tool call over the configured transport.

``invoke_tool`` never raises. Unknown tools, handler crashes and transport
failures all come back as ``status: error`` responses so an orchestrator loop
keeps running.
"""

import uuid
from typing import Any

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.schemas_tools import (
    ToolRequest,
    ToolRequestMetadata,
    ToolResponse,
    error_response,
    utc_now_iso,
)
from app.core.security_context import SecurityContext

from .definitions import TOOL_NAMES, get_function_name
from .registry import get_registry

logger = get_logger(__name__)


def build_request(
    args: dict[str, Any] | None,
    security_context: SecurityContext | dict[str, Any] | None,
    metadata: ToolRequestMetadata | dict[str, Any] | None = None,
) -> ToolRequest:
    """Build the wire request, filling a timestamp and trace id when absent."""
    if isinstance(metadata, ToolRequestMetadata):
        meta = metadata.model_dump()
    else:
        meta = dict(metadata or {})
    meta.setdefault("orchestrator", get_settings().AGENT_ORCHESTRATOR_NAME)
    meta["timestamp"] = meta.get("timestamp") or utc_now_iso()
    meta["trace_id"] = meta.get("trace_id") or str(uuid.uuid4())

    if isinstance(security_context, SecurityContext):
        wire_context: dict[str, Any] | None = security_context.to_wire()
    else:
        wire_context = security_context

    return ToolRequest(
        security_context=wire_context,
        args=args or {},
        metadata=ToolRequestMetadata.model_validate(meta),
    )


async def _invoke_local(tool_name: str, request: ToolRequest) -> ToolResponse:
    handler = get_registry().get(tool_name)
    if handler is None:
        return error_response(f"Unknown tool: {tool_name}", status_code=404)
    return await handler(request)


async def _invoke_http(tool_name: str, request: ToolRequest) -> ToolResponse:
    settings = get_settings()
    if not settings.TOOL_BASE_URL:
        return error_response("TOOL_BASE_URL is not configured", status_code=500)

    url = f"{settings.TOOL_BASE_URL.rstrip('/')}/tools/{get_function_name(tool_name)}"
    async with httpx.AsyncClient(timeout=settings.TOOL_HTTP_TIMEOUT_SECONDS) as client:
        response = await client.post(
            url,
            headers={"Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}"},
            json=request.to_wire(),
        )

    try:
        body = response.json()
    except ValueError:
        body = None
    return ToolResponse.from_wire(body, status_code=response.status_code)


async def invoke_tool(
    tool_name: str,
    args: dict[str, Any] | None,
    security_context: SecurityContext | dict[str, Any] | None,
    metadata: ToolRequestMetadata | dict[str, Any] | None = None,
) -> ToolResponse:
    """
    Invoke a tool by name.

    Args:
        tool_name: Registered tool name
        args: Tool arguments
        security_context: Caller's context (model or wire dict)
        metadata: Orchestrator name, prompt_run_id, trace_id, timestamp

    Returns:
        ToolResponse (errors are returned, never raised)
    """
    if tool_name not in TOOL_NAMES:
        logger.warning(f"Unknown tool requested: {tool_name}", extra={"tool": tool_name})
        return error_response(f"Unknown tool: {tool_name}", status_code=404)

    try:
        request = build_request(args, security_context, metadata)
    except Exception as e:
        return error_response(f"Invalid tool request: {e}", status_code=400)

    transport = get_settings().TOOL_TRANSPORT
    try:
        if transport == "http":
            response = await _invoke_http(tool_name, request)
        else:
            response = await _invoke_local(tool_name, request)

    except httpx.HTTPError as e:
        logger.error(
            f"Transport failure invoking {tool_name}: {e}",
            extra={"tool": tool_name, "trace_id": request.metadata.trace_id},
        )
        return error_response(f"Transport error: {e}", status_code=502)
    except Exception as e:
        logger.error(
            f"Error invoking {tool_name}: {e}",
            exc_info=True,
            extra={"tool": tool_name, "trace_id": request.metadata.trace_id},
        )
        return error_response(str(e) or type(e).__name__, status_code=500)

    return response
