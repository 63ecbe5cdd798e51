"""Tool API endpoints.

POST /tools/{function}  RPC target for the tool invoker (service key auth);
                        body and response follow the tool wire contract.
GET  /tools             Tools visible to an external API key.
POST /tools/execute     Execute a tool for an external API key's company.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from app.chains.agent_tools import (
    get_registry,
    get_tools_for_context,
    invoke_tool,
    resolve_tool_name,
    visible_tool_names,
)
from app.core.auth import ApiKeyContext, require_api_key, require_service_key
from app.core.logging import get_logger
from app.core.schemas_tools import ToolRequest, ToolRequestMetadata, ToolResponse
from app.core.security_context import build_system_context

logger = get_logger(__name__)

router = APIRouter()


class ExecuteToolRequest(BaseModel):
    """External tool execution request."""

    tool: str = Field(..., description="Tool name or function name")
    args: dict[str, Any] = Field(default_factory=dict)
    project_id: str | None = Field(default=None, description="Pre-scope the call to one project")
    metadata: ToolRequestMetadata | None = None


def _tool_json(response: ToolResponse) -> JSONResponse:
    return JSONResponse(content=response.to_wire(), status_code=response.status_code)


@router.get("/tools")
async def list_tools(api_key: ApiKeyContext = Depends(require_api_key)) -> dict:
    """List tool definitions available to the API key."""
    context = build_system_context(api_key.company_id)
    tools = get_tools_for_context(context, api_key.enabled_tools)
    return {"tools": tools, "count": len(tools)}


@router.post("/tools/execute")
async def execute_tool(
    body: ExecuteToolRequest,
    api_key: ApiKeyContext = Depends(require_api_key),
) -> JSONResponse:
    """
    Execute a tool on behalf of the API key's company.

    Raises:
        HTTPException 404: Unknown tool
        HTTPException 403: Tool not enabled for this key
    """
    tool_name = resolve_tool_name(body.tool)
    if tool_name is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {body.tool}")

    context = build_system_context(api_key.company_id, body.project_id)
    if tool_name not in visible_tool_names(context, api_key.enabled_tools):
        raise HTTPException(status_code=403, detail=f"Tool {tool_name} is not enabled for this API key")

    metadata = body.metadata.model_dump() if body.metadata else {}
    metadata["orchestrator"] = f"api-key:{api_key.key_id}"

    logger.info(
        f"External execution of {tool_name}",
        extra={"tool": tool_name, "company_id": api_key.company_id},
    )
    response = await invoke_tool(tool_name, body.args, context, metadata)
    return _tool_json(response)


@router.post("/tools/{function}", dependencies=[Depends(require_service_key)])
async def call_tool(function: str, request: Request) -> JSONResponse:
    """
    Serve one tool over the wire contract.

    The status field in the body carries the business outcome; the HTTP status
    mirrors it (403/404/400/500, 200 otherwise).
    """
    tool_name = resolve_tool_name(function)
    handler = get_registry().get(tool_name) if tool_name else None
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {function}")

    try:
        raw = await request.json()
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if not isinstance(raw, dict):
        raise HTTPException(status_code=400, detail="Request body must be an object")

    try:
        tool_request = ToolRequest.model_validate(raw)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid tool request: {e.errors()[0]['msg']}")

    response = await handler(tool_request)
    return _tool_json(response)
