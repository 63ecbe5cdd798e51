"""Agent tools: package barrel exports."""

from .definitions import TOOL_NAMES, get_tool_definitions, resolve_tool_name
from .invoker import invoke_tool
from .registry import get_registry, get_tools_for_context, visible_tool_names

__all__ = [
    "TOOL_NAMES",
    "get_tool_definitions",
    "resolve_tool_name",
    "invoke_tool",
    "get_registry",
    "get_tools_for_context",
    "visible_tool_names",
]
