"""Tool registry: tool name → handler, and per-caller tool visibility."""

from functools import lru_cache
from typing import Any

from app.core.security_context import SecurityContext

from .definitions import TOOL_NAMES, get_tool_definitions
from .guards import ToolHandler

# CRM writes are an admin/system capability
CONTACT_HIDDEN_TOOLS = frozenset({"crm_write"})


class ToolRegistry:
    """Maps tool names to in-process handlers.

    The handler map is built on first use to avoid circular imports between
    the tool modules and the engine they call into.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] | None = None

    def _build_handler_map(self) -> dict[str, ToolHandler]:
        from .tools_actions import create_action_record
        from .tools_channel import channel_response
        from .tools_crm import crm_read, crm_write
        from .tools_escalation import escalation
        from .tools_identify_project import identify_project
        from .tools_knowledge import knowledge_lookup
        from .tools_session import session_manager

        return {
            "identify_project": identify_project,
            "crm_read": crm_read,
            "crm_write": crm_write,
            "create_action_record": create_action_record,
            "knowledge_lookup": knowledge_lookup,
            "channel_response": channel_response,
            "escalation": escalation,
            "session_manager": session_manager,
        }

    @property
    def handlers(self) -> dict[str, ToolHandler]:
        if self._handlers is None:
            self._handlers = self._build_handler_map()
        return self._handlers

    def get(self, tool_name: str) -> ToolHandler | None:
        return self.handlers.get(tool_name)

    def names(self) -> list[str]:
        return sorted(self.handlers)


@lru_cache(maxsize=1)
def get_registry() -> ToolRegistry:
    """Process-wide registry."""
    return ToolRegistry()


def visible_tool_names(
    context: SecurityContext,
    enabled_tools: list[str] | None = None,
) -> frozenset[str]:
    """
    Names of the tools a caller may use.

    Args:
        context: Caller's security context
        enabled_tools: Explicit allow-list (e.g. from an API key); None means all

    Returns:
        Tool names visible to the caller
    """
    names = set(TOOL_NAMES)
    if enabled_tools is not None:
        names &= set(enabled_tools)
    if context.is_contact:
        names -= CONTACT_HIDDEN_TOOLS
    return frozenset(names)


def get_tools_for_context(
    context: SecurityContext,
    enabled_tools: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Tool definitions a caller may see."""
    return get_tool_definitions(visible_tool_names(context, enabled_tools))
