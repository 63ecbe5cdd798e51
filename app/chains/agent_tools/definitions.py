"""Tool definitions for the inbound agent (Anthropic tool format).

Each tool is also an independently callable RPC target; ``function`` is the
route name it is served under (``POST /v1/tools/{function}``).
"""

from typing import Any

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "identify_project",
        "function": "tool-identify-project",
        "description": (
            "Identifies a project based on a search query. Use this to find projects by "
            "name, address, CRM ID, or other identifiers. Returns matching projects and "
            "their contacts."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query (address, project name, CRM ID, or project UUID)",
                },
                "type": {
                    "type": "string",
                    "enum": ["any", "id", "crm_id", "name", "address"],
                    "description": "'any' searches all fields, others are specific",
                },
                "return_all": {
                    "type": "boolean",
                    "description": "Return every match instead of the best few",
                },
                "exact_match": {
                    "type": "boolean",
                    "description": "Match the whole value instead of a substring",
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": "crm_read",
        "function": "tool-crm-read",
        "description": (
            "Reads data from the CRM including projects, contacts, notes and activities. "
            "Always scoped to the caller's company."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "resource_type": {
                    "type": "string",
                    "enum": ["project", "contact", "activity", "note", "task"],
                    "description": "The type of resource to read",
                },
                "project_id": {"type": "string", "description": "Project ID to filter results"},
                "crm_id": {"type": "string", "description": "ID of a specific resource"},
                "limit": {"type": "number", "description": "Maximum number of results to return"},
            },
            "required": ["resource_type"],
        },
    },
    {
        "name": "crm_write",
        "function": "tool-crm-write",
        "description": (
            "Proposes a write to the CRM for a project, task, note or contact. Writes are "
            "staged for human approval unless requires_approval is explicitly false, in "
            "which case they are queued for asynchronous delivery."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "project_id": {
                    "type": "string",
                    "description": "The ID of the project related to this write",
                },
                "resource_type": {
                    "type": "string",
                    "enum": ["project", "task", "note", "contact"],
                    "description": "The type of resource to write",
                },
                "operation_type": {
                    "type": "string",
                    "enum": ["create", "update", "delete"],
                    "description": "The operation to perform",
                },
                "resource_id": {
                    "type": "string",
                    "description": "For updates/deletes: the ID of the existing resource",
                },
                "data": {
                    "type": "object",
                    "description": "The data to write. For notes, include 'content'.",
                },
                "requires_approval": {
                    "type": "boolean",
                    "description": "Whether the write needs human approval (default true)",
                },
            },
            "required": ["project_id", "resource_type", "operation_type", "data"],
        },
    },
    {
        "name": "create_action_record",
        "function": "tool-create-action-record",
        "description": (
            "Creates an action record based on your analysis. Use this when an action is "
            "needed: send a message, update project data, set a reminder, escalate, or "
            "flag for human review. Most actions wait for human approval."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "action_type": {
                    "type": "string",
                    "enum": [
                        "message",
                        "send_message",
                        "set_future_reminder",
                        "data_update",
                        "escalation",
                        "human_in_loop",
                        "no_action",
                    ],
                    "description": "The type of action to create",
                },
                "priority": {
                    "type": "string",
                    "enum": ["low", "medium", "high"],
                    "description": "Priority level of the action",
                },
                "project_id": {"type": "string", "description": "Project the action concerns"},
                "days_until_check": {
                    "type": "number",
                    "description": "For reminders: how many days until the check (default 7)",
                },
                "check_reason": {"type": "string", "description": "For reminders: why the check is needed"},
                "recipient": {
                    "type": "string",
                    "description": "For messages: the name or role of the recipient",
                },
                "recipient_id": {
                    "type": "string",
                    "description": "For messages: the UUID of the recipient contact",
                },
                "message_text": {"type": "string", "description": "For messages: the content to send"},
                "channel": {
                    "type": "string",
                    "enum": ["sms", "email"],
                    "description": "For messages: delivery channel (inferred when omitted)",
                },
                "description": {"type": "string", "description": "Description of the action"},
                "reason": {"type": "string", "description": "Reason for the action"},
                "data_field": {"type": "string", "description": "For data updates: the field to update"},
                "data_value": {"type": "string", "description": "For data updates: the new value"},
                "escalation_details": {
                    "type": "string",
                    "description": "For escalations: details about the escalation",
                },
            },
            "required": ["action_type"],
        },
    },
    {
        "name": "knowledge_lookup",
        "function": "tool-knowledge-lookup",
        "description": "Searches the company knowledge base for relevant information to answer questions.",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
                "limit": {
                    "type": "number",
                    "description": "Maximum number of results to return (default: 5)",
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": "channel_response",
        "function": "tool-channel-response",
        "description": "Send a response to the user via the channel of their session (web, SMS, email).",
        "input_schema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "The session to respond to"},
                "message": {"type": "string", "description": "The message content to send"},
                "project_id": {
                    "type": "string",
                    "description": "Optional project ID to associate with the message",
                },
            },
            "required": ["session_id", "message"],
        },
    },
    {
        "name": "escalation",
        "function": "tool-escalation",
        "description": (
            "Creates an escalation for a project that requires immediate management attention "
            "due to issues, delays, or non-responsive contacts."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "reason": {"type": "string", "description": "The reason for escalating this project"},
                "description": {
                    "type": "string",
                    "description": "Detailed description of the escalation situation",
                },
                "escalation_details": {
                    "type": "string",
                    "description": "Additional details about what requires escalation",
                },
                "project_id": {"type": "string", "description": "The project that needs escalation"},
            },
            "required": ["reason", "project_id"],
        },
    },
    {
        "name": "session_manager",
        "function": "tool-session-manager",
        "description": (
            "Manage chat sessions across channels (web, SMS, email): get, update, create "
            "or find active sessions."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["get", "update", "create", "find"],
                    "description": "The action to perform on the session",
                },
                "session_id": {"type": "string", "description": "Session to get or update"},
                "project_id": {"type": "string", "description": "Project associated with the session"},
                "channel_type": {
                    "type": "string",
                    "enum": ["web", "sms", "email"],
                    "description": "The channel of the session",
                },
                "channel_identifier": {
                    "type": "string",
                    "description": "Phone number, browser session id or email address",
                },
                "contact_id": {"type": "string", "description": "Contact associated with the session"},
                "active": {"type": "boolean", "description": "For update: deactivate with false"},
            },
            "required": ["action"],
        },
    },
]

_BY_NAME: dict[str, dict[str, Any]] = {d["name"]: d for d in TOOL_DEFINITIONS}
_BY_FUNCTION: dict[str, dict[str, Any]] = {d["function"]: d for d in TOOL_DEFINITIONS}

TOOL_NAMES: frozenset[str] = frozenset(_BY_NAME)


def get_tool_definitions(names: set[str] | frozenset[str] | None = None) -> list[dict[str, Any]]:
    """Tool definitions for the Anthropic API (without the routing field)."""
    return [
        {k: v for k, v in d.items() if k != "function"}
        for d in TOOL_DEFINITIONS
        if names is None or d["name"] in names
    ]


def get_function_name(tool_name: str) -> str | None:
    """RPC route name for a tool."""
    definition = _BY_NAME.get(tool_name)
    return definition["function"] if definition else None


def resolve_tool_name(name_or_function: str) -> str | None:
    """Accept either a tool name or its RPC function name."""
    if name_or_function in _BY_NAME:
        return name_or_function
    definition = _BY_FUNCTION.get(name_or_function)
    return definition["name"] if definition else None
