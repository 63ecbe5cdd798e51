"""Inbound agent completion loop.

One call answers one inbound message: the model sees the session history and
the tools the caller may use, tool calls are dispatched through the invoker
under the caller's security context, and the loop stops at the first turn
without tool use (or after AGENT_MAX_TOOL_TURNS round trips).

Scheduled reminder checks run the same loop with no conversation behind them.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from anthropic import AsyncAnthropic

from app.chains.agent_tools import get_tools_for_context, invoke_tool
from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.schemas_sessions import ChatSession
from app.core.security_context import SecurityContext

logger = get_logger(__name__)

# Delivery is done by the pipeline after the loop, not by the model
PIPELINE_ONLY_TOOLS = frozenset({"channel_response"})

SYSTEM_PROMPT = """You are the project assistant for a construction and home-improvement company.
You talk with homeowners, subcontractors and staff about their projects over SMS, email and web chat.

Rules:
- Use identify_project to find the project before answering project-specific questions.
- Never change anything directly. Propose changes with create_action_record; most actions
  wait for a human to approve them.
- Use escalation only when a project needs immediate management attention.
- Use knowledge_lookup for company policies, warranties and process questions.
- Keep replies short and plain. SMS replies must fit in a few sentences.
- If a tool returns an error, do not invent data; tell the user a team member will follow up.
"""

REMINDER_PROMPT = """This is a scheduled project check, not a conversation. Nobody will read your reply.
Look at the project, decide whether anyone needs to be contacted or anything updated, and propose
it with create_action_record. If nothing is needed, create a "none" action that says why.
Set a new reminder when the project should be checked again.
"""

FALLBACK_REPLY = "Thanks for your message. A member of our team will get back to you shortly."


@dataclass
class ToolCallRecord:
    name: str
    input: dict[str, Any]
    status: str
    error: str | None = None


@dataclass
class AgentCompletion:
    reply: str
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    prompt_run_id: str = ""
    turns: int = 0
    failed: bool = False


def build_messages(session: ChatSession, user_message: str) -> list[dict[str, Any]]:
    """Anthropic messages from the session history plus the new user turn."""
    messages: list[dict[str, Any]] = []
    for entry in session.conversation_history:
        # Consecutive same-role turns are merged; the API requires alternation
        if messages and messages[-1]["role"] == entry.role:
            messages[-1]["content"] += "\n" + entry.content
        else:
            messages.append({"role": entry.role, "content": entry.content})

    if messages and messages[-1]["role"] == "user":
        if messages[-1]["content"].endswith(user_message):
            return messages
        messages[-1]["content"] += "\n" + user_message
    else:
        messages.append({"role": "user", "content": user_message})

    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages


def _system_prompt(session: ChatSession, context: SecurityContext) -> str:
    lines = [SYSTEM_PROMPT, f"Channel: {session.channel_type.value}"]
    if context.project_id:
        lines.append(f"Current project_id: {context.project_id}")
    return "\n".join(lines)


def _final_text(content: list[Any]) -> str:
    parts = [block.text for block in content if getattr(block, "type", None) == "text"]
    return "\n".join(p for p in parts if p).strip()


async def run_completion(
    session: ChatSession,
    user_message: str,
    context: SecurityContext,
    settings: Settings | None = None,
    client: AsyncAnthropic | None = None,
) -> AgentCompletion:
    """
    Run the tool-use loop for one inbound message.

    Args:
        session: Session the message arrived on (history already excludes the new turn or ends with it)
        user_message: The inbound message text
        context: Caller's security context; every tool call runs under it
        settings: Resolved settings
        client: Anthropic client (created from settings when omitted)

    Returns:
        AgentCompletion with the reply text and a record of the tool calls
    """
    settings = settings or get_settings()
    client = client or _default_client(settings)
    if client is None:
        return AgentCompletion(reply=FALLBACK_REPLY, failed=True)

    messages = build_messages(session, user_message)
    return await _run_tool_loop(client, _system_prompt(session, context), messages, context, settings)


def reminder_message(project: dict[str, Any], now: datetime) -> str:
    """User turn that opens a due-reminder check for a project."""
    lines = [
        "A scheduled follow-up for this project is due.",
        f"Today: {now.date().isoformat()}",
        f"Project: {project.get('project_name') or project['id']}",
        f"Scheduled check: {project.get('next_check_date')}",
    ]
    if project.get("summary"):
        lines.append(f"Summary: {project['summary']}")
    return "\n".join(lines)


async def run_reminder_check(
    project: dict[str, Any],
    context: SecurityContext,
    settings: Settings | None = None,
    client: AsyncAnthropic | None = None,
    now: datetime | None = None,
) -> AgentCompletion:
    """
    Run the tool-use loop for a project whose follow-up reminder is due.

    There is no inbound conversation: the model gets the project state and
    proposes actions (or records that none are needed) under a system context.
    """
    settings = settings or get_settings()
    client = client or _default_client(settings)
    if client is None:
        return AgentCompletion(reply="", failed=True)

    now = now or datetime.now(timezone.utc)
    system = "\n".join([SYSTEM_PROMPT, REMINDER_PROMPT, f"Current project_id: {project['id']}"])
    messages = [{"role": "user", "content": reminder_message(project, now)}]
    return await _run_tool_loop(client, system, messages, context, settings)


def _default_client(settings: Settings) -> AsyncAnthropic | None:
    if not settings.ANTHROPIC_API_KEY:
        logger.warning("ANTHROPIC_API_KEY not configured; returning fallback reply")
        return None
    return AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)


async def _run_tool_loop(
    client: AsyncAnthropic,
    system: str,
    messages: list[dict[str, Any]],
    context: SecurityContext,
    settings: Settings,
) -> AgentCompletion:
    prompt_run_id = str(uuid.uuid4())
    log_extra = {"prompt_run_id": prompt_run_id, "company_id": context.company_id}

    tools = [t for t in get_tools_for_context(context) if t["name"] not in PIPELINE_ONLY_TOOLS]
    metadata = {"orchestrator": settings.AGENT_ORCHESTRATOR_NAME, "prompt_run_id": prompt_run_id}

    completion = AgentCompletion(reply="", prompt_run_id=prompt_run_id)

    for turn in range(settings.AGENT_MAX_TOOL_TURNS + 1):
        completion.turns = turn + 1
        try:
            response = await client.messages.create(
                model=settings.AGENT_MODEL,
                max_tokens=settings.AGENT_MAX_TOKENS,
                system=system,
                tools=tools,
                messages=messages,
            )
        except Exception as e:
            logger.error(f"Agent completion failed: {e}", extra=log_extra)
            completion.reply = completion.reply or FALLBACK_REPLY
            completion.failed = True
            return completion

        text = _final_text(response.content)
        if response.stop_reason != "tool_use" or turn == settings.AGENT_MAX_TOOL_TURNS:
            completion.reply = text or FALLBACK_REPLY
            break

        tool_results = []
        for block in response.content:
            if block.type != "tool_use":
                continue
            result = await invoke_tool(block.name, dict(block.input or {}), context, metadata)
            completion.tool_calls.append(
                ToolCallRecord(name=block.name, input=dict(block.input or {}), status=result.status.value, error=result.error)
            )
            tool_results.append(
                {
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": json.dumps(result.to_wire(), default=str),
                    "is_error": not result.ok,
                }
            )

        messages.append({"role": "assistant", "content": response.content})
        messages.append({"role": "user", "content": tool_results})

    logger.info(
        f"Agent finished in {completion.turns} turn(s) with {len(completion.tool_calls)} tool call(s)",
        extra=log_extra,
    )
    return completion
