"""LangGraph pipeline for one inbound channel message.

route ─┬─(conversation)─▶ record_user_message ─▶ run_agent ─▶ deliver_reply ─▶ END
       └─(menu / retry / resolved / unresolved)─▶ send_router_reply ─▶ END
"""

from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, StateGraph

from app.chains.agent_tools import invoke_tool
from app.chains.inbound_agent import run_completion
from app.core.channel_router import RouteKind, RouteResult, route_inbound_message
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.messaging_service import send_message
from app.core.schemas_sessions import ChannelType, ChatSession, InboundMessage
from app.db.chat_sessions import append_message

logger = get_logger(__name__)

MAX_STEPS = 8


@dataclass
class InboundMessageState:
    """State for the inbound message graph."""

    # Input
    message: InboundMessage

    # Processing state
    step_count: int = 0
    route: RouteResult | None = None
    session: ChatSession | None = None
    prompt_run_id: str | None = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)

    # Output
    reply: str | None = None
    delivered: bool = False
    delivery_error: str | None = None


def _check_max_steps(state: InboundMessageState) -> InboundMessageState:
    """Check and increment step count, raise if exceeded."""
    state.step_count += 1
    if state.step_count > MAX_STEPS:
        raise RuntimeError(f"Graph exceeded max steps ({MAX_STEPS})")
    return state


def route(state: InboundMessageState) -> dict[str, Any]:
    """Resolve the sender to a session and security context."""
    state = _check_max_steps(state)

    result = route_inbound_message(state.message, get_settings())
    logger.info(
        f"Inbound {state.message.channel_type.value} message routed as {result.kind.value}",
        extra={"company_id": result.security_context.company_id if result.security_context else None},
    )
    return {"route": result, "session": result.session, "step_count": state.step_count}


def _after_route(state: InboundMessageState) -> str:
    if state.route and state.route.forward_to_agent:
        return "record_user_message"
    return "send_router_reply"


async def send_router_reply(state: InboundMessageState) -> dict[str, Any]:
    """Send a menu, re-prompt or confirmation without calling the agent."""
    state = _check_max_steps(state)

    reply = state.route.outbound_message if state.route else None
    channel = state.message.channel_type
    if not reply or channel == ChannelType.WEB:
        # Web clients receive the reply in the webhook response
        return {"reply": reply, "delivered": bool(reply), "step_count": state.step_count}

    recipient = state.session.channel_identifier if state.session else state.message.channel_identifier
    result = await send_message(channel.value, recipient, reply)
    return {
        "reply": reply,
        "delivered": result.delivered,
        "delivery_error": result.error,
        "step_count": state.step_count,
    }


def record_user_message(state: InboundMessageState) -> dict[str, Any]:
    """Append the inbound text to the session history."""
    state = _check_max_steps(state)

    session = state.session
    context = state.route.security_context
    updated = append_message(session.id, context.company_id, "user", state.message.body)
    if updated is not None:
        session = ChatSession.model_validate(updated)
    return {"session": session, "step_count": state.step_count}


async def run_agent(state: InboundMessageState) -> dict[str, Any]:
    """Run the tool-use loop under the sender's security context."""
    state = _check_max_steps(state)

    completion = await run_completion(
        state.session,
        state.message.body,
        state.route.security_context,
        get_settings(),
    )
    return {
        "reply": completion.reply,
        "prompt_run_id": completion.prompt_run_id,
        "tool_calls": [
            {"name": c.name, "status": c.status, "error": c.error} for c in completion.tool_calls
        ],
        "step_count": state.step_count,
    }


async def deliver_reply(state: InboundMessageState) -> dict[str, Any]:
    """Record and deliver the agent's reply through channel_response."""
    state = _check_max_steps(state)

    response = await invoke_tool(
        "channel_response",
        {"session_id": state.session.id, "message": state.reply},
        state.route.security_context,
        {"prompt_run_id": state.prompt_run_id},
    )
    if not response.ok:
        logger.error(
            f"Failed to deliver reply on session {state.session.id}: {response.error}",
            extra={"prompt_run_id": state.prompt_run_id},
        )
    return {
        "delivered": response.ok,
        "delivery_error": response.error,
        "step_count": state.step_count,
    }


def _build_graph() -> StateGraph:
    """Build the inbound message graph."""
    graph = StateGraph(InboundMessageState)

    graph.add_node("route", route)
    graph.add_node("send_router_reply", send_router_reply)
    graph.add_node("record_user_message", record_user_message)
    graph.add_node("run_agent", run_agent)
    graph.add_node("deliver_reply", deliver_reply)

    graph.set_entry_point("route")
    graph.add_conditional_edges(
        "route",
        _after_route,
        {"record_user_message": "record_user_message", "send_router_reply": "send_router_reply"},
    )
    graph.add_edge("send_router_reply", END)
    graph.add_edge("record_user_message", "run_agent")
    graph.add_edge("run_agent", "deliver_reply")
    graph.add_edge("deliver_reply", END)

    return graph


# Compile the graph once at module load
_compiled_graph = _build_graph().compile()


async def process_inbound_message(message: InboundMessage) -> dict[str, Any]:
    """
    Run the inbound pipeline for one message.

    Returns:
        Summary dict: route kind, session id, reply, delivery outcome
    """
    final_state = await _compiled_graph.ainvoke(InboundMessageState(message=message))

    result: RouteResult | None = final_state.get("route")
    session: ChatSession | None = final_state.get("session")
    return {
        "route": result.kind.value if result else RouteKind.UNRESOLVED.value,
        "session_id": session.id if session else None,
        "reply": final_state.get("reply"),
        "delivered": final_state.get("delivered", False),
        "delivery_error": final_state.get("delivery_error"),
        "tool_calls": final_state.get("tool_calls", []),
    }
