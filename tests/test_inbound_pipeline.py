"""Tests for the inbound message graph."""

from unittest.mock import AsyncMock, patch

import pytest

from app.chains.inbound_agent import AgentCompletion
from app.core.messaging_service import SendResult
from app.core.schemas_sessions import ChannelType, InboundMessage
from app.graphs.inbound_message_graph import process_inbound_message

from tests.fixtures_tenants import COMPANY_B, HOMEOWNER_PHONE, PROJECT_A1, SUPER_PHONE

GRAPH = "app.graphs.inbound_message_graph"


def sent() -> AsyncMock:
    return AsyncMock(return_value=SendResult(delivered=True, channel="sms", provider_message_id="SM1"))


@pytest.mark.asyncio
async def test_conversation_runs_agent_and_delivers_reply(tenants):
    completion = AgentCompletion(reply="Cabinets arrive Monday.", prompt_run_id="run-1")
    agent = AsyncMock(return_value=completion)
    channel_send = sent()

    with patch(f"{GRAPH}.run_completion", new=agent), patch(
        "app.chains.agent_tools.tools_channel.send_message", new=channel_send
    ):
        result = await process_inbound_message(
            InboundMessage(channel_type=ChannelType.SMS, channel_identifier=HOMEOWNER_PHONE, body="Cabinets?")
        )

    assert result["route"] == "conversation"
    assert result["reply"] == "Cabinets arrive Monday."
    assert result["delivered"] is True

    session_arg, message_arg, context_arg = agent.await_args.args[:3]
    assert message_arg == "Cabinets?"
    assert context_arg.project_id == PROJECT_A1
    assert session_arg.conversation_history[-1].content == "Cabinets?"

    channel_send.assert_awaited_once_with("sms", HOMEOWNER_PHONE, "Cabinets arrive Monday.", subject=None)
    history = tenants.get("chat_sessions", result["session_id"])["conversation_history"]
    assert [(m["role"], m["content"]) for m in history] == [
        ("user", "Cabinets?"),
        ("assistant", "Cabinets arrive Monday."),
    ]


@pytest.mark.asyncio
async def test_menu_is_sent_without_calling_agent(tenants):
    tenants.seed("contacts", company_id=COMPANY_B, full_name="Sam Super", phone_number=SUPER_PHONE)
    agent = AsyncMock()
    router_send = sent()

    with patch(f"{GRAPH}.run_completion", new=agent), patch(f"{GRAPH}.send_message", new=router_send):
        result = await process_inbound_message(
            InboundMessage(channel_type=ChannelType.SMS, channel_identifier=SUPER_PHONE, body="Hello")
        )

    assert result["route"] == "selection_prompt"
    agent.assert_not_awaited()
    channel, recipient, body = router_send.await_args.args
    assert (channel, recipient) == ("sms", SUPER_PHONE)
    assert "1. Acme Builders" in body
    assert "2. Bolt Renovations" in body


@pytest.mark.asyncio
async def test_web_menu_reply_is_returned_not_sent(tenants):
    router_send = sent()

    with patch(f"{GRAPH}.send_message", new=router_send):
        result = await process_inbound_message(
            InboundMessage(channel_type=ChannelType.WEB, channel_identifier="browser-1", body="Hi")
        )

    assert result["route"] == "unresolved"
    assert result["reply"]
    router_send.assert_not_awaited()


@pytest.mark.asyncio
async def test_delivery_failure_is_reported(tenants):
    agent = AsyncMock(return_value=AgentCompletion(reply="On it.", prompt_run_id="run-2"))
    failed = AsyncMock(return_value=SendResult(delivered=False, channel="sms", error="unreachable"))

    with patch(f"{GRAPH}.run_completion", new=agent), patch(
        "app.chains.agent_tools.tools_channel.send_message", new=failed
    ):
        result = await process_inbound_message(
            InboundMessage(channel_type=ChannelType.SMS, channel_identifier=HOMEOWNER_PHONE, body="Status?")
        )

    assert result["delivered"] is False
    assert "unreachable" in result["delivery_error"]
