"""Tests for the inbound agent tool-use loop."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.chains.inbound_agent import (
    FALLBACK_REPLY,
    REMINDER_PROMPT,
    build_messages,
    reminder_message,
    run_completion,
    run_reminder_check,
)
from app.core.config import get_settings
from app.core.schemas_sessions import ChatSession
from app.core.security_context import build_contact_context, build_system_context

from tests.fixtures_tenants import COMPANY_A, HOMEOWNER_ID, PROJECT_A1


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_use_block(block_id, name, tool_input):
    return SimpleNamespace(type="tool_use", id=block_id, name=name, input=tool_input)


class FakeMessages:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.responses.pop(0)


class FakeAnthropic:
    def __init__(self, *responses):
        self.messages = FakeMessages(responses)


def session(history=None):
    return ChatSession(
        id="s1",
        channel_type="sms",
        channel_identifier="+14155550101",
        company_id=COMPANY_A,
        contact_id=HOMEOWNER_ID,
        project_id=PROJECT_A1,
        conversation_history=history or [],
    )


class TestBuildMessages:
    def test_new_conversation(self):
        assert build_messages(session(), "Hi") == [{"role": "user", "content": "Hi"}]

    def test_history_ending_with_the_new_turn_is_not_duplicated(self):
        history = [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
            {"role": "user", "content": "When is tile delivered?"},
        ]
        messages = build_messages(session(history), "When is tile delivered?")
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[-1]["content"] == "When is tile delivered?"

    def test_leading_assistant_turns_are_dropped(self):
        history = [{"role": "assistant", "content": "Welcome"}]
        messages = build_messages(session(history), "Thanks")
        assert messages == [{"role": "user", "content": "Thanks"}]


@pytest.mark.asyncio
async def test_tool_calls_run_under_callers_context(tenants):
    client = FakeAnthropic(
        SimpleNamespace(
            stop_reason="tool_use",
            content=[tool_use_block("tu_1", "crm_read", {"resource_type": "project"})],
        ),
        SimpleNamespace(stop_reason="end_turn", content=[text_block("Your project is Maple Street Remodel.")]),
    )
    context = build_contact_context(COMPANY_A, HOMEOWNER_ID, PROJECT_A1)

    completion = await run_completion(session(), "Which project is mine?", context, get_settings(), client)

    assert completion.reply == "Your project is Maple Street Remodel."
    assert completion.turns == 2
    assert [(c.name, c.status) for c in completion.tool_calls] == [("crm_read", "success")]

    first_call = client.messages.calls[0]
    tool_names = {t["name"] for t in first_call["tools"]}
    assert "crm_write" not in tool_names
    assert "channel_response" not in tool_names
    assert f"Current project_id: {PROJECT_A1}" in first_call["system"]

    tool_result = client.messages.calls[1]["messages"][-1]["content"][0]
    assert tool_result["tool_use_id"] == "tu_1"
    assert tool_result["is_error"] is False


@pytest.mark.asyncio
async def test_tool_errors_are_returned_to_the_model(tenants):
    client = FakeAnthropic(
        SimpleNamespace(
            stop_reason="tool_use",
            content=[tool_use_block("tu_1", "crm_read", {"resource_type": "project", "project_id": "other"})],
        ),
        SimpleNamespace(stop_reason="end_turn", content=[text_block("A team member will follow up.")]),
    )
    context = build_contact_context(COMPANY_A, HOMEOWNER_ID, PROJECT_A1)

    completion = await run_completion(session(), "Show me the other project", context, get_settings(), client)

    assert completion.tool_calls[0].status == "error"
    tool_result = client.messages.calls[1]["messages"][-1]["content"][0]
    assert tool_result["is_error"] is True


@pytest.mark.asyncio
async def test_model_failure_returns_fallback(tenants):
    class BrokenMessages:
        async def create(self, **kwargs):
            raise RuntimeError("overloaded")

    client = SimpleNamespace(messages=BrokenMessages())
    context = build_contact_context(COMPANY_A, HOMEOWNER_ID, PROJECT_A1)

    completion = await run_completion(session(), "Hello", context, get_settings(), client)

    assert completion.reply == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_missing_api_key_returns_fallback(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    context = build_contact_context(COMPANY_A, HOMEOWNER_ID, PROJECT_A1)

    completion = await run_completion(session(), "Hello", context, get_settings())

    assert completion.reply == FALLBACK_REPLY
    assert completion.tool_calls == []


def test_reminder_message_carries_project_state():
    project = {"id": PROJECT_A1, "project_name": "Maple Street Remodel", "next_check_date": "2026-03-01", "summary": "Tile set"}

    text = reminder_message(project, datetime(2026, 3, 2, tzinfo=timezone.utc))

    assert "Today: 2026-03-02" in text
    assert "Project: Maple Street Remodel" in text
    assert "Summary: Tile set" in text


@pytest.mark.asyncio
async def test_reminder_check_runs_without_a_conversation(tenants):
    client = FakeAnthropic(SimpleNamespace(stop_reason="end_turn", content=[text_block("No action needed.")]))
    project = {"id": PROJECT_A1, "project_name": "Maple Street Remodel", "next_check_date": "2026-03-01"}

    completion = await run_reminder_check(project, build_system_context(COMPANY_A, PROJECT_A1), get_settings(), client)

    assert completion.failed is False
    call = client.messages.calls[0]
    assert REMINDER_PROMPT in call["system"]
    assert [m["role"] for m in call["messages"]] == ["user"]
    assert "channel_response" not in {t["name"] for t in call["tools"]}


@pytest.mark.asyncio
async def test_reminder_check_without_api_key_is_marked_failed(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    project = {"id": PROJECT_A1, "project_name": "Maple Street Remodel"}

    completion = await run_reminder_check(project, build_system_context(COMPANY_A, PROJECT_A1), get_settings())

    assert completion.failed is True
