"""Slash commands, the palette and tool runs inside a conversation."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeLLM, job_offer_decision, make_decision

from decision_coach.chat.commands import CommandState, parse_slash_command, remove_slash_command
from decision_coach.chat.models import MessageRole, ToolInputStatus
from decision_coach.chat.palette import ToolPalette
from decision_coach.chat.pipeline import SendStatus
from decision_coach.retrieval.decision_index import SimilarityHit
from decision_coach.tools import build_default_registry
from decision_coach.tools.base import CoachingTool, ToolCategory, ToolResult


@pytest.mark.parametrize(
    "text,state,tool_id",
    [
        ("", CommandState.NONE, None),
        ("hello /patterns ", CommandState.NONE, None),
        ("/", CommandState.TRIGGER, None),
        ("/pat", CommandState.PARTIAL, None),
        ("/patterns", CommandState.PARTIAL, "pattern-detective"),
        ("/patterns ", CommandState.EXACT_MATCH, "pattern-detective"),
        ("/PreMortem ", CommandState.EXACT_MATCH, "pre-mortem"),
        ("/unknown ", CommandState.PARTIAL, None),
    ],
)
def test_parse_slash_command(text, state, tool_id):
    command = parse_slash_command(text)
    assert command.state is state
    assert command.tool_id == tool_id


def test_cursor_before_slash_is_not_a_command():
    assert parse_slash_command("/patterns ", cursor=0).state is CommandState.NONE
    assert parse_slash_command("/pat", cursor=3).state is CommandState.PARTIAL


def test_remove_slash_command():
    assert remove_slash_command("/patterns career moves") == "career moves"
    assert remove_slash_command("/") == ""
    assert remove_slash_command("no command") == "no command"


def test_palette_filters_and_wraps(fake_llm, retriever):
    palette = ToolPalette(build_default_registry(fake_llm, retriever))

    assert len(palette.open()) == 4
    assert palette.highlighted.id == "pattern-detective"
    assert palette.move_up().id == "bias-detector"
    assert palette.move_down().id == "pattern-detective"

    matches = palette.filter("mortem")
    assert [tool.id for tool in matches] == ["pre-mortem"]
    assert palette.autocomplete() == "/premortem "
    assert not palette.visible


def test_palette_cancel_strips_command(fake_llm, retriever):
    palette = ToolPalette(build_default_registry(fake_llm, retriever))
    palette.open("pa")
    assert palette.cancel("/pa") == ""
    assert not palette.visible
    assert palette.move_down() is None


def test_premortem_command_runs_immediately(make_service, journal, chat_db):
    journal.save_decision(job_offer_decision())
    llm = FakeLLM()
    service = make_service(llm)

    async def scenario():
        service.new_session(["job"])
        await service.check_backend()
        command = await service.update_draft("/premortem ")
        await service.tools.wait_for_followups()
        await service.close_view()
        return command

    command = asyncio.run(scenario())
    assert command.state is CommandState.EXACT_MATCH
    assert service.state.draft == ""
    roles = [m.role for m in service.messages]
    assert MessageRole.TOOL_INPUT not in roles
    assert roles[0] is MessageRole.TOOL_RESULT
    result = service.messages[0]
    assert result.tool_execution.success
    assert "Accept the offer" in result.content
    assert len(llm.chat_calls) == 1

    follow_up = [m for m in service.messages if m.role is MessageRole.USER]
    assert follow_up and 'The user just ran the "Pre-Mortem Facilitator" tool' in follow_up[0].content
    assert 'pre-mortem on "Accept the offer"' in follow_up[0].content
    assert "You are interpreting a Pre-Mortem analysis" in llm.stream_calls[0][0].content

    stored_roles = [m.role for m in chat_db.list_messages(service.state.session_id)]
    assert stored_roles == [MessageRole.TOOL_RESULT, MessageRole.USER, MessageRole.ASSISTANT]


def test_premortem_without_anchor_fails_cleanly(make_service):
    service = make_service()

    async def scenario():
        await service.check_backend()
        return await service.send("/premortem ")

    result = asyncio.run(scenario())
    assert result.status is SendStatus.COMPLETED
    assert result.message.role is MessageRole.TOOL_RESULT
    assert not result.message.tool_execution.success
    assert "requires a decision-linked chat" in result.message.content
    assert service.state.error is not None


def test_tool_form_validates_then_runs(make_service, journal, retriever, chat_db):
    for idx in range(3):
        decision = make_decision(f"d{idx}", tags=["career"], confidence_level=7)
        journal.save_decision(decision)
    retriever.hits = [SimilarityHit(entry_id=f"d{idx}", similarity=0.8, score=0.8) for idx in range(3)]
    service = make_service()

    async def scenario():
        await service.check_backend()
        form = await service.select_tool("pattern-detective")
        assert form.role is MessageRole.TOOL_INPUT
        assert chat_db.list_sessions(10) == []

        errors = await service.submit_tool_input(form.id, {"query": "ab"})
        pending = next(m for m in service.messages if m.id == form.id)
        errors_after = pending.tool_input.errors

        ok = await service.submit_tool_input(form.id, {"query": "career moves", "limit": "5"})
        await service.tools.wait_for_followups()
        await service.close_view()
        return form, errors, errors_after, ok

    form, errors, errors_after, ok = asyncio.run(scenario())
    assert "query" in errors
    assert errors_after == errors
    assert ok == {}
    assert all(m.id != form.id for m in service.messages)

    stored = chat_db.list_messages(service.state.session_id)
    assert MessageRole.TOOL_INPUT not in [m.role for m in stored]
    result = stored[0]
    assert result.role is MessageRole.TOOL_RESULT
    assert result.tool_execution.tool_id == "pattern-detective"
    assert "## Pattern Detective Results" in result.content
    assert retriever.calls[0]["threshold"] == 0.5
    assert retriever.calls[0]["k"] == 5
    assert 'I searched for "career moves"' in stored[1].content


def test_cancel_tool_input_removes_form(make_service):
    service = make_service()

    async def scenario():
        form = await service.select_tool("pattern-detective")
        return form, service.cancel_tool_input(form.id)

    form, cancelled = asyncio.run(scenario())
    assert form.tool_input.status is ToolInputStatus.PENDING
    assert cancelled
    assert service.messages == []


def test_calibration_without_reviews_reports_requirement(make_service, journal):
    journal.save_decision(make_decision("d1", confidence_level=6))
    service = make_service()

    async def scenario():
        return await service.send("/calibrate ")

    result = asyncio.run(scenario())
    assert not result.message.tool_execution.success
    assert "requires at least one reviewed decision" in result.message.content


class SlowTool(CoachingTool):
    """Blocks inside ``run`` until released."""

    id = "slow"
    name = "Slow Tool"
    category = ToolCategory.RISK

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def run(self, context):
        self.started.set()
        await self.release.wait()
        return ToolResult(success=True, markdown="slow result")


def test_tool_result_is_dropped_when_provisional_session_is_abandoned(make_service, chat_db):
    service = make_service()
    slow = SlowTool()
    service.registry.register(slow)

    async def scenario():
        await service.check_backend()
        service.new_session()
        run = asyncio.create_task(service.select_tool("slow"))
        await slow.started.wait()
        current = service.new_session()
        slow.release.set()
        message = await run
        await service.tools.wait_for_followups()
        await service.close_view()
        return current, message

    current, message = asyncio.run(scenario())
    assert message is None
    assert service.state.session_id == current.id
    assert service.messages == []
    assert chat_db.list_sessions(10) == []


def test_tool_result_for_background_session_is_stored_but_not_shown(make_service, chat_db):
    llm = FakeLLM()
    service = make_service(llm)
    slow = SlowTool()
    service.registry.register(slow)

    async def scenario():
        await service.check_backend()
        first = await service.send("Keep this one")
        run = asyncio.create_task(service.select_tool("slow"))
        await slow.started.wait()
        service.new_session()
        slow.release.set()
        message = await run
        await service.tools.wait_for_followups()
        await service.close_view()
        return first, message

    first, message = asyncio.run(scenario())
    assert message.tool_execution.tool_id == "slow"
    assert service.messages == []
    stored = [m.role for m in chat_db.list_messages(first.session_id)]
    assert stored == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.TOOL_RESULT]
    assert len(llm.stream_calls) == 1
