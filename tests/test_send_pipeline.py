"""Tests for the streaming send path driven through ChatService."""

from __future__ import annotations

import asyncio

from conftest import FakeLLM, job_offer_decision

from decision_coach.chat.events import ChatEventKind
from decision_coach.chat.exchange import SendState
from decision_coach.chat.models import MessageRole, is_provisional
from decision_coach.chat.pipeline import SendStatus


def _roles(messages):
    return [message.role for message in messages]


def test_send_rejected_until_backend_confirmed(make_service):
    service = make_service()

    async def scenario():
        service.new_session()
        return await service.send("hello")

    result = asyncio.run(scenario())
    assert result.status is SendStatus.REJECTED
    assert service.messages == []


def test_empty_message_is_rejected(make_service):
    service = make_service()

    async def scenario():
        await service.check_backend()
        return await service.send("   ")

    assert asyncio.run(scenario()).status is SendStatus.REJECTED


def test_chunks_concatenate_into_one_persisted_reply(make_service, chat_db):
    llm = FakeLLM(chunks=("Hel", "lo ", "world"))
    service = make_service(llm)
    seen = []
    service.events.subscribe(
        lambda event: seen.append(event.payload["message"].content)
        if event.kind is ChatEventKind.MESSAGE_UPSERTED and event.payload["message"].role is MessageRole.ASSISTANT
        else None
    )

    async def scenario():
        await service.check_backend()
        result = await service.send("What should I weigh?")
        await service.close_view()
        return result

    result = asyncio.run(scenario())
    assert result.status is SendStatus.COMPLETED
    assert result.message.content == "Hello world"
    assert seen[:4] == ["", "Hel", "Hello ", "Hello world"]
    assert not is_provisional(result.session_id)
    assert service.state.session_id == result.session_id

    stored = chat_db.list_messages(result.session_id)
    assert _roles(stored) == [MessageRole.USER, MessageRole.ASSISTANT]
    assert stored[1].content == "Hello world"
    assert chat_db.get_session(result.session_id).title == "What should I weigh?"


def test_single_flight_rejects_overlapping_send(make_service):
    llm = FakeLLM()
    service = make_service(llm)

    async def scenario():
        await service.check_backend()
        return await asyncio.gather(service.send("first"), service.send("second"))

    first, second = asyncio.run(scenario())
    assert first.status is SendStatus.COMPLETED
    assert second.status is SendStatus.REJECTED
    assert len(llm.stream_calls) == 1
    assert [m.content for m in service.messages if m.role is MessageRole.USER] == ["first"]


def test_cancel_frees_lock_and_keeps_partial_reply_in_memory(make_service, chat_db):
    llm = FakeLLM(chunks=("Partial", " answer", " ignored"), hold_after=1, ignore_cancel=True)
    service = make_service(llm)

    async def scenario():
        await service.check_backend()
        task = asyncio.create_task(service.send("Talk me through it"))
        await llm.holding.wait()
        assert service.cancel() is True
        assert service.pipeline.state is SendState.IDLE
        llm.release.set()
        return await task

    result = asyncio.run(scenario())
    assert result.status is SendStatus.CANCELLED
    assistant = [m for m in service.messages if m.role is MessageRole.ASSISTANT]
    assert [m.content for m in assistant] == ["Partial"]
    stored = chat_db.list_messages(result.session_id)
    assert _roles(stored) == [MessageRole.USER]
    assert service.state.send_state is SendState.IDLE


def test_new_send_allowed_right_after_cancel(make_service):
    llm = FakeLLM(chunks=("One", " two"), hold_after=1)
    service = make_service(llm)

    async def scenario():
        await service.check_backend()
        stale = asyncio.create_task(service.send("first"))
        await llm.holding.wait()
        service.cancel()
        fresh = await service.send("second")
        llm.release.set()
        return await stale, fresh

    stale, fresh = asyncio.run(scenario())
    assert stale.status is SendStatus.CANCELLED
    assert fresh.status is SendStatus.COMPLETED
    assert fresh.message.content == "One two"
    assert service.pipeline.state is SendState.IDLE


def test_stream_error_reports_and_releases(make_service, chat_db):
    llm = FakeLLM(chunks=("Half", " way"), fail_after=1)
    service = make_service(llm)
    errors = []
    service.events.subscribe(
        lambda event: errors.append(event.payload.get("error")) if event.kind is ChatEventKind.ERROR else None
    )

    async def scenario():
        await service.check_backend()
        return await service.send("Will this work?")

    result = asyncio.run(scenario())
    assert result.status is SendStatus.FAILED
    assert "model crashed" in result.error
    assert errors == ["model crashed"]
    assert service.state.error == "model crashed"
    assert [m.content for m in service.messages if m.role is MessageRole.ASSISTANT] == ["Half"]
    assert _roles(chat_db.list_messages(result.session_id)) == [MessageRole.USER]
    assert not service.pipeline.is_sending


def test_stream_error_without_text_removes_placeholder(make_service):
    service = make_service(FakeLLM(chunks=("never",), fail_after=0))

    async def scenario():
        await service.check_backend()
        return await service.send("hello?")

    result = asyncio.run(scenario())
    assert result.status is SendStatus.FAILED
    assert _roles(service.messages) == [MessageRole.USER]


def test_anchored_send_puts_decision_in_system_prompt(make_service, journal):
    journal.save_decision(job_offer_decision())
    llm = FakeLLM()
    service = make_service(llm)

    async def scenario():
        service.new_session(["job"])
        await service.check_backend()
        return await service.send("Am I rushing this?")

    result = asyncio.run(scenario())
    assert result.status is SendStatus.COMPLETED
    system_prompt = llm.stream_calls[0][0].content
    assert "CURRENT DECISION CONTEXT" in system_prompt
    assert "Confidence: 8/10" in system_prompt
    assert [m.role for m in llm.stream_calls[0]] == ["system", "user"]
    assert result.message.context_decision_ids == ["job"]
