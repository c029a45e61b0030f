"""Tests for the small chat building blocks: storage, events, timers and locks."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path

from decision_coach.chat.coalesce import CoalescingTimer
from decision_coach.chat.db import ChatDB
from decision_coach.chat.events import ChatEventKind, EventBus
from decision_coach.chat.exchange import ExchangeLock, SendState, StreamingExchange
from decision_coach.chat.message_store import MessageStore
from decision_coach.chat.models import Message, MessageRole, ToolExecution, TriggerType
from decision_coach.llm_client import CancelToken


class ChatDBTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db = ChatDB(Path(self._tmp.name) / "chat.sqlite3")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_session_and_messages_round_trip(self) -> None:
        session_id = self.db.create_session(
            attached_decision_ids=["d1"], trigger_type=TriggerType.DECISION_LINKED, title=None
        )
        user = Message.create(MessageRole.USER, "Should I relocate?", context_decision_ids=["d1"])
        tool = Message.create(
            MessageRole.TOOL_RESULT,
            "## Calibration Coach",
            tool_execution=ToolExecution(tool_id="calibration-coach", tool_name="Calibration Coach", success=True),
        )
        self.db.create_message(session_id, user)
        self.db.create_message(session_id, tool)

        session = self.db.get_session(session_id)
        self.assertEqual(session.trigger_type, TriggerType.DECISION_LINKED)
        self.assertEqual(session.attached_decision_ids, ["d1"])

        messages = self.db.list_messages(session_id)
        self.assertEqual([m.role for m in messages], [MessageRole.USER, MessageRole.TOOL_RESULT])
        self.assertEqual(messages[0].context_decision_ids, ["d1"])
        self.assertEqual(messages[1].tool_execution.tool_id, "calibration-coach")

    def test_rewriting_message_replaces_content(self) -> None:
        session_id = self.db.create_session()
        message = Message.create(MessageRole.ASSISTANT, "draft")
        self.db.create_message(session_id, message)
        self.db.create_message(session_id, message.with_content("final"))
        self.assertEqual([m.content for m in self.db.list_messages(session_id)], ["final"])

    def test_tool_input_cannot_be_persisted(self) -> None:
        session_id = self.db.create_session()
        with self.assertRaises(ValueError):
            self.db.create_message(session_id, Message.create(MessageRole.TOOL_INPUT, "form"))

    def test_update_rejects_unknown_fields(self) -> None:
        session_id = self.db.create_session()
        with self.assertRaises(ValueError):
            self.db.update_session(session_id, trigger_type="manual")


class MessageStoreTests(unittest.TestCase):
    def test_upsert_replaces_in_place(self) -> None:
        events = EventBus()
        kinds = []
        events.subscribe(lambda event: kinds.append(event.kind))
        store = MessageStore(events)
        store.reset("s1")

        first = Message.create(MessageRole.USER, "hi")
        reply = Message.create(MessageRole.ASSISTANT, "")
        self.assertTrue(store.upsert(first))
        self.assertTrue(store.upsert(reply))
        self.assertFalse(store.upsert(reply.with_content("Hello")))

        self.assertEqual([m.content for m in store], ["hi", "Hello"])
        self.assertEqual(
            kinds,
            [ChatEventKind.MESSAGES_RESET] + [ChatEventKind.MESSAGE_UPSERTED] * 3,
        )

    def test_conversation_skips_tool_messages(self) -> None:
        store = MessageStore()
        store.upsert(Message.create(MessageRole.USER, "hi"))
        store.upsert(Message.create(MessageRole.TOOL_RESULT, "tool"))
        store.upsert(Message.create(MessageRole.TOOL_INPUT, "form"))
        placeholder = Message.create(MessageRole.ASSISTANT, "")
        store.upsert(placeholder)

        conversation = store.conversation(exclude_ids=[placeholder.id])
        self.assertEqual([m.role for m in conversation], [MessageRole.USER])
        self.assertIsNotNone(store.remove(placeholder.id))
        self.assertIsNone(store.remove(placeholder.id))


class EventBusTests(unittest.TestCase):
    def test_failing_listener_does_not_block_others(self) -> None:
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        unsubscribe = bus.subscribe(received.append)
        bus.emit(ChatEventKind.ERROR, "s1", error="x")
        unsubscribe()
        bus.emit(ChatEventKind.ERROR, "s1", error="y")

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].payload["error"], "x")


class ExchangeLockTests(unittest.TestCase):
    def test_compare_and_set_transitions(self) -> None:
        lock = ExchangeLock()
        first = StreamingExchange(session_id="s1")
        second = StreamingExchange(session_id="s1")

        self.assertTrue(lock.try_acquire(first))
        self.assertFalse(lock.try_acquire(second))
        self.assertIs(lock.state, SendState.SENDING)
        self.assertFalse(lock.release(second))
        self.assertTrue(lock.release(first))
        self.assertIs(lock.state, SendState.IDLE)
        self.assertFalse(lock.release(first))

    def test_exchange_buffers_chunks(self) -> None:
        exchange = StreamingExchange(session_id="s1")
        exchange.append("Hel")
        self.assertEqual(exchange.append("lo"), "Hello")
        exchange.token.abort()
        self.assertTrue(exchange.aborted)

    def test_cancel_token_callbacks(self) -> None:
        token = CancelToken()
        calls = []
        remove = token.add_callback(lambda: calls.append("a"))
        token.add_callback(lambda: calls.append("b"))
        remove()
        token.abort()
        token.abort()
        token.add_callback(lambda: calls.append("late"))
        self.assertEqual(calls, ["b", "late"])


class CoalescingTimerTests(unittest.IsolatedAsyncioTestCase):
    async def test_burst_runs_callback_once(self) -> None:
        calls = []

        async def callback() -> None:
            calls.append(1)

        timer = CoalescingTimer(callback, 0.02)
        for _ in range(5):
            timer.schedule()
        self.assertTrue(timer.pending)
        await timer.wait()
        self.assertEqual(calls, [1])
        self.assertFalse(timer.pending)

    async def test_cancel_prevents_run(self) -> None:
        calls = []

        async def callback() -> None:
            calls.append(1)

        timer = CoalescingTimer(callback, 0.01)
        timer.schedule()
        timer.cancel()
        await asyncio.sleep(0.03)
        self.assertEqual(calls, [])

    async def test_flush_runs_immediately(self) -> None:
        calls = []

        async def callback() -> None:
            calls.append(1)

        timer = CoalescingTimer(callback, 10)
        timer.schedule()
        await timer.flush()
        self.assertEqual(calls, [1])
        self.assertFalse(timer.pending)


if __name__ == "__main__":
    unittest.main()
