"""Single-flight streaming send: user turn in, streamed assistant turn out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence

from ..context.assembler import ContextAssembler
from ..llm_client import OllamaClient, StreamCancelled
from .events import ChatEventKind, EventBus
from .exchange import ExchangeLock, SendState, StreamingExchange
from .message_store import MessageStore
from .models import Message, MessageRole, now_ms
from .session_manager import SessionManager


class SendStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass
class SendResult:
    status: SendStatus
    session_id: Optional[str] = None
    message: Optional[Message] = None
    error: Optional[str] = None


class SendPipeline:
    """Runs one exchange at a time for a conversation view.

    The lock is taken synchronously before the first suspension point, so two
    sends issued in the same loop turn cannot both proceed.
    """

    def __init__(
        self,
        *,
        sessions: SessionManager,
        store: MessageStore,
        llm_client: OllamaClient,
        assembler: ContextAssembler,
        events: Optional[EventBus] = None,
        lock: Optional[ExchangeLock] = None,
    ) -> None:
        self.sessions = sessions
        self.store = store
        self.llm_client = llm_client
        self.assembler = assembler
        self.events = events or store.events
        self.lock = lock or ExchangeLock()
        self.backend_ready = False
        self.model: Optional[str] = None
        self.logger = logging.getLogger("decision_coach.pipeline")

    @property
    def state(self) -> SendState:
        return self.lock.state

    @property
    def is_sending(self) -> bool:
        return self.lock.state is SendState.SENDING

    async def send(
        self,
        session_id: str,
        text: str,
        *,
        anchored_decision_ids: Sequence[str] = (),
        tool_id: Optional[str] = None,
        tool_instructions: Optional[str] = None,
    ) -> SendResult:
        content = (text or "").strip()
        if not content:
            return SendResult(SendStatus.REJECTED, session_id, error="Message is empty")
        if not self.backend_ready:
            return SendResult(SendStatus.REJECTED, session_id, error="Ollama is not reachable")

        exchange = StreamingExchange(session_id=session_id)
        if not self.lock.try_acquire(exchange):
            self.logger.debug("Send ignored; another exchange is in flight", extra={"session_id": session_id})
            return SendResult(SendStatus.REJECTED, session_id, error="A response is already streaming")
        self.events.emit(ChatEventKind.SEND_STATE_CHANGED, session_id, state=SendState.SENDING)

        try:
            return await self._run(exchange, content, list(anchored_decision_ids), tool_id, tool_instructions)
        except Exception as exc:
            self.logger.error("Send failed", exc_info=True, extra={"session_id": exchange.session_id})
            self.events.emit(ChatEventKind.ERROR, exchange.session_id, error=str(exc))
            return SendResult(SendStatus.FAILED, exchange.session_id, error=str(exc))
        finally:
            if self.lock.release(exchange):
                self.events.emit(ChatEventKind.SEND_STATE_CHANGED, exchange.session_id, state=SendState.IDLE)

    def cancel(self) -> bool:
        """Abort the in-flight exchange and free the lock immediately."""

        exchange = self.lock.current
        if exchange is None:
            return False
        exchange.token.abort()
        self.lock.release(exchange)
        self.logger.info("Send cancelled", extra={"session_id": exchange.session_id})
        self.events.emit(ChatEventKind.SEND_STATE_CHANGED, exchange.session_id, state=SendState.IDLE)
        return True

    async def _run(
        self,
        exchange: StreamingExchange,
        content: str,
        anchored_decision_ids: list,
        tool_id: Optional[str],
        tool_instructions: Optional[str],
    ) -> SendResult:
        first_turn = not any(message.role is MessageRole.USER for message in self.store)
        user_message = Message.create(MessageRole.USER, content, context_decision_ids=list(anchored_decision_ids))
        self.store.upsert(user_message)

        durable_id = await self.sessions.record_message(exchange.session_id, user_message)
        self._adopt_session_id(exchange, durable_id)
        if exchange.aborted:
            return self._cancelled(exchange)

        if first_turn:
            try:
                await self.sessions.generate_title(exchange.session_id)
            except Exception:
                self.logger.warning("Title generation failed", exc_info=True, extra={"session_id": exchange.session_id})
        if exchange.aborted:
            return self._cancelled(exchange)

        placeholder = Message(
            id=exchange.assistant_message_id,
            role=MessageRole.ASSISTANT,
            content="",
            created_at=now_ms(),
            context_decision_ids=list(anchored_decision_ids),
        )
        self.store.upsert(placeholder)

        context = await self.assembler.assemble(
            content,
            self.store.conversation(exclude_ids=[placeholder.id]),
            anchored_decision_ids=anchored_decision_ids,
            tool_id=tool_id,
            tool_instructions=tool_instructions,
        )
        if exchange.aborted:
            return self._cancelled(exchange, placeholder)

        outcome: Dict[str, Optional[Exception]] = {}

        def on_chunk(chunk: str) -> None:
            if exchange.aborted:
                return
            text = exchange.append(chunk)
            if self.store.session_id == exchange.session_id:
                self.store.upsert(placeholder.with_content(text))

        def on_complete() -> None:
            outcome.setdefault("error", None)

        def on_error(exc: Exception) -> None:
            outcome.setdefault("error", exc)

        await self.llm_client.stream_chat(
            context.messages,
            on_chunk,
            on_complete,
            on_error,
            model=self.model,
            cancel_token=exchange.token,
        )

        error = outcome.get("error")
        if exchange.aborted or isinstance(error, StreamCancelled):
            return self._cancelled(exchange, placeholder)
        if error is not None:
            if not exchange.text:
                self.store.remove(placeholder.id)
            self.logger.error("Stream failed", extra={"session_id": exchange.session_id, "chars": len(exchange.text)})
            self.events.emit(ChatEventKind.ERROR, exchange.session_id, error=str(error))
            return SendResult(
                SendStatus.FAILED,
                exchange.session_id,
                message=self.store.get(placeholder.id),
                error=str(error),
            )

        final = placeholder.with_content(exchange.text, created_at=now_ms())
        if self.store.session_id == exchange.session_id:
            self.store.upsert(final)
        await self.sessions.record_message(exchange.session_id, final)
        self.logger.info(
            "Exchange completed",
            extra={"session_id": exchange.session_id, "message_id": final.id, "chars": len(final.content)},
        )
        return SendResult(SendStatus.COMPLETED, exchange.session_id, message=final)

    def adopt_session(self, previous_id: str, durable_id: str) -> None:
        """Follow a provisional session to its durable id."""

        if durable_id == previous_id:
            return
        if self.store.session_id == previous_id:
            self.store.rebind(durable_id)
        self.events.emit(ChatEventKind.SESSION_CHANGED, durable_id, previous_id=previous_id)

    def _adopt_session_id(self, exchange: StreamingExchange, durable_id: str) -> None:
        previous = exchange.session_id
        exchange.session_id = durable_id
        self.adopt_session(previous, durable_id)

    def _cancelled(self, exchange: StreamingExchange, placeholder: Optional[Message] = None) -> SendResult:
        if placeholder is not None and not exchange.text:
            self.store.remove(placeholder.id)
        self.logger.info(
            "Exchange cancelled",
            extra={"session_id": exchange.session_id, "chars": len(exchange.text)},
        )
        message = self.store.get(placeholder.id) if placeholder is not None else None
        return SendResult(SendStatus.CANCELLED, exchange.session_id, message=message)


__all__ = ["SendPipeline", "SendResult", "SendStatus"]
