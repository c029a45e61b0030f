"""Chat service: one conversation view wired to storage, the model and tools."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import CONFIG, AppConfig
from ..context.assembler import ContextAssembler, SimilaritySearch
from ..journal.db import JournalDB
from ..llm_client import BackendUnavailableError, OllamaClient
from ..tools.registry import ToolRegistry
from .commands import CommandState, SlashCommand, remove_slash_command
from .db import ChatDB
from .events import ChatEvent, ChatEventKind, EventBus
from .exchange import SendState
from .message_store import MessageStore
from .models import Message, Session, SessionSummary, TriggerType, is_provisional
from .palette import ToolPalette
from .pipeline import SendPipeline, SendResult, SendStatus
from .session_manager import SessionManager
from .tool_engine import ToolInterleaver


@dataclass
class ChatState:
    """Everything a client needs to draw the conversation view."""

    session_id: Optional[str] = None
    trigger_type: TriggerType = TriggerType.MANUAL
    attached_decision_ids: List[str] = field(default_factory=list)
    send_state: SendState = SendState.IDLE
    backend_available: Optional[bool] = None
    models: List[str] = field(default_factory=list)
    model: Optional[str] = None
    draft: str = ""
    pending_message: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "trigger_type": self.trigger_type.value,
            "attached_decision_ids": list(self.attached_decision_ids),
            "send_state": self.send_state.value,
            "backend_available": self.backend_available,
            "models": list(self.models),
            "model": self.model,
            "draft": self.draft,
            "pending_message": self.pending_message,
            "error": self.error,
        }


class ChatService:
    """Facade over the session manager, send pipeline and tool engine.

    All mutable view state lives in ``state``; changes are announced on
    ``events`` so clients never reach into the components directly.
    """

    def __init__(
        self,
        *,
        chat_db: ChatDB,
        journal: JournalDB,
        llm_client: OllamaClient,
        retriever: Optional[SimilaritySearch],
        registry: ToolRegistry,
        events: Optional[EventBus] = None,
        config: AppConfig = CONFIG,
    ) -> None:
        self.config = config
        self.events = events or EventBus()
        self.llm_client = llm_client
        self.journal = journal
        self.registry = registry
        self.sessions = SessionManager(chat_db, events=self.events, config=config.chat)
        self.store = MessageStore(self.events)
        self.assembler = ContextAssembler(retriever, journal, config.context)
        self.pipeline = SendPipeline(
            sessions=self.sessions,
            store=self.store,
            llm_client=llm_client,
            assembler=self.assembler,
            events=self.events,
        )
        self.tools = ToolInterleaver(
            registry=registry,
            store=self.store,
            sessions=self.sessions,
            pipeline=self.pipeline,
            journal=journal,
            config=config.chat,
        )
        self.palette = ToolPalette(registry)
        self.state = ChatState()
        self.logger = logging.getLogger("decision_coach.chat")
        self._auto_submit: Optional[asyncio.Task] = None
        self._unsubscribe = self.events.subscribe(self._on_event)

    # ---- Sessions --------------------------------------------------------
    @property
    def messages(self) -> List[Message]:
        return self.store.snapshot()

    def new_session(
        self,
        anchor_decision_ids: Optional[List[str]] = None,
        trigger_type: Optional[TriggerType] = None,
    ) -> Session:
        """Start a fresh provisional conversation; nothing is stored until the first message."""

        self.pipeline.cancel()
        anchors = list(dict.fromkeys(anchor_decision_ids or []))
        if trigger_type is None:
            trigger_type = TriggerType.DECISION_LINKED if anchors else TriggerType.MANUAL
        session = self.sessions.create_provisional(anchors, trigger_type)
        self.sessions.cleanup_abandoned(session.id)
        self.store.reset(session.id, [])
        self.state.session_id = session.id
        self.state.trigger_type = session.trigger_type
        self.state.attached_decision_ids = list(session.attached_decision_ids)
        self.state.error = None
        self.events.emit(ChatEventKind.SESSION_CHANGED, session.id, session=session)
        return session

    async def open_session(self, session_id: str) -> List[Message]:
        self.pipeline.cancel()
        session = await self.sessions.get_session(session_id)
        if session is None:
            raise KeyError(f"Unknown session {session_id}")
        messages = await self.sessions.load_messages(session.id)
        self.sessions.cleanup_abandoned(session.id)
        self.store.reset(session.id, messages)
        self.state.session_id = session.id
        self.state.trigger_type = session.trigger_type
        self.state.attached_decision_ids = list(session.attached_decision_ids)
        self.state.error = None
        self.events.emit(ChatEventKind.SESSION_CHANGED, session.id, session=session)
        self.logger.info("Opened session", extra={"session_id": session.id, "hits": len(messages)})
        return messages

    async def rename_session(self, session_id: str, title: str) -> None:
        await self.sessions.rename(session_id, title)

    async def delete_session(self, session_id: str) -> None:
        resolved = self.sessions.resolve(session_id)
        if resolved == self.state.session_id:
            self.pipeline.cancel()
        await self.sessions.delete(resolved)
        if resolved == self.state.session_id:
            self.new_session()

    async def list_sessions(self, limit: Optional[int] = None) -> List[SessionSummary]:
        summaries = await self.sessions.refresh_now()
        return summaries[:limit] if limit else summaries

    def search_sessions(self, query: str) -> List[SessionSummary]:
        return self.sessions.search(query)

    # ---- Attached decisions ----------------------------------------------
    async def set_attachments(self, decision_ids: List[str]) -> List[str]:
        session_id = self._ensure_session()
        unique = list(dict.fromkeys(decision_ids))
        self.state.attached_decision_ids = unique
        await self.sessions.set_attachments(session_id, unique)
        self.events.emit(ChatEventKind.SESSION_CHANGED, self.state.session_id, attached_decision_ids=unique)
        return unique

    async def attach_decision(self, decision_id: str) -> List[str]:
        if decision_id in self.state.attached_decision_ids:
            return list(self.state.attached_decision_ids)
        return await self.set_attachments([*self.state.attached_decision_ids, decision_id])

    async def detach_decision(self, decision_id: str) -> List[str]:
        return await self.set_attachments([d for d in self.state.attached_decision_ids if d != decision_id])

    # ---- Backend & model -------------------------------------------------
    async def check_backend(self) -> bool:
        reachable = await self.llm_client.is_reachable()
        self.state.backend_available = reachable
        self.pipeline.backend_ready = reachable
        if reachable and not self.state.models:
            try:
                self.state.models = await asyncio.to_thread(self.llm_client.list_models)
            except BackendUnavailableError:
                self.logger.warning("Could not list models", exc_info=True)
        self.events.emit(ChatEventKind.BACKEND_STATUS, self.state.session_id, available=reachable)
        self.logger.info("Backend status", extra={"status_code": "up" if reachable else "down"})
        if self.state.pending_message:
            if reachable:
                self._schedule_auto_submit()
            else:
                self.state.draft = self.state.pending_message
        return reachable

    async def available_models(self) -> List[str]:
        self.state.models = await asyncio.to_thread(self.llm_client.list_models)
        return list(self.state.models)

    def set_model(self, name: Optional[str]) -> None:
        self.state.model = name or None
        self.pipeline.model = self.state.model

    # ---- Input & sending -------------------------------------------------
    async def update_draft(self, text: str, cursor: Optional[int] = None) -> SlashCommand:
        """Track the input box; an exact-match command runs its tool straight away."""

        self.state.draft = text
        command = self.tools.parse(text, cursor)
        if command.state is CommandState.EXACT_MATCH and command.tool_id:
            self.palette.close()
            self.state.draft = remove_slash_command(text)
            await self.select_tool(command.tool_id)
        elif command.shows_palette:
            if self.palette.visible:
                self.palette.filter(command.command)
            else:
                self.palette.open(command.command)
        elif self.palette.visible:
            self.palette.close()
        return command

    def cancel_palette(self) -> str:
        self.state.draft = self.palette.cancel(self.state.draft)
        return self.state.draft

    def autocomplete_palette(self) -> Optional[str]:
        completed = self.palette.autocomplete()
        if completed is not None:
            self.state.draft = completed
        return completed

    async def send(self, text: Optional[str] = None) -> SendResult:
        content = self.state.draft if text is None else text
        command = self.tools.parse(content)
        if command.state is CommandState.EXACT_MATCH and command.tool_id:
            self.state.draft = ""
            message = await self.select_tool(command.tool_id)
            status = SendStatus.COMPLETED if message is not None else SendStatus.FAILED
            return SendResult(status, self.state.session_id, message=message)

        session_id = self._ensure_session()
        if content.strip() and not self.pipeline.is_sending and self.pipeline.backend_ready:
            self.state.draft = ""
        self.state.error = None
        result = await self.pipeline.send(
            session_id,
            content,
            anchored_decision_ids=self.state.attached_decision_ids,
        )
        if result.status is SendStatus.REJECTED and text is None and not self.state.draft:
            self.state.draft = content
        return result

    def cancel(self) -> bool:
        return self.pipeline.cancel()

    # ---- Tools -----------------------------------------------------------
    async def select_tool(self, tool_id: str) -> Optional[Message]:
        session_id = self._ensure_session()
        return await self.tools.select_tool(
            session_id, tool_id, anchored_decision_ids=self.state.attached_decision_ids
        )

    async def submit_tool_input(self, message_id: str, values: Dict[str, Any]) -> Dict[str, str]:
        session_id = self._ensure_session()
        return await self.tools.submit_tool_input(
            session_id, message_id, values, anchored_decision_ids=self.state.attached_decision_ids
        )

    def cancel_tool_input(self, message_id: str) -> bool:
        return self.tools.cancel_tool_input(message_id)

    # ---- Hand-over from other views ----------------------------------------
    def set_pending_message(self, text: str) -> None:
        """Queue a message from another view to be sent once the backend is confirmed.

        An empty provisional view becomes an ``auto_opened`` session.
        """

        self.state.pending_message = text
        if self.state.session_id is None or (is_provisional(self.state.session_id) and not len(self.store)):
            self.new_session(self.state.attached_decision_ids, TriggerType.AUTO_OPENED)
        if self.state.backend_available:
            self._schedule_auto_submit()
        elif self.state.backend_available is False:
            self.state.draft = text

    async def wait_for_auto_submit(self) -> Optional[SendResult]:
        task = self._auto_submit
        if task is None:
            return None
        return await task

    def _schedule_auto_submit(self) -> None:
        if self._auto_submit is not None and not self._auto_submit.done():
            return
        self._auto_submit = asyncio.get_running_loop().create_task(self._auto_submit_later(), name="auto_submit")

    async def _auto_submit_later(self) -> Optional[SendResult]:
        await asyncio.sleep(self.config.chat.auto_submit_delay_seconds)
        text = self.state.pending_message
        if not text:
            return None
        if not self.pipeline.backend_ready:
            self.state.draft = text
            return None
        self.state.pending_message = None
        if self.state.draft == text:
            self.state.draft = ""
        result = await self.pipeline.send(
            self._ensure_session(),
            text,
            anchored_decision_ids=self.state.attached_decision_ids,
        )
        if result.status is SendStatus.REJECTED:
            self.logger.info("Auto-submit lost the send race; dropping", extra={"session_id": result.session_id})
        return result

    # ---- Lifecycle -------------------------------------------------------
    async def close_view(self) -> None:
        """Release view resources; an exchange still streaming is left to finish."""

        if self._auto_submit is not None and not self._auto_submit.done():
            self._auto_submit.cancel()
        self.tools.cancel_followups()
        active = self.state.session_id if self.pipeline.is_sending else None
        self.sessions.cleanup_abandoned(active)
        self._unsubscribe()

    def _ensure_session(self) -> str:
        if self.state.session_id is None:
            self.new_session()
        return self.state.session_id

    def _on_event(self, event: ChatEvent) -> None:
        if event.kind is ChatEventKind.SESSION_CHANGED:
            previous = event.payload.get("previous_id")
            if previous is not None and previous == self.state.session_id:
                self.state.session_id = event.session_id
        elif event.kind is ChatEventKind.SEND_STATE_CHANGED:
            self.state.send_state = event.payload.get("state", SendState.IDLE)
        elif event.kind is ChatEventKind.ERROR:
            self.state.error = event.payload.get("error")


__all__ = ["ChatService", "ChatState"]
