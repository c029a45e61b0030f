"""Session lifecycle management for coaching conversations."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from ..config import CONFIG, ChatConfig
from .coalesce import CoalescingTimer
from .db import ChatDB, PersistenceError
from .events import ChatEventKind, EventBus
from .models import (
    Message,
    MessageRole,
    Session,
    SessionSummary,
    TriggerType,
    is_provisional,
    new_provisional_id,
    now_ms,
)

DEFAULT_TITLE = "New Chat"


def truncate_title(text: str, max_chars: int) -> str:
    """First-message title: trimmed, cut to ``max_chars`` with ``...`` when longer."""

    trimmed = (text or "").strip()
    if not trimmed:
        return DEFAULT_TITLE
    if len(trimmed) <= max_chars:
        return trimmed
    return trimmed[:max_chars].strip() + "..."


def dedupe_summaries(summaries: List[SessionSummary]) -> List[SessionSummary]:
    seen: Set[str] = set()
    unique: List[SessionSummary] = []
    for summary in summaries:
        if summary.id in seen:
            continue
        seen.add(summary.id)
        unique.append(summary)
    return unique


class SessionManager:
    """Owns session identity, the durable session table and the summary list.

    Provisional sessions live only in ``_pending`` until their first message is
    written; ``persist`` turns them into durable rows exactly once.
    """

    def __init__(
        self,
        db: Optional[ChatDB] = None,
        *,
        events: Optional[EventBus] = None,
        config: Optional[ChatConfig] = None,
    ) -> None:
        self.db = db or ChatDB()
        self.events = events or EventBus()
        self.config = config or CONFIG.chat
        self.logger = logging.getLogger("decision_coach.session")
        self.summaries: List[SessionSummary] = []
        self._pending: Dict[str, Session] = {}
        self._durable_ids: Dict[str, str] = {}
        self._inflight: Dict[str, "asyncio.Future[str]"] = {}
        self._deleting: Set[str] = set()
        self._deleted: Set[str] = set()
        self._unsaved: List[Tuple[str, Message]] = []
        self._refresh_timer = CoalescingTimer(
            self.refresh_now, self.config.refresh_debounce_seconds, name="session_refresh"
        )

    # ---- Session lifecycle -----------------------------------------------
    def create_provisional(
        self,
        anchor_decision_ids: Optional[List[str]] = None,
        trigger_type: TriggerType = TriggerType.MANUAL,
    ) -> Session:
        """Return a memory-only session; no I/O happens until ``persist``."""

        timestamp = now_ms()
        session = Session(
            id=new_provisional_id(),
            created_at=timestamp,
            updated_at=timestamp,
            attached_decision_ids=list(anchor_decision_ids or []),
            trigger_type=trigger_type,
        )
        self._pending[session.id] = session
        self.logger.debug("Created provisional session", extra={"session_id": session.id})
        return session

    @property
    def pending_ids(self) -> Set[str]:
        return set(self._pending)

    @property
    def unsaved_count(self) -> int:
        return len(self._unsaved)

    def resolve(self, session_id: str) -> str:
        """Durable id for ``session_id`` if it has been persisted, else the id itself."""

        return self._durable_ids.get(session_id, session_id)

    async def persist(self, provisional_id: str) -> str:
        """Write the durable row for a provisional session and return its id.

        Repeated or concurrent calls for the same provisional id share one row.
        A failed write leaves the session pending so the next call retries.
        """

        if not is_provisional(provisional_id):
            return provisional_id
        if provisional_id in self._durable_ids:
            return self._durable_ids[provisional_id]
        inflight = self._inflight.get(provisional_id)
        if inflight is not None:
            return await asyncio.shield(inflight)
        session = self._pending.get(provisional_id)
        if session is None:
            raise KeyError(f"Unknown provisional session {provisional_id}")

        future: "asyncio.Future[str]" = asyncio.get_running_loop().create_future()
        self._inflight[provisional_id] = future
        try:
            durable_id = await asyncio.to_thread(
                self.db.create_session,
                attached_decision_ids=session.attached_decision_ids,
                trigger_type=session.trigger_type,
                title=session.title,
                created_at=session.created_at,
            )
        except Exception as exc:
            self.logger.error("Failed to persist session", exc_info=True, extra={"session_id": provisional_id})
            future.set_exception(exc)
            future.exception()
            raise
        else:
            self._durable_ids[provisional_id] = durable_id
            self._pending.pop(provisional_id, None)
            future.set_result(durable_id)
        finally:
            self._inflight.pop(provisional_id, None)
            if not future.done():
                future.cancel()

        self.logger.info("Persisted session", extra={"session_id": durable_id})
        return durable_id

    def cleanup_abandoned(self, active_session_id: Optional[str] = None) -> List[str]:
        """Drop provisional sessions other than the active one and stop the refresh timer.

        A provisional session only ever holds unsaved state, so anything left in
        the pending set besides the active session is empty.
        """

        removed = [session_id for session_id in self._pending if session_id != active_session_id]
        for session_id in removed:
            del self._pending[session_id]
        self._refresh_timer.cancel()
        if removed:
            self.logger.info("Discarded abandoned provisional sessions", extra={"hits": len(removed)})
        return removed

    async def get_session(self, session_id: str) -> Optional[Session]:
        session_id = self.resolve(session_id)
        if session_id in self._pending:
            return self._pending[session_id]
        if is_provisional(session_id):
            return None
        return await asyncio.to_thread(self.db.get_session, session_id)

    # ---- Messages --------------------------------------------------------
    async def record_message(self, session_id: str, message: Message) -> str:
        """Persist ``message`` for the session and return the durable session id.

        Session persistence failures propagate. Message write failures are logged
        and queued for the next write.
        """

        if not message.role.is_durable:
            return session_id
        durable_id = await self.persist(self.resolve(session_id))
        if self.is_gone(durable_id):
            self.logger.debug("Skipping write for deleted session", extra={"session_id": durable_id})
            return durable_id
        await self._flush_unsaved()
        try:
            await asyncio.to_thread(self.db.create_message, durable_id, message)
            await asyncio.to_thread(self.db.update_session, durable_id, updated_at=now_ms())
        except PersistenceError:
            self.logger.warning(
                "Message write failed; will retry on next write",
                exc_info=True,
                extra={"session_id": durable_id, "message_id": message.id},
            )
            self._unsaved.append((durable_id, message))
        self.refresh()
        return durable_id

    async def load_messages(self, session_id: str) -> List[Message]:
        session_id = self.resolve(session_id)
        if is_provisional(session_id):
            return []
        return await asyncio.to_thread(self.db.list_messages, session_id)

    def is_gone(self, session_id: str) -> bool:
        """True once ``session_id`` is being deleted or has been deleted."""

        return session_id in self._deleting or session_id in self._deleted

    async def _flush_unsaved(self) -> None:
        """Retry every queued write once; entries for missing sessions are dropped."""

        queued, self._unsaved = self._unsaved, []
        for session_id, message in queued:
            if self.is_gone(session_id):
                continue
            try:
                await asyncio.to_thread(self.db.create_message, session_id, message)
            except PersistenceError:
                if not await self._session_exists(session_id):
                    self.logger.warning(
                        "Dropping unsaved message for missing session",
                        extra={"session_id": session_id, "message_id": message.id},
                    )
                    continue
                self.logger.warning("Retry of unsaved message failed", extra={"session_id": session_id})
                self._unsaved.append((session_id, message))
                continue
            self.logger.info("Recovered unsaved message", extra={"session_id": session_id, "message_id": message.id})

    async def _session_exists(self, session_id: str) -> bool:
        try:
            return await asyncio.to_thread(self.db.get_session, session_id) is not None
        except PersistenceError:
            return True

    # ---- Metadata --------------------------------------------------------
    async def rename(self, session_id: str, title: str) -> None:
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValueError("Session title cannot be empty")
        session_id = self.resolve(session_id)
        if session_id in self._pending:
            self._pending[session_id].title = cleaned
            return
        await asyncio.to_thread(self.db.update_session, session_id, title=cleaned)
        self._patch_summary(session_id, title=cleaned)
        self.refresh()

    async def generate_title(self, session_id: str) -> str:
        """Derive the title from the first user message and store it."""

        session_id = self.resolve(session_id)
        messages = await self.load_messages(session_id)
        first_user = next((message for message in messages if message.role is MessageRole.USER), None)
        title = truncate_title(first_user.content if first_user else "", self.config.title_max_chars)
        if session_id in self._pending:
            self._pending[session_id].title = title
            return title
        await asyncio.to_thread(self.db.update_session, session_id, title=title)
        self._patch_summary(session_id, title=title)
        self.refresh()
        return title

    async def set_attachments(self, session_id: str, decision_ids: List[str]) -> None:
        session_id = self.resolve(session_id)
        unique_ids = list(dict.fromkeys(decision_ids))
        if session_id in self._pending:
            self._pending[session_id].attached_decision_ids = unique_ids
            return
        await asyncio.to_thread(self.db.update_session, session_id, attached_decision_ids=unique_ids)
        self._patch_summary(session_id, attached_decision_ids=unique_ids)
        self.refresh()

    async def delete(self, session_id: str) -> None:
        session_id = self.resolve(session_id)
        if session_id in self._pending:
            del self._pending[session_id]
            self.logger.info("Discarded provisional session", extra={"session_id": session_id})
            return
        self._deleting.add(session_id)
        try:
            await asyncio.to_thread(self.db.delete_session, session_id)
        finally:
            self._deleting.discard(session_id)
        self._deleted.add(session_id)
        self._unsaved = [(sid, message) for sid, message in self._unsaved if sid != session_id]
        self.summaries = [summary for summary in self.summaries if summary.id != session_id]
        self.events.emit(ChatEventKind.SESSIONS_REFRESHED, None, sessions=list(self.summaries))
        self.logger.info("Deleted session", extra={"session_id": session_id})
        self.refresh()

    # ---- Listing ---------------------------------------------------------
    async def list(self, limit: Optional[int] = None) -> List[SessionSummary]:
        rows = await asyncio.to_thread(self.db.list_sessions, limit or self.config.session_list_limit)
        return dedupe_summaries(rows)

    def search(self, query: str) -> List[SessionSummary]:
        needle = (query or "").strip().lower()
        if not needle:
            return list(self.summaries)
        return [
            summary
            for summary in self.summaries
            if needle in (summary.title or "").lower() or needle in (summary.first_message_preview or "").lower()
        ]

    def refresh(self) -> None:
        """Schedule a coalesced re-read of the summary list."""

        self._refresh_timer.schedule()

    async def refresh_now(self) -> List[SessionSummary]:
        await self._flush_unsaved()
        self.summaries = await self.list()
        self.events.emit(ChatEventKind.SESSIONS_REFRESHED, None, sessions=list(self.summaries))
        self.logger.debug("Refreshed session summaries", extra={"hits": len(self.summaries)})
        return self.summaries

    async def wait_for_refresh(self) -> None:
        await self._refresh_timer.wait()

    def _patch_summary(self, session_id: str, **fields: object) -> None:
        for summary in self.summaries:
            if summary.id == session_id:
                for name, value in fields.items():
                    setattr(summary, name, value)


__all__ = ["DEFAULT_TITLE", "SessionManager", "dedupe_summaries", "truncate_title"]
