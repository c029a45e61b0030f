"""Runs coaching tools inside a conversation and feeds their results back to the model."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Set

from ..config import CONFIG, ChatConfig
from ..journal.db import JournalDB
from ..journal.models import Decision
from ..tools.base import ToolExecutionContext, ToolResult
from ..tools.registry import ToolRegistry
from ..tools.validation import coerce_inputs, validate_inputs
from .commands import CommandState, SlashCommand, parse_slash_command
from .events import ChatEventKind
from .message_store import MessageStore
from .models import Message, MessageRole, ToolExecution, ToolInputRequest, ToolInputStatus, is_provisional
from .pipeline import SendPipeline
from .session_manager import SessionManager


class ToolInterleaver:
    """Turns slash commands and palette picks into tool runs.

    Tools without required fields run at once. Others first get an inline
    ``tool-input`` message that lives only in memory.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        store: MessageStore,
        sessions: SessionManager,
        pipeline: SendPipeline,
        journal: JournalDB,
        config: Optional[ChatConfig] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.sessions = sessions
        self.pipeline = pipeline
        self.journal = journal
        self.events = store.events
        self.config = config or CONFIG.chat
        self.logger = logging.getLogger("decision_coach.tool_engine")
        self._followups: Set[asyncio.Task] = set()

    def parse(self, text: str, cursor: Optional[int] = None) -> SlashCommand:
        return parse_slash_command(text, cursor, resolve=self._resolve)

    async def handle_input(
        self,
        session_id: str,
        text: str,
        *,
        anchored_decision_ids: Sequence[str] = (),
    ) -> Optional[Message]:
        """Run the tool named by an exact-match command; None for anything else."""

        command = self.parse(text)
        if command.state is not CommandState.EXACT_MATCH or command.tool_id is None:
            return None
        return await self.select_tool(session_id, command.tool_id, anchored_decision_ids=anchored_decision_ids)

    async def select_tool(
        self,
        session_id: str,
        tool_id: str,
        *,
        anchored_decision_ids: Sequence[str] = (),
    ) -> Optional[Message]:
        tool = self.registry.get(tool_id)
        if tool is None:
            self.events.emit(ChatEventKind.ERROR, session_id, error=f"Unknown tool '{tool_id}'")
            return None
        if not tool.required_fields:
            return await self.execute(session_id, tool_id, {}, anchored_decision_ids=anchored_decision_ids)

        request = Message.create(
            MessageRole.TOOL_INPUT,
            f"{tool.name} needs a few details before it can run.",
            tool_input=ToolInputRequest(tool_id=tool.id, tool_name=tool.name),
        )
        self.store.upsert(request)
        self.logger.info("Requested tool input", extra={"tool": tool.id, "session_id": session_id})
        return request

    async def submit_tool_input(
        self,
        session_id: str,
        message_id: str,
        values: Dict[str, Any],
        *,
        anchored_decision_ids: Sequence[str] = (),
    ) -> Dict[str, str]:
        """Validate and run a pending form. Returns field errors; empty when it ran."""

        message = self.store.get(message_id)
        if message is None or message.tool_input is None:
            raise KeyError(f"No tool input request {message_id}")
        request = message.tool_input
        if request.status is not ToolInputStatus.PENDING:
            raise ValueError(f"Tool input {message_id} is already {request.status.value}")
        tool = self.registry.get(request.tool_id)
        if tool is None:
            self.store.remove(message_id)
            raise KeyError(f"Unknown tool '{request.tool_id}'")

        errors = validate_inputs(tool.input_fields, values)
        if errors:
            updated = replace(request, values=dict(values), errors=errors)
            self.store.upsert(replace(message, tool_input=updated))
            return errors

        submitted = replace(request, values=dict(values), errors={}, status=ToolInputStatus.SUBMITTED)
        self.store.upsert(replace(message, tool_input=submitted))
        await self.execute(
            session_id,
            tool.id,
            coerce_inputs(tool.input_fields, values),
            anchored_decision_ids=anchored_decision_ids,
            tool_input_message_id=message_id,
        )
        return {}

    def cancel_tool_input(self, message_id: str) -> bool:
        message = self.store.get(message_id)
        if message is None or message.tool_input is None:
            return False
        self.store.upsert(replace(message, tool_input=replace(message.tool_input, status=ToolInputStatus.CANCELLED)))
        self.store.remove(message_id)
        return True

    async def execute(
        self,
        session_id: str,
        tool_id: str,
        inputs: Dict[str, Any],
        *,
        anchored_decision_ids: Sequence[str] = (),
        tool_input_message_id: Optional[str] = None,
    ) -> Optional[Message]:
        """Run a tool, record its result message and queue the interpretation turn."""

        tool = self.registry.get(tool_id)
        try:
            all_decisions = await asyncio.to_thread(self.journal.list_decisions, True)
            context = ToolExecutionContext(
                session_id=session_id,
                all_decisions=all_decisions,
                current_decision=_first_anchor(all_decisions, anchored_decision_ids),
                inputs=dict(inputs),
            )
            result = await self.registry.execute(tool_id, context)
        except Exception as exc:
            self.logger.error("Could not prepare tool run", exc_info=True, extra={"tool": tool_id})
            result = ToolResult.failure(str(exc))
        finally:
            if tool_input_message_id is not None:
                self.store.remove(tool_input_message_id)

        tool_name = tool.name if tool is not None else tool_id
        message = Message.create(
            MessageRole.TOOL_RESULT,
            (result.markdown or "") if result.success else (result.error or "Tool failed"),
            context_decision_ids=list(anchored_decision_ids),
            tool_execution=ToolExecution(
                tool_id=tool_id,
                tool_name=tool_name,
                success=result.success,
                data=result.data,
                markdown=result.markdown,
                error=result.error,
                execution_time_ms=result.execution_time_ms,
            ),
        )
        active = self._is_active(session_id)
        if not active and self._discarded(session_id):
            self.logger.info(
                "Dropping tool result for discarded session",
                extra={"tool": tool_id, "session_id": session_id},
            )
            return None
        if active:
            self.store.upsert(message)
            if not result.success:
                self.events.emit(ChatEventKind.ERROR, session_id, error=result.error, tool=tool_id)

        try:
            durable_id = await self.sessions.record_message(session_id, message)
        except Exception as exc:
            self.logger.error("Could not store tool result", exc_info=True, extra={"tool": tool_id})
            self.events.emit(ChatEventKind.ERROR, session_id, error=str(exc))
            return message
        self.pipeline.adopt_session(session_id, durable_id)

        if active and result.success and tool is not None and self.pipeline.backend_ready:
            prompt = tool.interpretation_prompt(result, inputs)
            self._schedule_followup(durable_id, prompt, list(anchored_decision_ids), tool_id, tool.system_prompt)
        return message

    async def wait_for_followups(self) -> None:
        while self._followups:
            await asyncio.gather(*list(self._followups), return_exceptions=True)

    def cancel_followups(self) -> None:
        for task in list(self._followups):
            task.cancel()
        self._followups.clear()

    def _schedule_followup(
        self, session_id: str, prompt: str, anchors: List[str], tool_id: str, instructions: str
    ) -> None:
        async def followup() -> None:
            await asyncio.sleep(self.config.tool_followup_delay_seconds)
            if self.store.session_id != session_id:
                self.logger.debug("Skipping tool follow-up for inactive session", extra={"session_id": session_id})
                return
            await self.pipeline.send(
                session_id,
                prompt,
                anchored_decision_ids=anchors,
                tool_id=tool_id,
                tool_instructions=instructions or None,
            )

        task = asyncio.get_running_loop().create_task(followup(), name=f"tool_followup:{tool_id}")
        self._followups.add(task)
        task.add_done_callback(self._followups.discard)

    def _is_active(self, session_id: str) -> bool:
        return self.store.session_id in (session_id, self.sessions.resolve(session_id))

    def _discarded(self, session_id: str) -> bool:
        resolved = self.sessions.resolve(session_id)
        if is_provisional(resolved):
            return resolved not in self.sessions.pending_ids
        return self.sessions.is_gone(resolved)

    def _resolve(self, command: str) -> Optional[str]:
        tool = self.registry.find_by_shortcut(command)
        return tool.id if tool is not None else None


def _first_anchor(decisions: List[Decision], anchored_ids: Sequence[str]) -> Optional[Decision]:
    by_id = {decision.id: decision for decision in decisions}
    for decision_id in anchored_ids:
        if decision_id in by_id:
            return by_id[decision_id]
    return None


__all__ = ["ToolInterleaver"]
