"""Builds the instruction block and message list for one model call."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from ..chat.models import Message
from ..config import CONFIG, ContextConfig
from ..journal.db import JournalDB
from ..journal.models import Decision, UserProfile
from ..llm_client import ChatMessage
from ..retrieval.decision_index import SimilarityHit
from .digest import build_anchor_block
from .few_shot import ConversationType, format_examples, select_examples
from .history import RelatedDecision, build_history_block
from .profile import build_profile_block
from .prompts import BASE_SYSTEM_PROMPT, DECISION_LINKED_SUFFIX, TOOL_ASSISTED_SUFFIX


class SimilaritySearch(Protocol):
    async def search_similar(
        self, query_text: str, k: int, *, threshold: float = 0.0, filters: Optional[dict] = None
    ) -> List[SimilarityHit]: ...


@dataclass
class AssembledContext:
    system_prompt: str
    messages: List[ChatMessage]
    conversation_type: ConversationType
    related: List[RelatedDecision] = field(default_factory=list)
    used_fallback: bool = False


class ContextAssembler:
    """Concatenates policy, anchors, related history, profile and examples.

    Only per-field snippets are bounded; the conversation itself is passed
    through untouched.
    """

    def __init__(
        self,
        retriever: Optional[SimilaritySearch],
        journal: JournalDB,
        config: Optional[ContextConfig] = None,
    ) -> None:
        self.retriever = retriever
        self.journal = journal
        self.config = config or CONFIG.context
        self.logger = logging.getLogger("decision_coach.context")

    async def assemble(
        self,
        user_text: str,
        conversation: Sequence[Message],
        *,
        anchored_decision_ids: Sequence[str] = (),
        profile: Optional[UserProfile] = None,
        tool_id: Optional[str] = None,
        tool_instructions: Optional[str] = None,
    ) -> AssembledContext:
        anchors = await self._load_anchors(anchored_decision_ids)
        if tool_id:
            conversation_type = ConversationType.TOOL_ASSISTED
        elif anchors:
            conversation_type = ConversationType.DECISION_LINKED
        else:
            conversation_type = ConversationType.GENERAL

        related, used_fallback = await self._related_decisions(user_text, {d.id for d in anchors})
        if profile is None:
            profile = await asyncio.to_thread(self.journal.get_profile)

        sections: List[str] = [BASE_SYSTEM_PROMPT]
        if conversation_type is ConversationType.DECISION_LINKED:
            sections.append(DECISION_LINKED_SUFFIX)
        elif conversation_type is ConversationType.TOOL_ASSISTED:
            sections.append(TOOL_ASSISTED_SUFFIX)
            if tool_instructions:
                sections.append(tool_instructions.strip())
        anchor_block = build_anchor_block(anchors, self.config)
        if anchor_block:
            sections.append(anchor_block)
        history_block = build_history_block(related)
        if history_block:
            sections.append(history_block)
        profile_block = build_profile_block(profile)
        if profile_block:
            sections.append(profile_block)
        examples = select_examples(conversation_type, user_text, tool_id, self.config.few_shot_count)
        examples_block = format_examples(examples)
        if examples_block:
            sections.append(examples_block)

        system_prompt = "\n\n".join(sections)
        messages = [ChatMessage(role="system", content=system_prompt)]
        messages.extend(ChatMessage(role=message.role.value, content=message.content) for message in conversation)

        self.logger.info(
            "Assembled context",
            extra={
                "chars": len(system_prompt),
                "hits": len(related),
                "fallback": used_fallback,
            },
        )
        return AssembledContext(
            system_prompt=system_prompt,
            messages=messages,
            conversation_type=conversation_type,
            related=related,
            used_fallback=used_fallback,
        )

    async def _load_anchors(self, decision_ids: Sequence[str]) -> List[Decision]:
        if not decision_ids:
            return []
        return await asyncio.to_thread(self.journal.get_decisions, list(decision_ids))

    async def _related_decisions(self, user_text: str, exclude: set) -> tuple[List[RelatedDecision], bool]:
        hits: List[SimilarityHit] = []
        if self.retriever is not None and user_text.strip():
            try:
                hits = await self.retriever.search_similar(
                    user_text,
                    self.config.similar_k,
                    threshold=self.config.similarity_threshold,
                    filters={"is_archived": False},
                )
            except Exception:
                self.logger.warning("Similarity search failed; using recent entries", exc_info=True)
                hits = []

        hits = [hit for hit in hits if hit.entry_id not in exclude]
        if hits:
            by_id = {
                decision.id: decision
                for decision in await asyncio.to_thread(self.journal.get_decisions, [hit.entry_id for hit in hits])
            }
            related = [
                RelatedDecision(decision=by_id[hit.entry_id], similarity=hit.similarity)
                for hit in hits
                if hit.entry_id in by_id
            ]
            if related:
                return related, False

        recent = await asyncio.to_thread(self.journal.recent_decisions, self.config.recency_fallback_n + len(exclude))
        fallback = [RelatedDecision(decision=decision) for decision in recent if decision.id not in exclude]
        return fallback[: self.config.recency_fallback_n], True


__all__ = ["AssembledContext", "ContextAssembler", "SimilaritySearch"]
