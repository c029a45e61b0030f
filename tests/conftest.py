"""Shared fakes and fixtures for the decision coach tests."""

from __future__ import annotations

import asyncio
import time
from typing import List, Optional, Sequence

import pytest

from decision_coach.chat.db import ChatDB
from decision_coach.chat.service import ChatService
from decision_coach.config import AppConfig, ChatConfig
from decision_coach.journal.db import JournalDB
from decision_coach.journal.models import Alternative, Decision
from decision_coach.llm_client import StreamCancelled, StreamError
from decision_coach.retrieval.decision_index import SimilarityHit
from decision_coach.tools import build_default_registry

FAST_CONFIG = AppConfig(
    chat=ChatConfig(
        refresh_debounce_seconds=0.01,
        auto_submit_delay_seconds=0.01,
        tool_followup_delay_seconds=0.01,
    )
)

DAY_MS = 24 * 60 * 60 * 1000


class FakeLLM:
    """Stands in for OllamaClient; streams the configured chunks."""

    def __init__(
        self,
        chunks: Sequence[str] = ("Hello", " there"),
        *,
        reachable: bool = True,
        fail_after: Optional[int] = None,
        hold_after: Optional[int] = None,
        ignore_cancel: bool = False,
        reply: str = "Scenario 1: the plan stalls.",
    ) -> None:
        self.chunks = list(chunks)
        self.reachable = reachable
        self.fail_after = fail_after
        self.hold_after = hold_after
        self.ignore_cancel = ignore_cancel
        self.reply = reply
        self.release = asyncio.Event()
        self.holding = asyncio.Event()
        self.stream_calls: List[list] = []
        self.chat_calls: List[list] = []

    async def is_reachable(self) -> bool:
        return self.reachable

    def list_models(self) -> List[str]:
        return ["gemma3:1b", "llama3.2:3b"]

    def chat(self, messages, **kwargs) -> str:
        self.chat_calls.append(list(messages))
        return self.reply

    async def stream_chat(
        self,
        messages,
        on_chunk,
        on_complete,
        on_error,
        *,
        model=None,
        options=None,
        cancel_token=None,
    ) -> None:
        self.stream_calls.append(list(messages))
        for idx, chunk in enumerate(self.chunks):
            if self.hold_after is not None and idx == self.hold_after and len(self.stream_calls) == 1:
                self.holding.set()
                await self.release.wait()
            if cancel_token is not None and cancel_token.aborted and not self.ignore_cancel:
                on_error(StreamCancelled("Stream cancelled"))
                return
            if self.fail_after is not None and idx >= self.fail_after:
                on_error(StreamError("model crashed"))
                return
            on_chunk(chunk)
            await asyncio.sleep(0)
        if cancel_token is not None and cancel_token.aborted:
            on_error(StreamCancelled("Stream cancelled"))
            return
        on_complete()


class FakeRetriever:
    """Returns canned similarity hits and records each query."""

    def __init__(self, hits: Optional[List[SimilarityHit]] = None, error: Optional[Exception] = None) -> None:
        self.hits = list(hits or [])
        self.error = error
        self.calls: List[dict] = []

    async def search_similar(self, query_text, k, *, threshold=0.0, filters=None):
        self.calls.append({"query": query_text, "k": k, "threshold": threshold, "filters": filters})
        if self.error is not None:
            raise self.error
        return self.hits[:k]


def make_decision(decision_id: str, *, days_ago: int = 0, **fields) -> Decision:
    created = int(time.time() * 1000) - days_ago * DAY_MS
    fields.setdefault("problem_statement", f"Decision {decision_id}")
    return Decision(id=decision_id, created_at=created, updated_at=created, **fields)


def job_offer_decision(decision_id: str = "job") -> Decision:
    return make_decision(
        decision_id,
        problem_statement="Should I accept the offer from the startup?",
        situation="Current role is stable but growth has stalled.",
        alternatives=[
            Alternative(id="a1", title="Accept the offer"),
            Alternative(id="a2", title="Stay and ask for a promotion"),
        ],
        selected_alternative_id="a1",
        confidence_level=8,
        tags=["career"],
    )


@pytest.fixture
def chat_db(tmp_path) -> ChatDB:
    return ChatDB(tmp_path / "coach.sqlite3")


@pytest.fixture
def journal(tmp_path) -> JournalDB:
    return JournalDB(tmp_path / "coach.sqlite3")


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def retriever() -> FakeRetriever:
    return FakeRetriever()


@pytest.fixture
def make_service(chat_db, journal, retriever):
    def factory(llm: Optional[FakeLLM] = None) -> ChatService:
        llm = llm or FakeLLM()
        return ChatService(
            chat_db=chat_db,
            journal=journal,
            llm_client=llm,
            retriever=retriever,
            registry=build_default_registry(llm, retriever),
            config=FAST_CONFIG,
        )

    return factory
