"""Application runtime bootstrap helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .chat.db import ChatDB
from .chat.events import EventBus
from .chat.service import ChatService
from .config import AppConfig, CONFIG
from .journal.db import JournalDB
from .llm_client import OllamaClient
from .retrieval.decision_index import DecisionIndex
from .retrieval.factory import create_vector_store
from .retrieval.vector_store import VectorStore
from .tools import build_default_registry
from .tools.registry import ToolRegistry


@dataclass
class AppRuntime:
    """Bundle of shared services for the Decision Coach application."""

    config: AppConfig
    llm_client: OllamaClient
    vector_store: VectorStore
    decision_index: DecisionIndex
    journal: JournalDB
    chat_db: ChatDB
    registry: ToolRegistry

    def create_chat_service(self, events: Optional[EventBus] = None) -> ChatService:
        """One service per conversation view; all views share storage and clients."""

        return ChatService(
            chat_db=self.chat_db,
            journal=self.journal,
            llm_client=self.llm_client,
            retriever=self.decision_index,
            registry=self.registry,
            events=events,
            config=self.config,
        )


def create_runtime(config: AppConfig = CONFIG) -> AppRuntime:
    """Instantiate shared services once and wire dependencies explicitly.

    Dependency order:
    1. Basic clients (LLM, vector store, databases)
    2. DecisionIndex (needs vector store)
    3. Tool registry (needs LLM, DecisionIndex)
    """
    # Layer 1: Clients
    llm_client = OllamaClient(config.llm)
    vector_store = create_vector_store(config)
    journal = JournalDB(config.paths.sqlite_path)
    chat_db = ChatDB(config.paths.sqlite_path)

    # Layer 2: Retrieval
    decision_index = DecisionIndex(vector_store, config=config)

    # Layer 3: Tools
    registry = build_default_registry(llm_client, decision_index)

    return AppRuntime(
        config=config,
        llm_client=llm_client,
        vector_store=vector_store,
        decision_index=decision_index,
        journal=journal,
        chat_db=chat_db,
        registry=registry,
    )


__all__ = ["AppRuntime", "create_runtime"]
