"""Semantic search over journal entries."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..config import CONFIG, AppConfig
from ..embeddings import embed_texts
from ..journal.models import Decision
from .vector_store import VectorStore

Embedder = Callable[[Sequence[str]], np.ndarray]

_MS_PER_DAY = 24 * 60 * 60 * 1000
_RECENCY_HALF_LIFE_DAYS = 90.0


@dataclass
class SimilarityHit:
    """A retrieved entry. ``similarity`` is raw cosine, ``score`` adds the recency boost."""

    entry_id: str
    similarity: float
    score: float


def decision_document(decision: Decision) -> str:
    """Text that represents a decision in the index."""

    parts = [decision.problem_statement, decision.situation]
    parts.extend(alt.label for alt in decision.alternatives)
    if decision.actual_outcome:
        parts.append(decision.actual_outcome)
    if decision.lessons_learned:
        parts.append(decision.lessons_learned)
    if decision.tags:
        parts.append(" ".join(decision.tags))
    return "\n".join(part for part in parts if part)


class DecisionIndex:
    """Embeds decisions into a vector store and answers similarity queries."""

    def __init__(
        self,
        vector_store: VectorStore,
        *,
        embedder: Optional[Embedder] = None,
        config: AppConfig = CONFIG,
    ) -> None:
        self.vector_store = vector_store
        self.embedder = embedder or embed_texts
        self.namespace = config.vector_store.collection
        self.recency_weight = config.context.recency_boost_weight
        self.logger = logging.getLogger("decision_coach.retrieval")

    def index_decisions(self, decisions: Sequence[Decision]) -> int:
        if not decisions:
            return 0
        texts = [decision_document(decision) for decision in decisions]
        embeddings = self.embedder(texts)
        self.vector_store.upsert(
            self.namespace,
            ids=[decision.id for decision in decisions],
            texts=texts,
            embeddings=embeddings,
            metadatas=[
                {"is_archived": bool(decision.is_archived), "created_at": int(decision.created_at)}
                for decision in decisions
            ],
        )
        self.logger.info("Indexed decisions", extra={"hits": len(decisions)})
        return len(decisions)

    def index_decision(self, decision: Decision) -> None:
        self.index_decisions([decision])

    def remove(self, decision_id: str) -> None:
        self.vector_store.delete(self.namespace, [decision_id])

    async def search_similar(
        self,
        query_text: str,
        k: int,
        *,
        threshold: float = 0.0,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[SimilarityHit]:
        return await asyncio.to_thread(self.search_similar_sync, query_text, k, threshold, filters)

    def search_similar_sync(
        self,
        query_text: str,
        k: int,
        threshold: float = 0.0,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[SimilarityHit]:
        if not query_text.strip() or k <= 0:
            return []
        start = time.perf_counter()
        query_embedding = self.embedder([query_text])[0]
        # Over-fetch so the recency boost can reorder near-ties.
        documents = self.vector_store.query(self.namespace, query_embedding, k=k * 3, filters=filters)
        now_ms = int(time.time() * 1000)
        hits = [
            SimilarityHit(
                entry_id=doc.id,
                similarity=doc.score,
                score=doc.score + self._recency_boost(doc.metadata.get("created_at"), now_ms),
            )
            for doc in documents
            if doc.score >= threshold
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        self.logger.debug(
            "Similarity search finished",
            extra={"hits": len(hits[:k]), "elapsed_ms": round((time.perf_counter() - start) * 1000, 2)},
        )
        return hits[:k]

    def _recency_boost(self, created_at: Any, now_ms: int) -> float:
        if not created_at or self.recency_weight <= 0:
            return 0.0
        age_days = max(0.0, (now_ms - int(created_at)) / _MS_PER_DAY)
        return self.recency_weight * 0.5 ** (age_days / _RECENCY_HALF_LIFE_DAYS)


__all__ = ["DecisionIndex", "SimilarityHit", "decision_document"]
