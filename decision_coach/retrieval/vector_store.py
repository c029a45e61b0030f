"""Vector store interface and the in-process numpy backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

Metadata = Dict[str, Any]


@dataclass
class Document:
    """A stored entry returned by a query; ``score`` is cosine similarity."""

    id: str
    text: str
    score: float
    metadata: Metadata = field(default_factory=dict)


class VectorStore(ABC):
    """Backend-agnostic interface for similarity search storage."""

    @abstractmethod
    def upsert(
        self,
        namespace: str,
        ids: List[str],
        texts: List[str],
        embeddings: np.ndarray,
        metadatas: Optional[List[Metadata]] = None,
    ) -> None:
        """Insert documents, replacing any with the same id."""

    @abstractmethod
    def query(
        self,
        namespace: str,
        query_embedding: np.ndarray,
        k: int = 5,
        filters: Optional[Metadata] = None,
    ) -> List[Document]:
        """Return up to ``k`` documents ordered by descending similarity."""

    @abstractmethod
    def delete(self, namespace: str, ids: List[str]) -> int:
        """Delete documents by id and return how many were removed."""

    @abstractmethod
    def count(self, namespace: str) -> int:
        """Number of documents stored in ``namespace``."""


@dataclass
class _StoredDoc:
    text: str
    embedding: np.ndarray
    metadata: Metadata


class InMemoryVectorStore(VectorStore):
    """Keeps vectors in process memory; used for tests and small journals."""

    def __init__(self) -> None:
        self._namespaces: Dict[str, Dict[str, _StoredDoc]] = {}

    def upsert(
        self,
        namespace: str,
        ids: List[str],
        texts: List[str],
        embeddings: np.ndarray,
        metadatas: Optional[List[Metadata]] = None,
    ) -> None:
        if len(ids) != len(texts) or len(texts) != len(embeddings):
            raise ValueError("ids, texts and embeddings must have the same length")
        docs = self._namespaces.setdefault(namespace, {})
        for idx, doc_id in enumerate(ids):
            meta = (metadatas[idx] if metadatas else {}) or {}
            docs[doc_id] = _StoredDoc(
                text=texts[idx],
                embedding=np.asarray(embeddings[idx], dtype=float),
                metadata=dict(meta),
            )

    def query(
        self,
        namespace: str,
        query_embedding: np.ndarray,
        k: int = 5,
        filters: Optional[Metadata] = None,
    ) -> List[Document]:
        query_vector = np.asarray(query_embedding, dtype=float)
        results: List[Document] = []
        for doc_id, stored in self._namespaces.get(namespace, {}).items():
            if filters and not _matches_filters(stored.metadata, filters):
                continue
            results.append(
                Document(
                    id=doc_id,
                    text=stored.text,
                    score=_cosine(stored.embedding, query_vector),
                    metadata=dict(stored.metadata),
                )
            )
        results.sort(key=lambda doc: doc.score, reverse=True)
        return results[:k]

    def delete(self, namespace: str, ids: List[str]) -> int:
        docs = self._namespaces.get(namespace, {})
        removed = 0
        for doc_id in ids:
            if docs.pop(doc_id, None) is not None:
                removed += 1
        return removed

    def count(self, namespace: str) -> int:
        return len(self._namespaces.get(namespace, {}))


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    denom = (np.linalg.norm(a) * np.linalg.norm(b)) or 1.0
    return float(np.dot(a, b) / denom)


def _matches_filters(metadata: Metadata, filters: Metadata) -> bool:
    for key, value in filters.items():
        if metadata.get(key) != value:
            return False
    return True


__all__ = ["Document", "InMemoryVectorStore", "Metadata", "VectorStore"]
