"""Chroma backend for the VectorStore abstraction."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from chromadb import PersistentClient
from chromadb.api.models.Collection import Collection

from .vector_store import Document, Metadata, VectorStore


class ChromaVectorStore(VectorStore):
    """Persistent store; collections use cosine space so scores match the numpy backend."""

    def __init__(self, path: Path) -> None:
        self._client = PersistentClient(path=str(path))
        self._collections: Dict[str, Collection] = {}

    def _get_collection(self, namespace: str) -> Collection:
        if namespace not in self._collections:
            self._collections[namespace] = self._client.get_or_create_collection(
                name=namespace,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collections[namespace]

    def upsert(
        self,
        namespace: str,
        ids: List[str],
        texts: List[str],
        embeddings: np.ndarray,
        metadatas: Optional[List[Metadata]] = None,
    ) -> None:
        if not ids:
            return
        if len(embeddings) != len(texts):
            raise ValueError("Embeddings count must match number of texts")
        self._get_collection(namespace).upsert(
            ids=ids,
            documents=texts,
            embeddings=np.asarray(embeddings, dtype=float).tolist(),
            metadatas=metadatas or [{} for _ in texts],
        )

    def query(
        self,
        namespace: str,
        query_embedding: np.ndarray,
        k: int = 5,
        filters: Optional[Metadata] = None,
    ) -> List[Document]:
        collection = self._get_collection(namespace)
        available = collection.count()
        if available == 0:
            return []
        response = collection.query(
            query_embeddings=[np.asarray(query_embedding, dtype=float).tolist()],
            n_results=min(k, available),
            where=_to_where(filters),
        )
        documents = response.get("documents", [[]])[0] or []
        metadata = response.get("metadatas", [[]])[0] or []
        ids = response.get("ids", [[]])[0] or []
        distances = response.get("distances", [[]])[0] or []
        # Cosine distance is 1 - cosine similarity.
        return [
            Document(
                id=doc_id,
                text=doc or "",
                score=1.0 - float(distance) if distance is not None else 0.0,
                metadata=meta or {},
            )
            for doc, meta, doc_id, distance in zip(documents, metadata, ids, distances)
        ]

    def delete(self, namespace: str, ids: List[str]) -> int:
        if not ids:
            return 0
        collection = self._get_collection(namespace)
        existing = collection.get(ids=ids).get("ids", [])
        if existing:
            collection.delete(ids=existing)
        return len(existing)

    def count(self, namespace: str) -> int:
        return self._get_collection(namespace).count()


def _to_where(filters: Optional[Metadata]) -> Optional[Metadata]:
    if not filters:
        return None
    if len(filters) == 1:
        return dict(filters)
    return {"$and": [{key: value} for key, value in filters.items()]}


__all__ = ["ChromaVectorStore"]
