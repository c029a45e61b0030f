"""Factory helpers for constructing VectorStore instances."""

from __future__ import annotations

import logging

from ..config import AppConfig, CONFIG
from .vector_store import InMemoryVectorStore, VectorStore

_LOGGER = logging.getLogger("decision_coach.vector_store")


def create_vector_store(config: AppConfig = CONFIG) -> VectorStore:
    """Instantiate the configured VectorStore backend."""

    backend = config.vector_store.backend.lower()
    if backend in {"memory", "inmemory"}:
        return InMemoryVectorStore()
    if backend == "chroma":
        from .chroma_store import ChromaVectorStore

        config.vector_store.path.mkdir(parents=True, exist_ok=True)
        store = ChromaVectorStore(config.vector_store.path)
        _LOGGER.info("Opened Chroma vector store at %s", config.vector_store.path)
        return store
    raise ValueError(f"Unsupported vector store backend: {config.vector_store.backend}")


__all__ = ["create_vector_store"]
