"""Vector storage and semantic search over journal entries."""

from .decision_index import DecisionIndex, SimilarityHit, decision_document
from .factory import create_vector_store
from .vector_store import Document, InMemoryVectorStore, VectorStore

__all__ = [
    "DecisionIndex",
    "Document",
    "InMemoryVectorStore",
    "SimilarityHit",
    "VectorStore",
    "create_vector_store",
    "decision_document",
]
