"""Sentence-transformers embedding helpers for journal retrieval."""

from __future__ import annotations

from functools import lru_cache
from typing import Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from .config import CONFIG


@lru_cache(maxsize=1)
def _get_model() -> SentenceTransformer:
    """Return a cached embedding model instance."""

    return SentenceTransformer(CONFIG.embed_model)


def embed_texts(texts: Sequence[str]) -> np.ndarray:
    """Embed texts as L2-normalized row vectors; blank inputs embed as empty text."""

    if not texts:
        return np.zeros((0, 0), dtype=np.float32)
    cleaned = [(text or "").strip() for text in texts]
    model = _get_model()
    embeddings = model.encode(cleaned, batch_size=8, normalize_embeddings=True)
    return np.asarray(embeddings, dtype=np.float32)


def embed_single(text: str) -> np.ndarray:
    """Embed one string and return a 1-D vector."""

    return embed_texts([text])[0]


__all__ = ["embed_single", "embed_texts"]
