"""Tests for the decision similarity index over the in-memory vector store."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest
from conftest import make_decision

from decision_coach.config import AppConfig, ContextConfig
from decision_coach.journal.models import Alternative
from decision_coach.retrieval.decision_index import DecisionIndex, decision_document
from decision_coach.retrieval.vector_store import InMemoryVectorStore

VOCABULARY = ("career", "money", "family", "health")


def keyword_embedder(texts):
    return np.array([[text.lower().count(word) for word in VOCABULARY] for text in texts], dtype=float)


def _index(recency_weight=0.0):
    config = AppConfig(context=ContextConfig(recency_boost_weight=recency_weight))
    return DecisionIndex(InMemoryVectorStore(), embedder=keyword_embedder, config=config)


def test_document_includes_alternatives_outcome_and_tags():
    decision = make_decision(
        "d1",
        problem_statement="Switch careers?",
        alternatives=[Alternative(id="a", title="Retrain as a nurse")],
        actual_outcome="Happier overall",
        tags=["career", "health"],
    )
    text = decision_document(decision)
    assert text.splitlines() == ["Switch careers?", "Retrain as a nurse", "Happier overall", "career health"]


def test_search_ranks_by_similarity_and_respects_threshold():
    index = _index()
    index.index_decisions(
        [
            make_decision("career", problem_statement="career move"),
            make_decision("mixed", problem_statement="career or family"),
            make_decision("money", problem_statement="money"),
        ]
    )

    hits = asyncio.run(index.search_similar("career", 5, threshold=0.5))
    assert [hit.entry_id for hit in hits] == ["career", "mixed"]
    assert hits[0].similarity == pytest.approx(1.0)
    assert hits[1].similarity == pytest.approx(2 ** -0.5)


def test_archived_decisions_are_filtered():
    index = _index()
    index.index_decisions(
        [
            make_decision("live", problem_statement="family"),
            make_decision("old", problem_statement="family", is_archived=True),
        ]
    )
    hits = index.search_similar_sync("family", 5, filters={"is_archived": False})
    assert [hit.entry_id for hit in hits] == ["live"]


def test_recency_boost_breaks_ties():
    index = _index(recency_weight=0.1)
    index.index_decisions(
        [
            make_decision("stale", problem_statement="health", days_ago=365),
            make_decision("fresh", problem_statement="health", days_ago=1),
        ]
    )
    hits = index.search_similar_sync("health", 2)
    assert [hit.entry_id for hit in hits] == ["fresh", "stale"]
    assert hits[0].similarity == pytest.approx(hits[1].similarity)
    assert hits[0].score > hits[1].score


def test_remove_and_empty_queries():
    index = _index()
    assert index.index_decisions([]) == 0
    index.index_decision(make_decision("d1", problem_statement="money"))
    assert index.vector_store.count(index.namespace) == 1
    assert index.search_similar_sync("   ", 5) == []
    assert index.search_similar_sync("money", 0) == []

    index.remove("d1")
    assert index.vector_store.count(index.namespace) == 0
    assert index.search_similar_sync("money", 5) == []
