"""Tests for the hybrid query engine."""

from __future__ import annotations

import pytest
import pytest_asyncio

from tarot_rag.catalog import StaticCardCatalog
from tarot_rag.embeddings import QUERY_TASK
from tarot_rag.errors import QueryValidationError
from tarot_rag.indexing import IndexingPipeline
from tarot_rag.lexical import BM25Vectorizer
from tarot_rag.models import CardDocument, CompareResult, ScoredPoint
from tarot_rag.search import HybridQueryEngine, to_search_results, validate_query

from .conftest import (
    COLLECTION,
    DIM,
    FakeEmbeddingBackend,
    RecordingStore,
    SleepRecorder,
    fixture_cards,
    make_card,
    make_client,
)


async def _indexed_engine(
    store: RecordingStore,
    backend: FakeEmbeddingBackend,
    sleeper: SleepRecorder,
    cards: list[CardDocument],
) -> HybridQueryEngine:
    client = make_client(backend, sleeper)
    vectorizer = BM25Vectorizer()
    pipeline = IndexingPipeline(
        store,
        StaticCardCatalog(cards),
        client,
        vectorizer,
        collection=COLLECTION,
        dense_size=DIM,
        sleep=sleeper,
    )
    await pipeline.initialize()
    await pipeline.index_all()
    backend.calls.clear()
    return HybridQueryEngine(store, client, vectorizer, collection=COLLECTION)


@pytest_asyncio.fixture()
async def engine(
    store: RecordingStore, backend: FakeEmbeddingBackend, sleeper: SleepRecorder
) -> HybridQueryEngine:
    return await _indexed_engine(store, backend, sleeper, fixture_cards())


def _names(results) -> list[str]:
    return [result.card.name_en for result in results]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_validate_query_strips_and_bounds() -> None:
    assert validate_query("  water  ", 5) == "water"
    assert validate_query("x" * 500, 20) == "x" * 500

    for query, limit in [("", 5), ("   ", 5), ("x" * 501, 5), ("water", 0), ("water", 21)]:
        with pytest.raises(QueryValidationError):
            validate_query(query, limit)
    with pytest.raises(QueryValidationError):
        validate_query("water", True)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_invalid_queries_fail_before_any_io(
    engine: HybridQueryEngine, backend: FakeEmbeddingBackend, store: RecordingStore
) -> None:
    searches = len(store.searches)

    for search in (
        engine.semantic_search,
        engine.sparse_search,
        engine.hybrid_search,
        engine.compare_search,
    ):
        with pytest.raises(QueryValidationError):
            await search("   ", 5)
        with pytest.raises(QueryValidationError):
            await search("water", 21)

    assert backend.call_count == 0
    assert len(store.searches) == searches
    assert store.fused == []


# ---------------------------------------------------------------------------
# Single-mode search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_semantic_search_ranks_by_embedding_similarity(
    engine: HybridQueryEngine, backend: FakeEmbeddingBackend
) -> None:
    results = await engine.semantic_search("water", 3)

    assert _names(results)[0] == "Beta"
    assert [result.rank for result in results] == [1, 2, 3]
    scores = [result.score for result in results]
    assert scores == sorted(scores, reverse=True)
    assert backend.calls == [{"text": "water", "task_type": QUERY_TASK}]


@pytest.mark.asyncio
async def test_sparse_search_matches_query_terms(engine: HybridQueryEngine) -> None:
    results = await engine.sparse_search("water emotion", 1)

    assert len(results) == 1
    assert results[0].card.id == 2
    assert results[0].rank == 1
    assert results[0].score > 0


@pytest.mark.asyncio
async def test_sparse_search_returns_only_overlapping_cards(
    engine: HybridQueryEngine,
) -> None:
    results = await engine.sparse_search("fire earth", 5)

    assert sorted(_names(results)) == ["Alpha", "Gamma"]


@pytest.mark.asyncio
async def test_sparse_search_with_unknown_terms_skips_store(
    engine: HybridQueryEngine, store: RecordingStore, backend: FakeEmbeddingBackend
) -> None:
    searches = len(store.searches)

    assert await engine.sparse_search("mountain", 5) == []
    assert len(store.searches) == searches
    assert backend.call_count == 0


# ---------------------------------------------------------------------------
# Hybrid search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_hybrid_search_fuses_dense_and_sparse(
    engine: HybridQueryEngine, store: RecordingStore
) -> None:
    results = await engine.hybrid_search("wealth", 3)

    assert results[0].card.name_en == "Gamma"
    assert len({result.card.id for result in results}) == len(results)
    candidates = store.fused[-1]
    assert [candidate.vector_name for candidate in candidates] == ["dense", "lexical"]
    assert all(candidate.limit == 12 for candidate in candidates)


@pytest.mark.asyncio
async def test_hybrid_search_without_sparse_overlap_uses_dense_only(
    engine: HybridQueryEngine, store: RecordingStore
) -> None:
    results = await engine.hybrid_search("mountain", 2)

    assert len(results) == 2
    assert [candidate.vector_name for candidate in store.fused[-1]] == ["dense"]


@pytest.mark.asyncio
async def test_hybrid_candidate_pool_scales_with_limit(
    engine: HybridQueryEngine, store: RecordingStore
) -> None:
    await engine.hybrid_search("water", 2)

    assert [candidate.limit for candidate in store.fused[-1]] == [8, 8]


@pytest.mark.asyncio
async def test_hybrid_keeps_lexical_match_outside_dense_pool(
    store: RecordingStore, backend: FakeEmbeddingBackend, sleeper: SleepRecorder
) -> None:
    cards = [make_card(i, i, f"Filler{i}", "plain filler words") for i in range(1, 5)]
    cards.append(make_card(9, 9, "Stone", "zircon"))
    engine = await _indexed_engine(store, backend, sleeper, cards)

    sparse = await engine.sparse_search("zircon", 1)
    hybrid = await engine.hybrid_search("zircon", 1)

    assert [(result.card.id, result.rank) for result in sparse] == [(9, 1)]
    assert [(result.card.id, result.rank) for result in hybrid] == [(9, 1)]
    dense_pool = await store.inner.search(COLLECTION, "dense", [0.0, 0.0, 0.0, 1.0], 4)
    assert 9 not in {point.id for point in dense_pool}


# ---------------------------------------------------------------------------
# Compare
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_compare_search_runs_every_mode_with_timings(
    engine: HybridQueryEngine,
) -> None:
    result = await engine.compare_search("  water  ", 3)

    assert isinstance(result, CompareResult)
    assert result.query == "water"
    assert _names(result.semantic)[0] == "Beta"
    assert _names(result.sparse) == ["Beta"]
    assert _names(result.hybrid)[0] == "Beta"
    assert result.timing.semantic_ms >= 0
    assert result.timing.sparse_ms >= 0
    assert result.timing.hybrid_ms >= 0

    payload = result.to_dict()
    assert set(payload) == {"query", "semantic", "sparse", "hybrid", "timing"}
    assert set(payload["timing"]) == {"semantic_ms", "sparse_ms", "hybrid_ms"}


# ---------------------------------------------------------------------------
# Ranking helpers
# ---------------------------------------------------------------------------


def test_to_search_results_hydrates_payload_and_ranks() -> None:
    cards = fixture_cards()
    points = [
        ScoredPoint(id=card.id, score=1.0 / (i + 1), payload=card.to_payload())
        for i, card in enumerate(cards)
    ]

    results = to_search_results(points, limit=2)

    assert [result.card for result in results] == cards[:2]
    assert [result.rank for result in results] == [1, 2]
    assert results[0].to_dict()["card"]["name_en"] == "Alpha"
