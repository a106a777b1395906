from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import pytest

from tarot_rag.catalog import StaticCardCatalog
from tarot_rag.embeddings import EmbeddingClient, RetryPolicy
from tarot_rag.errors import ProviderError, RateLimitError
from tarot_rag.lexical import BM25Vectorizer, tokenize
from tarot_rag.models import CardDocument, IndexedPoint, ScoredPoint
from tarot_rag.service import RagService
from tarot_rag.storage import CandidateSpec, DuckDBIndexStore

DIM = 4
COLLECTION = "test_cards"

_AXES = (
    {"fire", "courage", "strength"},
    {"water", "intuition", "emotion"},
    {"earth", "stability", "wealth"},
)


def make_card(card_id: int, number: int, name: str, upright: str, **extra: Any) -> CardDocument:
    fields: dict[str, Any] = {
        "id": card_id,
        "name_native": name,
        "name_en": name,
        "arcana": "major",
        "suit": None,
        "number": number,
        "keywords": [],
        "upright_meaning": upright,
        "reversed_meaning": "",
        "symbolism": "",
        "love": "",
        "career": "",
        "health": "",
        "finance": "",
    }
    fields.update(extra)
    return CardDocument(**fields)


def fixture_cards() -> list[CardDocument]:
    return [
        make_card(1, 0, "Alpha", "fire courage strength"),
        make_card(2, 1, "Beta", "water intuition emotion"),
        make_card(3, 2, "Gamma", "earth stability wealth"),
    ]


def element_vector(text: str) -> list[float]:
    """Deterministic 4-d embedding: one axis per element plus a bias axis."""
    tokens = tokenize(text)
    return [float(sum(token in axis for token in tokens)) for axis in _AXES] + [1.0]


class FakeEmbeddingBackend:
    """Records calls; can be told to throttle or fail on given call numbers."""

    def __init__(
        self,
        *,
        rate_limited_calls: Sequence[int] = (),
        failing_calls: Sequence[int] = (),
        always_rate_limited: bool = False,
    ) -> None:
        self.calls: list[dict[str, str]] = []
        self.rate_limited_calls = set(rate_limited_calls)
        self.failing_calls = set(failing_calls)
        self.always_rate_limited = always_rate_limited

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def embed(self, text: str, *, task_type: str) -> list[float]:
        self.calls.append({"text": text, "task_type": task_type})
        number = len(self.calls)
        if self.always_rate_limited or number in self.rate_limited_calls:
            raise RateLimitError("429 Resource exhausted")
        if number in self.failing_calls:
            raise ProviderError("embedding backend unavailable")
        return element_vector(text)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingStore:
    """Delegates to a real store and records every call."""

    def __init__(self, inner: DuckDBIndexStore) -> None:
        self.inner = inner
        self.upserts: list[list[IndexedPoint]] = []
        self.searches: list[tuple[str, Any, int]] = []
        self.fused: list[list[CandidateSpec]] = []
        self.pings = 0
        self.close_calls = 0

    async def ping(self) -> None:
        self.pings += 1
        await self.inner.ping()

    async def collection_exists(self, name: str) -> bool:
        return await self.inner.collection_exists(name)

    async def create_collection(self, name, dense, sparse) -> None:
        await self.inner.create_collection(name, dense, sparse)

    async def drop_collection(self, name: str) -> None:
        await self.inner.drop_collection(name)

    async def get_collection(self, name: str):
        return await self.inner.get_collection(name)

    async def upsert(self, name: str, points) -> int:
        self.upserts.append(list(points))
        return await self.inner.upsert(name, points)

    async def search(self, name, vector_name, vector, limit) -> list[ScoredPoint]:
        self.searches.append((vector_name, vector, limit))
        return await self.inner.search(name, vector_name, vector, limit)

    async def fused_search(self, name, candidates, limit) -> list[ScoredPoint]:
        self.fused.append(list(candidates))
        return await self.inner.fused_search(name, candidates, limit)

    def close(self) -> None:
        # the duckdb_store fixture owns the real connection
        self.close_calls += 1


def make_client(
    backend: FakeEmbeddingBackend, sleep: SleepRecorder, cooldown: float = 65.0
) -> EmbeddingClient:
    return EmbeddingClient(
        backend,
        index_policy=RetryPolicy(max_retries=5, cooldown=cooldown),
        query_policy=RetryPolicy(max_retries=3, cooldown=cooldown),
        sleep=sleep,
    )


@pytest.fixture()
def cards() -> list[CardDocument]:
    return fixture_cards()


@pytest.fixture()
def backend() -> FakeEmbeddingBackend:
    return FakeEmbeddingBackend()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def duckdb_store(tmp_path: Path):
    store = DuckDBIndexStore(str(tmp_path / "index.duckdb"))
    yield store
    store.close()


@pytest.fixture()
def store(duckdb_store: DuckDBIndexStore) -> RecordingStore:
    return RecordingStore(duckdb_store)


@pytest.fixture()
def make_service(store: RecordingStore, backend: FakeEmbeddingBackend, sleeper: SleepRecorder):
    def _make(
        cards: Sequence[CardDocument] | None = None,
        *,
        with_embeddings: bool = True,
        vectorizer: BM25Vectorizer | None = None,
    ) -> RagService:
        return RagService(
            storage=store,
            catalog=StaticCardCatalog(cards if cards is not None else fixture_cards()),
            embedding_client=make_client(backend, sleeper) if with_embeddings else None,
            collection=COLLECTION,
            dense_size=DIM,
            vectorizer=vectorizer,
            embed_interval=1.0,
            sleep=sleeper,
        )

    return _make
