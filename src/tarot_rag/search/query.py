"""
Query engine for semantic, lexical, hybrid and comparison search.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from ..config import DENSE_VECTOR_NAME, SPARSE_VECTOR_NAME
from ..embeddings import EmbeddingClient
from ..errors import QueryValidationError
from ..lexical import BM25Vectorizer
from ..models import CompareResult, SearchResult, SearchTiming
from ..storage import CandidateSpec, IndexStore
from .ranker import to_search_results

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 500
MAX_LIMIT = 20
CANDIDATE_MULTIPLIER = 4


def validate_query(query: str, limit: int) -> str:
    """Return the stripped query or raise QueryValidationError."""
    if not isinstance(query, str):
        raise QueryValidationError("query must be a string")
    normalized = query.strip()
    if not normalized:
        raise QueryValidationError("query must not be empty")
    if len(normalized) > MAX_QUERY_LENGTH:
        raise QueryValidationError(
            f"query must be at most {MAX_QUERY_LENGTH} characters"
        )
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise QueryValidationError("limit must be an integer")
    if not 1 <= limit <= MAX_LIMIT:
        raise QueryValidationError(f"limit must be between 1 and {MAX_LIMIT}")
    return normalized


class HybridQueryEngine:
    """Dense, sparse and RRF-fused retrieval over one collection."""

    def __init__(
        self,
        storage: IndexStore,
        embedding_client: EmbeddingClient,
        vectorizer: BM25Vectorizer,
        *,
        collection: str,
        dense_name: str = DENSE_VECTOR_NAME,
        sparse_name: str = SPARSE_VECTOR_NAME,
    ) -> None:
        self.storage = storage
        self.embedding_client = embedding_client
        self.vectorizer = vectorizer
        self.collection = collection
        self.dense_name = dense_name
        self.sparse_name = sparse_name

    async def semantic_search(self, query: str, limit: int = 5) -> list[SearchResult]:
        normalized = validate_query(query, limit)
        vector = await self.embedding_client.embed_query(normalized)
        points = await self.storage.search(self.collection, self.dense_name, vector, limit)
        return to_search_results(points, limit=limit)

    async def sparse_search(self, query: str, limit: int = 5) -> list[SearchResult]:
        normalized = validate_query(query, limit)
        sparse = self.vectorizer.transform(normalized)
        if sparse.is_empty:
            return []
        points = await self.storage.search(self.collection, self.sparse_name, sparse, limit)
        return to_search_results(points, limit=limit)

    async def hybrid_search(self, query: str, limit: int = 5) -> list[SearchResult]:
        normalized = validate_query(query, limit)
        dense = await self.embedding_client.embed_query(normalized)
        sparse = self.vectorizer.transform(normalized)

        pool = limit * CANDIDATE_MULTIPLIER
        candidates = [CandidateSpec(vector_name=self.dense_name, vector=dense, limit=pool)]
        if not sparse.is_empty:
            candidates.append(
                CandidateSpec(vector_name=self.sparse_name, vector=sparse, limit=pool)
            )
        points = await self.storage.fused_search(self.collection, candidates, limit)
        return to_search_results(points, limit=limit)

    async def compare_search(self, query: str, limit: int = 5) -> CompareResult:
        normalized = validate_query(query, limit)
        semantic, semantic_ms = await _timed(self.semantic_search, normalized, limit)
        sparse, sparse_ms = await _timed(self.sparse_search, normalized, limit)
        hybrid, hybrid_ms = await _timed(self.hybrid_search, normalized, limit)
        logger.debug(
            "compare %r: semantic %.1fms, sparse %.1fms, hybrid %.1fms",
            normalized,
            semantic_ms,
            sparse_ms,
            hybrid_ms,
        )
        return CompareResult(
            query=normalized,
            semantic=semantic,
            sparse=sparse,
            hybrid=hybrid,
            timing=SearchTiming(
                semantic_ms=semantic_ms,
                sparse_ms=sparse_ms,
                hybrid_ms=hybrid_ms,
            ),
        )


async def _timed(
    search: Callable[[str, int], Awaitable[list[SearchResult]]],
    query: str,
    limit: int,
) -> tuple[list[SearchResult], float]:
    start = time.perf_counter()
    results = await search(query, limit)
    return results, (time.perf_counter() - start) * 1000
