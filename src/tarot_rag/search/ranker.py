"""
Ranking helpers for turning store hits into search results.
"""

from __future__ import annotations

from typing import Sequence

from ..models import CardDocument, ScoredPoint, SearchResult


def to_search_results(points: Sequence[ScoredPoint], *, limit: int) -> list[SearchResult]:
    """Hydrate payloads and assign 1-based ranks in store order."""
    return [
        SearchResult(
            card=CardDocument.from_payload(point.payload),
            score=float(point.score),
            rank=rank,
        )
        for rank, point in enumerate(points[: max(limit, 1)], start=1)
    ]
