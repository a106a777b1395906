"""
Rank fusion for merging independently retrieved candidate pools.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from ..models import ScoredPoint

DEFAULT_RRF_K = 60


@dataclass
class _FusedEntry:
    id: int
    payload: dict[str, Any]
    score: float
    best_rank: int
    last_source: int


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[ScoredPoint]],
    *,
    k: int = DEFAULT_RRF_K,
    limit: int | None = None,
) -> list[ScoredPoint]:
    """Fuse rankings by summing ``1 / (k + rank)`` with 1-based ranks.

    Points are deduplicated by id; the payload of the first occurrence is
    kept. Ties fall back to the best single-source rank, then to the point
    seen in the later ranking, then id.
    """
    merged: dict[int, _FusedEntry] = {}
    for source, ranking in enumerate(rankings):
        for rank, point in enumerate(ranking, start=1):
            contribution = 1.0 / (k + rank)
            entry = merged.get(point.id)
            if entry is None:
                merged[point.id] = _FusedEntry(
                    id=point.id,
                    payload=point.payload,
                    score=contribution,
                    best_rank=rank,
                    last_source=source,
                )
            else:
                entry.score += contribution
                entry.best_rank = min(entry.best_rank, rank)
                entry.last_source = source

    ordered = sorted(
        merged.values(),
        key=lambda entry: (
            -entry.score,
            entry.best_rank,
            -entry.last_source,
            entry.id,
        ),
    )
    if limit is not None:
        ordered = ordered[: max(limit, 0)]
    return [
        ScoredPoint(id=entry.id, score=entry.score, payload=entry.payload)
        for entry in ordered
    ]
