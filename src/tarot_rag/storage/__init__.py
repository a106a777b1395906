"""Vector store backends for the card index."""

from .base import (
    CandidateSpec,
    CollectionInfo,
    DenseVectorSpec,
    IndexStore,
    QueryVector,
    SparseVectorSpec,
)
from .duckdb import DuckDBIndexStore
from .fusion import reciprocal_rank_fusion

__all__ = [
    "CandidateSpec",
    "CollectionInfo",
    "DenseVectorSpec",
    "IndexStore",
    "QueryVector",
    "SparseVectorSpec",
    "DuckDBIndexStore",
    "reciprocal_rank_fusion",
]
