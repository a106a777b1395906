"""
Storage interfaces and data models for the vector index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Union

from ..models import DenseVector, IndexedPoint, ScoredPoint, SparseVector

QueryVector = Union[DenseVector, SparseVector]


@dataclass(frozen=True)
class DenseVectorSpec:
    """Named dense vector slot of a collection."""

    name: str
    size: int
    distance: str = "cosine"


@dataclass(frozen=True)
class SparseVectorSpec:
    """Named sparse vector slot of a collection."""

    name: str


@dataclass(frozen=True)
class CollectionInfo:
    """Configuration and size of a stored collection."""

    name: str
    points_count: int
    dense_name: str
    dense_size: int
    sparse_name: str

    def matches(self, dense: DenseVectorSpec, sparse: SparseVectorSpec) -> bool:
        return (
            self.dense_name == dense.name
            and self.dense_size == dense.size
            and self.sparse_name == sparse.name
        )


@dataclass(frozen=True)
class CandidateSpec:
    """One candidate pool for fused search."""

    vector_name: str
    vector: QueryVector
    limit: int


class IndexStore(Protocol):
    """Protocol for the vector store operations used by indexing and search."""

    async def ping(self) -> None:
        """Verify connectivity; raise ProviderError when unreachable."""

    async def collection_exists(self, name: str) -> bool:
        """Return True if the collection exists."""

    async def create_collection(
        self, name: str, dense: DenseVectorSpec, sparse: SparseVectorSpec
    ) -> None:
        """Create an empty collection with one dense and one sparse slot."""

    async def drop_collection(self, name: str) -> None:
        """Drop a collection and all of its points."""

    async def get_collection(self, name: str) -> CollectionInfo:
        """Return configuration and point count of a collection."""

    async def upsert(self, name: str, points: Sequence[IndexedPoint]) -> int:
        """Insert or replace points atomically. Return count written."""

    async def search(
        self, name: str, vector_name: str, vector: QueryVector, limit: int
    ) -> list[ScoredPoint]:
        """Rank points against a single vector field."""

    async def fused_search(
        self, name: str, candidates: Sequence[CandidateSpec], limit: int
    ) -> list[ScoredPoint]:
        """Retrieve each candidate pool and return one fused, deduplicated ranking."""

    def close(self) -> None:
        """Release the underlying connection."""
