"""
DuckDB storage backend for the vector index.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Sequence, TypeVar

import duckdb

from ..errors import ProviderError
from ..models import IndexedPoint, ScoredPoint, SparseVector
from .base import (
    CandidateSpec,
    CollectionInfo,
    DenseVectorSpec,
    QueryVector,
    SparseVectorSpec,
)
from .fusion import reciprocal_rank_fusion

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DuckDBIndexStore:
    """DuckDB-backed collections of dense + sparse vectors with JSON payloads."""

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = str(Path(db_path).expanduser().resolve())
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.read_only = read_only
        self._lock = threading.Lock()
        self._conn = duckdb.connect(self.db_path, read_only=read_only)
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS collections (
                name VARCHAR PRIMARY KEY,
                dense_name VARCHAR NOT NULL,
                dense_size INTEGER NOT NULL,
                distance VARCHAR NOT NULL,
                sparse_name VARCHAR NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        # Points carry no key constraint: upserts delete then insert inside
        # one transaction.
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS points (
                collection VARCHAR NOT NULL,
                id BIGINT NOT NULL,
                dense DOUBLE[] NOT NULL,
                sparse_indices INTEGER[] NOT NULL,
                sparse_values DOUBLE[] NOT NULL,
                payload_json VARCHAR NOT NULL
            );
            """
        )

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            try:
                return fn(*args)
            except duckdb.Error as exc:
                raise ProviderError(f"Vector store error: {exc}") from exc

    # -- collection lifecycle -------------------------------------------------

    async def ping(self) -> None:
        await self._run(lambda: self._conn.execute("SELECT 1").fetchone())

    async def collection_exists(self, name: str) -> bool:
        return await self._run(self._collection_row, name) is not None

    async def create_collection(
        self, name: str, dense: DenseVectorSpec, sparse: SparseVectorSpec
    ) -> None:
        await self._run(self._create_collection, name, dense, sparse)
        logger.info(
            "Created collection %s (%s: %d dims, %s: sparse)",
            name,
            dense.name,
            dense.size,
            sparse.name,
        )

    async def drop_collection(self, name: str) -> None:
        await self._run(self._drop_collection, name)
        logger.info("Dropped collection %s", name)

    async def get_collection(self, name: str) -> CollectionInfo:
        return await self._run(self._get_collection, name)

    def _collection_row(self, name: str) -> tuple[Any, ...] | None:
        return self._conn.execute(
            """
            SELECT name, dense_name, dense_size, sparse_name
            FROM collections
            WHERE name = ?
            """,
            [name],
        ).fetchone()

    def _require_collection(self, name: str) -> tuple[Any, ...]:
        row = self._collection_row(name)
        if row is None:
            raise ProviderError(f"Collection not found: {name}")
        return row

    def _create_collection(
        self, name: str, dense: DenseVectorSpec, sparse: SparseVectorSpec
    ) -> None:
        if self._collection_row(name) is not None:
            raise ProviderError(f"Collection already exists: {name}")
        self._conn.execute(
            """
            INSERT INTO collections (name, dense_name, dense_size, distance, sparse_name)
            VALUES (?, ?, ?, ?, ?)
            """,
            [name, dense.name, dense.size, dense.distance, sparse.name],
        )

    def _drop_collection(self, name: str) -> None:
        self._conn.begin()
        try:
            self._conn.execute("DELETE FROM points WHERE collection = ?", [name])
            self._conn.execute("DELETE FROM collections WHERE name = ?", [name])
            self._conn.commit()
        except duckdb.Error:
            self._conn.rollback()
            raise

    def _get_collection(self, name: str) -> CollectionInfo:
        row = self._require_collection(name)
        count_row = self._conn.execute(
            "SELECT COUNT(*) FROM points WHERE collection = ?",
            [name],
        ).fetchone()
        return CollectionInfo(
            name=str(row[0]),
            points_count=int(count_row[0]) if count_row else 0,
            dense_name=str(row[1]),
            dense_size=int(row[2]),
            sparse_name=str(row[3]),
        )

    # -- writes ---------------------------------------------------------------

    async def upsert(self, name: str, points: Sequence[IndexedPoint]) -> int:
        written = await self._run(self._upsert, name, list(points))
        logger.info("Upserted %d points into %s", written, name)
        return written

    def _upsert(self, name: str, points: list[IndexedPoint]) -> int:
        row = self._require_collection(name)
        dense_size = int(row[2])
        for point in points:
            if len(point.dense) != dense_size:
                raise ProviderError(
                    f"Point {point.id} has {len(point.dense)} dense dims, "
                    f"collection {name} expects {dense_size}"
                )
        if not points:
            return 0

        self._conn.begin()
        try:
            self._conn.executemany(
                "DELETE FROM points WHERE collection = ? AND id = ?",
                [(name, point.id) for point in points],
            )
            self._conn.executemany(
                """
                INSERT INTO points (
                    collection, id, dense, sparse_indices, sparse_values, payload_json
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        name,
                        point.id,
                        [float(value) for value in point.dense],
                        list(point.sparse.indices),
                        list(point.sparse.values),
                        json.dumps(point.payload, ensure_ascii=False, sort_keys=True),
                    )
                    for point in points
                ],
            )
            self._conn.commit()
        except duckdb.Error:
            self._conn.rollback()
            raise
        return len(points)

    # -- reads ----------------------------------------------------------------

    async def search(
        self, name: str, vector_name: str, vector: QueryVector, limit: int
    ) -> list[ScoredPoint]:
        return await self._run(self._search, name, vector_name, vector, limit)

    async def fused_search(
        self, name: str, candidates: Sequence[CandidateSpec], limit: int
    ) -> list[ScoredPoint]:
        rankings: list[list[ScoredPoint]] = []
        for candidate in candidates:
            if isinstance(candidate.vector, SparseVector) and candidate.vector.is_empty:
                continue
            rankings.append(
                await self.search(
                    name, candidate.vector_name, candidate.vector, candidate.limit
                )
            )
        return reciprocal_rank_fusion(rankings, limit=limit)

    def _search(
        self, name: str, vector_name: str, vector: QueryVector, limit: int
    ) -> list[ScoredPoint]:
        row = self._require_collection(name)
        dense_name, dense_size, sparse_name = str(row[1]), int(row[2]), str(row[3])
        if vector_name == dense_name:
            if isinstance(vector, SparseVector):
                raise ProviderError(f"Vector {vector_name!r} expects a dense vector")
            if len(vector) != dense_size:
                raise ProviderError(
                    f"Query has {len(vector)} dense dims, collection {name} "
                    f"expects {dense_size}"
                )
            return self._search_dense(name, vector, limit)
        if vector_name == sparse_name:
            if not isinstance(vector, SparseVector):
                raise ProviderError(f"Vector {vector_name!r} expects a sparse vector")
            return self._search_sparse(name, vector, limit)
        raise ProviderError(f"Unknown vector {vector_name!r} in collection {name}")

    def _search_dense(
        self, name: str, vector: list[float], limit: int
    ) -> list[ScoredPoint]:
        rows = self._conn.execute(
            """
            SELECT id, score, payload_json FROM (
                SELECT
                    id,
                    list_cosine_similarity(dense, ?::DOUBLE[]) AS score,
                    payload_json
                FROM points
                WHERE collection = ?
            ) ranked
            ORDER BY score DESC NULLS LAST, id ASC
            LIMIT ?
            """,
            [[float(value) for value in vector], name, limit],
        ).fetchall()
        return [
            ScoredPoint(
                id=int(row[0]),
                score=float(row[1]) if row[1] is not None else 0.0,
                payload=json.loads(str(row[2])),
            )
            for row in rows
        ]

    def _search_sparse(
        self, name: str, vector: SparseVector, limit: int
    ) -> list[ScoredPoint]:
        if vector.is_empty:
            return []
        query_weights = vector.as_dict()
        rows = self._conn.execute(
            """
            SELECT id, sparse_indices, sparse_values, payload_json
            FROM points
            WHERE collection = ?
            """,
            [name],
        ).fetchall()

        scored: list[tuple[float, int, str]] = []
        for point_id, indices, values, payload_json in rows:
            score = sum(
                query_weights[index] * value
                for index, value in zip(indices, values)
                if index in query_weights
            )
            if score > 0:
                scored.append((score, int(point_id), str(payload_json)))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            ScoredPoint(id=point_id, score=score, payload=json.loads(payload_json))
            for score, point_id, payload_json in scored[:limit]
        ]
