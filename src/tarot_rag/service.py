"""
Service facade: initialization state machine and the query surface used by
the HTTP layer and the CLI.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Literal, TypeAlias

from .catalog import CardCatalog, JsonCardCatalog
from .config import RagSettings
from .embeddings import EmbeddingClient, GenAIEmbeddingBackend, RetryPolicy, Sleep
from .errors import ConfigurationError, NotInitializedError, QueryValidationError
from .indexing import IndexingPipeline, IndexingResult
from .lexical import BM25Vectorizer
from .models import CompareResult, SearchResult
from .search import HybridQueryEngine, validate_query
from .storage import DuckDBIndexStore, IndexStore

logger = logging.getLogger(__name__)

SearchMode: TypeAlias = Literal["semantic", "sparse", "hybrid", "compare"]
SEARCH_MODES: tuple[str, ...] = ("semantic", "sparse", "hybrid", "compare")


class ServiceState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(frozen=True)
class ServiceStatus:
    ready: bool
    state: str
    document_count: int


class RagService:
    """Hybrid card retrieval service."""

    def __init__(
        self,
        *,
        storage: IndexStore,
        catalog: CardCatalog,
        embedding_client: EmbeddingClient | None,
        collection: str,
        dense_size: int,
        vectorizer: BM25Vectorizer | None = None,
        embed_interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.storage = storage
        self.catalog = catalog
        self.embedding_client = embedding_client
        self.collection = collection
        self.vectorizer = vectorizer or BM25Vectorizer()
        self._state = ServiceState.UNINITIALIZED
        self._document_count = 0
        self._init_lock = asyncio.Lock()
        self._index_lock = asyncio.Lock()

        self.pipeline: IndexingPipeline | None = None
        self.engine: HybridQueryEngine | None = None
        if embedding_client is not None:
            self.pipeline = IndexingPipeline(
                storage,
                catalog,
                embedding_client,
                self.vectorizer,
                collection=collection,
                dense_size=dense_size,
                embed_interval=embed_interval,
                sleep=sleep,
            )
            self.engine = HybridQueryEngine(
                storage,
                embedding_client,
                self.vectorizer,
                collection=collection,
            )

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ServiceState.READY

    def status(self) -> ServiceStatus:
        return ServiceStatus(
            ready=self.is_ready,
            state=self._state.value,
            document_count=self._document_count,
        )

    async def initialize(self) -> None:
        """Bring the service to READY; concurrent callers await the same run."""
        if self.is_ready:
            return
        if self.pipeline is None:
            raise ConfigurationError(
                "Embedding provider is not configured (set GOOGLE_API_KEY)"
            )

        async with self._init_lock:
            if self.is_ready:
                return
            self._state = ServiceState.INITIALIZING
            try:
                self._document_count = await self.pipeline.initialize()
            except Exception:
                self._state = ServiceState.UNINITIALIZED
                raise
            self._state = ServiceState.READY
        logger.info(
            "Retrieval service ready (%d points in %s)",
            self._document_count,
            self.collection,
        )

    async def reindex(self) -> IndexingResult:
        pipeline = self._require_ready_pipeline()
        async with self._index_lock:
            try:
                result = await pipeline.index_all()
            except Exception as exc:
                logger.error("Re-index failed, keeping previous index: %s", exc)
                raise
            info = await self.storage.get_collection(self.collection)
            self._document_count = info.points_count
        return result

    async def search(
        self, query: str, mode: str = "hybrid", limit: int = 5
    ) -> list[SearchResult] | CompareResult:
        if mode not in SEARCH_MODES:
            raise QueryValidationError(
                f"mode must be one of {', '.join(SEARCH_MODES)}"
            )
        normalized = validate_query(query, limit)
        engine = self._require_ready_engine()

        if mode == "compare":
            return await engine.compare_search(normalized, limit)
        if mode == "semantic":
            return await engine.semantic_search(normalized, limit)
        if mode == "sparse":
            return await engine.sparse_search(normalized, limit)
        return await engine.hybrid_search(normalized, limit)

    def close(self) -> None:
        """Release the vector store connection."""
        self.storage.close()

    def _require_ready_pipeline(self) -> IndexingPipeline:
        if not self.is_ready or self.pipeline is None:
            raise NotInitializedError("Retrieval service is not initialized")
        return self.pipeline

    def _require_ready_engine(self) -> HybridQueryEngine:
        if not self.is_ready or self.engine is None:
            raise NotInitializedError("Retrieval service is not initialized")
        return self.engine


def build_service(settings: RagSettings | None = None) -> RagService:
    """Wire the JSON catalog, DuckDB store and GenAI embeddings from settings."""
    settings = settings or RagSettings.from_env()
    storage = DuckDBIndexStore(settings.db_path)
    catalog = JsonCardCatalog(settings.catalog_path)

    embedding_client: EmbeddingClient | None
    try:
        backend = GenAIEmbeddingBackend(
            api_key=settings.api_key,
            model=settings.embedding_model,
            dim=settings.embedding_dim,
        )
    except ConfigurationError as exc:
        logger.warning("Embedding provider unavailable: %s", exc)
        embedding_client = None
    else:
        embedding_client = EmbeddingClient(
            backend,
            index_policy=RetryPolicy(
                max_retries=settings.index_retries,
                cooldown=settings.rate_limit_cooldown,
            ),
            query_policy=RetryPolicy(
                max_retries=settings.query_retries,
                cooldown=settings.rate_limit_cooldown,
            ),
        )

    return RagService(
        storage=storage,
        catalog=catalog,
        embedding_client=embedding_client,
        collection=settings.collection,
        dense_size=settings.embedding_dim,
        embed_interval=settings.embed_interval,
    )
