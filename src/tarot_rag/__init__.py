"""
tarot-rag - hybrid semantic + lexical retrieval over tarot cards.

This package answers natural-language queries against a small card corpus by
combining BM25 sparse vectors with Google GenAI dense embeddings and fusing
both rankings with Reciprocal Rank Fusion.

Example usage:
    >>> from tarot_rag import RagSettings, build_service
    >>> service = build_service(RagSettings.from_env())
    >>> await service.initialize()
    >>> await service.reindex()
    >>> results = await service.search("new beginnings", mode="hybrid", limit=5)
"""

from .catalog import CardCatalog, JsonCardCatalog, StaticCardCatalog, build_document
from .config import RagSettings
from .embeddings import (
    EmbeddingClient,
    GenAIEmbeddingBackend,
    RetryPolicy,
    embed_with_pacing,
)
from .errors import (
    ConfigurationError,
    NotInitializedError,
    ProviderError,
    QueryValidationError,
    RagError,
    RateLimitError,
)
from .indexing import IndexingPipeline, IndexingResult
from .lexical import BM25Model, BM25Vectorizer, tokenize
from .models import (
    CardDocument,
    CompareResult,
    IndexedPoint,
    SearchResult,
    SparseVector,
)
from .search import HybridQueryEngine
from .service import RagService, ServiceState, ServiceStatus, build_service

__all__ = [
    # Catalog
    "CardCatalog",
    "JsonCardCatalog",
    "StaticCardCatalog",
    "build_document",
    # Config
    "RagSettings",
    # Embeddings
    "EmbeddingClient",
    "GenAIEmbeddingBackend",
    "RetryPolicy",
    "embed_with_pacing",
    # Errors
    "ConfigurationError",
    "NotInitializedError",
    "ProviderError",
    "QueryValidationError",
    "RagError",
    "RateLimitError",
    # Indexing
    "IndexingPipeline",
    "IndexingResult",
    # Lexical
    "BM25Model",
    "BM25Vectorizer",
    "tokenize",
    # Models
    "CardDocument",
    "CompareResult",
    "IndexedPoint",
    "SearchResult",
    "SparseVector",
    # Search
    "HybridQueryEngine",
    # Service
    "RagService",
    "ServiceState",
    "ServiceStatus",
    "build_service",
]
