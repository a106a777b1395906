"""
Indexing pipeline orchestration.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..catalog import CardCatalog, build_document
from ..config import DENSE_VECTOR_NAME, SPARSE_VECTOR_NAME
from ..embeddings import EmbeddingClient, Sleep, embed_with_pacing
from ..errors import ConfigurationError, ProviderError
from ..lexical import BM25Vectorizer
from ..models import CardDocument, IndexedPoint
from ..storage import DenseVectorSpec, IndexStore, SparseVectorSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexingResult:
    """Summary output for an indexing run."""

    skipped: bool
    documents: int
    points_written: int
    embedding_calls: int
    generation: int


class IndexingPipeline:
    """Build the card collection: corpus → BM25 fit → paced embedding → one upsert."""

    def __init__(
        self,
        storage: IndexStore,
        catalog: CardCatalog,
        embedding_client: EmbeddingClient,
        vectorizer: BM25Vectorizer,
        *,
        collection: str,
        dense_size: int,
        dense_name: str = DENSE_VECTOR_NAME,
        sparse_name: str = SPARSE_VECTOR_NAME,
        embed_interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.storage = storage
        self.catalog = catalog
        self.embedding_client = embedding_client
        self.vectorizer = vectorizer
        self.collection = collection
        self.dense_spec = DenseVectorSpec(name=dense_name, size=dense_size)
        self.sparse_spec = SparseVectorSpec(name=sparse_name)
        self.embed_interval = embed_interval
        self._sleep = sleep

    async def initialize(self) -> int:
        """Prepare the collection and fit BM25 from the live corpus.

        Returns the number of points already stored.
        """
        await self.storage.ping()
        await self._ensure_collection()
        info = await self.storage.get_collection(self.collection)

        cards = self.catalog.list_all_documents()
        if cards:
            self.vectorizer.fit(self._documents(cards))
        else:
            logger.warning("Card catalog is empty; sparse search has no vocabulary")
        return info.points_count

    async def index_all(self) -> IndexingResult:
        await self._ensure_collection()
        cards = self.catalog.list_all_documents()
        if not cards:
            raise ConfigurationError("Card catalog is empty; nothing to index")

        documents = self._documents(cards)
        info = await self.storage.get_collection(self.collection)
        if info.points_count >= len(cards):
            logger.info(
                "%d cards already indexed in %s, skipping embedding",
                info.points_count,
                self.collection,
            )
            model = self.vectorizer.fit(documents)
            return IndexingResult(
                skipped=True,
                documents=len(cards),
                points_written=0,
                embedding_calls=0,
                generation=model.generation,
            )

        model = self.vectorizer.prepare(documents)
        vectors = await embed_with_pacing(
            self.embedding_client,
            documents,
            interval=self.embed_interval,
            sleep=self._sleep,
        )
        if len(vectors) != len(cards):
            raise ProviderError(
                f"Embedded {len(vectors)} vectors for {len(cards)} documents"
            )

        points = [
            IndexedPoint(
                id=card.id,
                dense=dense,
                sparse=model.transform(document),
                payload=card.to_payload(),
            )
            for card, document, dense in zip(cards, documents, vectors)
        ]
        written = await self.storage.upsert(self.collection, points)
        self.vectorizer.install(model)
        logger.info("Indexed %d cards into %s", written, self.collection)
        return IndexingResult(
            skipped=False,
            documents=len(cards),
            points_written=written,
            embedding_calls=len(vectors),
            generation=model.generation,
        )

    async def _ensure_collection(self) -> None:
        if await self.storage.collection_exists(self.collection):
            info = await self.storage.get_collection(self.collection)
            if info.matches(self.dense_spec, self.sparse_spec):
                return
            logger.info(
                "Collection %s has dense %s/%d and sparse %s; recreating as %s/%d and %s",
                self.collection,
                info.dense_name,
                info.dense_size,
                info.sparse_name,
                self.dense_spec.name,
                self.dense_spec.size,
                self.sparse_spec.name,
            )
            await self.storage.drop_collection(self.collection)
        await self.storage.create_collection(
            self.collection, self.dense_spec, self.sparse_spec
        )

    @staticmethod
    def _documents(cards: list[CardDocument]) -> list[str]:
        return [build_document(card) for card in cards]
