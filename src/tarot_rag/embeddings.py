"""
Embedding client for dense vectors.

Wraps the Google GenAI embedding API behind a small backend protocol and
adds fixed-cooldown retry on throttling plus fixed-interval pacing for
sequential bulk embedding.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Sequence

from google.genai import Client as GenAIClient
from google.genai import errors as genai_errors

from .config import resolve_api_key
from .errors import ConfigurationError, ProviderError, RateLimitError
from .models import DenseVector

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DOCUMENT_TASK = "RETRIEVAL_DOCUMENT"
QUERY_TASK = "RETRIEVAL_QUERY"

_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 768
_RATE_LIMIT_CODE = 429


class EmbeddingBackend(Protocol):
    """A single remote embedding call."""

    async def embed(self, text: str, *, task_type: str) -> DenseVector:
        """Embed *text*; raise RateLimitError on throttling, ProviderError otherwise."""


class GenAIEmbeddingBackend:
    """Generate text embeddings via Google GenAI."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model or _DEFAULT_MODEL
        self.dim = dim or _DEFAULT_DIM

        if client is not None:
            self._client = client
        else:
            resolved_key = resolve_api_key(api_key)
            if resolved_key is None:
                raise ConfigurationError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = GenAIClient(api_key=resolved_key)

    async def embed(self, text: str, *, task_type: str) -> DenseVector:
        try:
            result = await self._client.aio.models.embed_content(
                model=self.model,
                contents=[text],
                config={
                    "task_type": task_type,
                    "output_dimensionality": self.dim,
                },
            )
        except genai_errors.APIError as exc:
            if exc.code == _RATE_LIMIT_CODE:
                raise RateLimitError(f"Embedding provider rate limited: {exc}") from exc
            raise ProviderError(f"Embedding provider error: {exc}") from exc

        if not result.embeddings:
            raise ProviderError("Embedding provider returned no embeddings")
        values = result.embeddings[0].values
        if not values:
            raise ProviderError("Embedding provider returned an empty vector")
        return list(values)


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-cooldown retry bound for rate-limited calls.

    ``max_retries`` counts retries after the first attempt.
    """

    max_retries: int
    cooldown: float

    def should_retry(self, attempt: int) -> bool:
        """Whether a rate-limited *attempt* (1-based) may be retried."""
        return attempt <= self.max_retries

    def delay_for(self, attempt: int) -> float:
        return self.cooldown


INDEX_RETRY_POLICY = RetryPolicy(max_retries=5, cooldown=65.0)
QUERY_RETRY_POLICY = RetryPolicy(max_retries=3, cooldown=65.0)


class EmbeddingClient:
    """Embedding adapter with bounded retry-with-cooldown on throttling."""

    def __init__(
        self,
        backend: EmbeddingBackend,
        *,
        index_policy: RetryPolicy = INDEX_RETRY_POLICY,
        query_policy: RetryPolicy = QUERY_RETRY_POLICY,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.index_policy = index_policy
        self.query_policy = query_policy
        self._sleep = sleep

    async def embed(
        self,
        text: str,
        *,
        task_type: str = QUERY_TASK,
        policy: RetryPolicy | None = None,
    ) -> DenseVector:
        effective = policy or self.query_policy
        attempt = 1
        while True:
            try:
                return await self.backend.embed(text, task_type=task_type)
            except RateLimitError:
                if not effective.should_retry(attempt):
                    logger.error("Rate limit persisted after %d attempts", attempt)
                    raise
                delay = effective.delay_for(attempt)
                logger.warning(
                    "Rate limited (attempt %d/%d), cooling down %.1fs",
                    attempt,
                    effective.max_retries + 1,
                    delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def embed_document(self, text: str) -> DenseVector:
        return await self.embed(text, task_type=DOCUMENT_TASK, policy=self.index_policy)

    async def embed_query(self, query: str) -> DenseVector:
        return await self.embed(query, task_type=QUERY_TASK, policy=self.query_policy)


async def embed_with_pacing(
    client: EmbeddingClient,
    texts: Sequence[str],
    *,
    interval: float,
    sleep: Sleep = asyncio.sleep,
    progress_every: int = 10,
) -> list[DenseVector]:
    """Embed *texts* one at a time, in order, with *interval* seconds between calls.

    Returns vectors positionally aligned with *texts*.
    """
    vectors: list[DenseVector] = []
    total = len(texts)
    for position, text in enumerate(texts):
        if position > 0 and interval > 0:
            await sleep(interval)
        vectors.append(await client.embed_document(text))
        done = position + 1
        if done % progress_every == 0 or done == total:
            logger.info("Embedded %d/%d documents", done, total)
    return vectors
