"""
Configuration helpers for the retrieval engine.

Every setting resolves from an explicit override, then an environment
variable, then a default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


DEFAULT_DB_PATH = "~/.tarot_rag/index.duckdb"
ENV_DB_PATH = "TAROT_RAG_DB_PATH"

DEFAULT_COLLECTION = "tarot_cards"
DENSE_VECTOR_NAME = "dense"
SPARSE_VECTOR_NAME = "lexical"

_DEFAULT_CATALOG_PATH = "cards.json"
_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 768
_DEFAULT_EMBED_INTERVAL = 1.0
_DEFAULT_COOLDOWN = 65.0
_DEFAULT_INDEX_RETRIES = 5
_DEFAULT_QUERY_RETRIES = 3


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) TAROT_RAG_DB_PATH
    3) default path

    ``:memory:`` is passed through untouched.
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    if raw_path == ":memory:":
        return raw_path
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def resolve_api_key(override: str | None = None) -> str | None:
    return override or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class RagSettings:
    """Resolved settings for one service instance."""

    db_path: str
    catalog_path: str
    collection: str
    embedding_model: str
    embedding_dim: int
    embed_interval: float
    rate_limit_cooldown: float
    index_retries: int
    query_retries: int
    api_key: str | None = None

    @classmethod
    def from_env(cls, **overrides: Any) -> "RagSettings":
        values: dict[str, Any] = {
            "db_path": resolve_db_path(overrides.pop("db_path", None)),
            "catalog_path": os.getenv("TAROT_RAG_CATALOG_PATH", _DEFAULT_CATALOG_PATH),
            "collection": os.getenv("TAROT_RAG_COLLECTION", DEFAULT_COLLECTION),
            "embedding_model": os.getenv("TAROT_RAG_EMBEDDING_MODEL", _DEFAULT_MODEL),
            "embedding_dim": _env_int("TAROT_RAG_EMBEDDING_DIM", _DEFAULT_DIM),
            "embed_interval": _env_float(
                "TAROT_RAG_EMBED_INTERVAL", _DEFAULT_EMBED_INTERVAL
            ),
            "rate_limit_cooldown": _env_float(
                "TAROT_RAG_RATE_LIMIT_COOLDOWN", _DEFAULT_COOLDOWN
            ),
            "index_retries": _env_int("TAROT_RAG_INDEX_RETRIES", _DEFAULT_INDEX_RETRIES),
            "query_retries": _env_int("TAROT_RAG_QUERY_RETRIES", _DEFAULT_QUERY_RETRIES),
            "api_key": resolve_api_key(overrides.pop("api_key", None)),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
