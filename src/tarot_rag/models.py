"""
Data model shared by the indexing pipeline, the store and the query engine.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, TypeAlias, Union

DenseVector: TypeAlias = list[float]


@dataclass(frozen=True)
class ParsedKeywords:
    """Keywords decoded from a structured list or a JSON-encoded list."""

    values: list[str]


@dataclass(frozen=True)
class FallbackKeywords:
    """Keywords recovered by splitting a delimited string."""

    values: list[str]


KeywordParse: TypeAlias = Union[ParsedKeywords, FallbackKeywords]


def _split_keywords(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_keywords(raw: Any) -> KeywordParse:
    """Decode a catalog keyword field.

    Lists of strings and JSON-encoded lists of strings are ``ParsedKeywords``.
    Anything else is stringified and comma-split into ``FallbackKeywords``.
    """
    if isinstance(raw, list) and all(isinstance(item, str) for item in raw):
        return ParsedKeywords([item.strip() for item in raw if item.strip()])
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list) and all(isinstance(i, str) for i in decoded):
                return ParsedKeywords([i.strip() for i in decoded if i.strip()])
        return FallbackKeywords(_split_keywords(text))
    if raw is None:
        return FallbackKeywords([])
    if isinstance(raw, list):
        return FallbackKeywords([str(item).strip() for item in raw if str(item).strip()])
    return FallbackKeywords(_split_keywords(str(raw)))


_CAMEL_KEYS = {
    "nameKo": "name_native",
    "nameNative": "name_native",
    "nameEn": "name_en",
    "type": "arcana",
    "uprightMeaning": "upright_meaning",
    "reversedMeaning": "reversed_meaning",
}


@dataclass(frozen=True)
class CardDocument:
    """Immutable snapshot of one catalog card."""

    id: int
    name_native: str
    name_en: str
    arcana: str
    suit: str | None
    number: int
    keywords: list[str]
    upright_meaning: str
    reversed_meaning: str
    symbolism: str
    love: str
    career: str
    health: str
    finance: str

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CardDocument":
        """Build a card from a store payload or a raw catalog record."""
        data = {_CAMEL_KEYS.get(key, key): value for key, value in payload.items()}
        suit = data.get("suit")
        return cls(
            id=int(data["id"]),
            name_native=str(data.get("name_native", "")),
            name_en=str(data.get("name_en", "")),
            arcana=str(data.get("arcana", "")),
            suit=str(suit) if suit else None,
            number=int(data.get("number", 0)),
            keywords=parse_keywords(data.get("keywords")).values,
            upright_meaning=str(data.get("upright_meaning", "")),
            reversed_meaning=str(data.get("reversed_meaning", "")),
            symbolism=str(data.get("symbolism", "")),
            love=str(data.get("love", "")),
            career=str(data.get("career", "")),
            health=str(data.get("health", "")),
            finance=str(data.get("finance", "")),
        )


@dataclass(frozen=True)
class SparseVector:
    """BM25-weighted term vector; only positive weights are stored."""

    indices: list[int] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.indices) != len(self.values):
            raise ValueError("SparseVector indices and values must have equal length")

    def __len__(self) -> int:
        return len(self.indices)

    @property
    def is_empty(self) -> bool:
        return not self.indices

    def as_dict(self) -> dict[int, float]:
        return dict(zip(self.indices, self.values))


@dataclass(frozen=True)
class IndexedPoint:
    """Unit persisted to the vector store."""

    id: int
    dense: DenseVector
    sparse: SparseVector
    payload: dict[str, Any]


@dataclass(frozen=True)
class ScoredPoint:
    """Store-level search hit."""

    id: int
    score: float
    payload: dict[str, Any]


@dataclass(frozen=True)
class SearchResult:
    """A hydrated card with its mode-specific score and 1-based rank."""

    card: CardDocument
    score: float
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {"card": self.card.to_payload(), "score": self.score, "rank": self.rank}


@dataclass(frozen=True)
class SearchTiming:
    semantic_ms: float
    sparse_ms: float
    hybrid_ms: float


@dataclass(frozen=True)
class CompareResult:
    """Side-by-side rankings for one query."""

    query: str
    semantic: list[SearchResult]
    sparse: list[SearchResult]
    hybrid: list[SearchResult]
    timing: SearchTiming

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "semantic": [result.to_dict() for result in self.semantic],
            "sparse": [result.to_dict() for result in self.sparse],
            "hybrid": [result.to_dict() for result in self.hybrid],
            "timing": asdict(self.timing),
        }
