"""
BM25 sparse vectorizer.

Corpus statistics are learned once per corpus generation (``fit``) and
applied to arbitrary text (``transform``). A fitted :class:`BM25Model` is an
immutable snapshot; :class:`BM25Vectorizer` publishes new snapshots by a
single reference swap, so a transform in flight always sees one complete
generation.
"""

from __future__ import annotations

import itertools
import logging
import math
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Sequence

from .models import SparseVector

logger = logging.getLogger(__name__)

DEFAULT_K1 = 1.5
DEFAULT_B = 0.75

_TOKEN_SPLIT = re.compile(r"[\s,.;:!?\"'()\[\]{}，。、（）【】·]+")


def tokenize(text: str) -> list[str]:
    """Case-fold and split on whitespace/punctuation runs."""
    return [token for token in _TOKEN_SPLIT.split(text.lower()) if token]


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class BM25Model:
    """Vocabulary, IDF table and length statistics from one fit call."""

    vocabulary: Mapping[str, int] = field(default_factory=_empty_mapping)
    idf: Mapping[str, float] = field(default_factory=_empty_mapping)
    avg_doc_len: float = 0.0
    document_count: int = 0
    generation: int = 0
    k1: float = DEFAULT_K1
    b: float = DEFAULT_B

    @classmethod
    def fit(
        cls,
        documents: Sequence[str],
        *,
        k1: float = DEFAULT_K1,
        b: float = DEFAULT_B,
        generation: int = 1,
    ) -> "BM25Model":
        n_docs = len(documents)
        if n_docs == 0:
            raise ValueError("Cannot fit BM25 on an empty corpus")

        vocabulary: dict[str, int] = {}
        doc_freq: Counter[str] = Counter()
        total_len = 0
        for document in documents:
            tokens = tokenize(document)
            total_len += len(tokens)
            for token in tokens:
                if token not in vocabulary:
                    vocabulary[token] = len(vocabulary)
            doc_freq.update(set(tokens))

        if total_len == 0:
            raise ValueError("Cannot fit BM25 on a corpus of empty documents")

        idf = {
            term: math.log(1 + (n_docs - df + 0.5) / (df + 0.5))
            for term, df in doc_freq.items()
        }
        return cls(
            vocabulary=MappingProxyType(vocabulary),
            idf=MappingProxyType(idf),
            avg_doc_len=total_len / n_docs,
            document_count=n_docs,
            generation=generation,
            k1=k1,
            b=b,
        )

    @property
    def is_fitted(self) -> bool:
        return self.document_count > 0

    def transform(self, text: str, doc_len: int | None = None) -> SparseVector:
        """Return the BM25 term vector of *text* against this corpus.

        *doc_len* overrides the token count used for length normalization.
        Terms outside the vocabulary are dropped.
        """
        tokens = tokenize(text)
        if not tokens or not self.vocabulary:
            return SparseVector()

        length = doc_len if doc_len is not None else len(tokens)
        norm = self.k1 * (1 - self.b + self.b * length / self.avg_doc_len)

        indices: list[int] = []
        values: list[float] = []
        for term, count in Counter(tokens).items():
            index = self.vocabulary.get(term)
            idf = self.idf.get(term)
            if index is None or idf is None:
                continue
            weight = idf * (count * (self.k1 + 1) / (count + norm))
            if weight > 0:
                indices.append(index)
                values.append(weight)
        return SparseVector(indices=indices, values=values)


class BM25Vectorizer:
    """Owner of the current BM25 generation.

    Writers (``fit``/``install``) are serialized; readers grab the current
    snapshot once per call and never mutate it.
    """

    def __init__(self, *, k1: float = DEFAULT_K1, b: float = DEFAULT_B) -> None:
        self.k1 = k1
        self.b = b
        self._model = BM25Model(k1=k1, b=b)
        self._generations = itertools.count(1)
        self._write_lock = threading.Lock()

    @property
    def model(self) -> BM25Model:
        return self._model

    @property
    def vocabulary(self) -> Mapping[str, int]:
        return self._model.vocabulary

    @property
    def idf(self) -> Mapping[str, float]:
        return self._model.idf

    @property
    def avg_doc_len(self) -> float:
        return self._model.avg_doc_len

    @property
    def generation(self) -> int:
        return self._model.generation

    @property
    def is_fitted(self) -> bool:
        return self._model.is_fitted

    def prepare(self, documents: Sequence[str]) -> BM25Model:
        """Fit a new generation without publishing it."""
        with self._write_lock:
            generation = next(self._generations)
        return BM25Model.fit(documents, k1=self.k1, b=self.b, generation=generation)

    def install(self, model: BM25Model) -> None:
        with self._write_lock:
            if model.generation < self._model.generation:
                logger.warning(
                    "Ignoring BM25 generation %d older than installed generation %d",
                    model.generation,
                    self._model.generation,
                )
                return
            self._model = model
        logger.info(
            "Installed BM25 generation %d (%d documents, %d terms)",
            model.generation,
            model.document_count,
            len(model.vocabulary),
        )

    def fit(self, documents: Sequence[str]) -> BM25Model:
        model = self.prepare(documents)
        self.install(model)
        return model

    def transform(self, text: str, doc_len: int | None = None) -> SparseVector:
        return self._model.transform(text, doc_len)
