"""Indexing components for the card collection."""

from .pipeline import IndexingPipeline, IndexingResult

__all__ = [
    "IndexingPipeline",
    "IndexingResult",
]
