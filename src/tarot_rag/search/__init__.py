"""Search helpers for the indexed card collection."""

from .query import HybridQueryEngine, validate_query
from .ranker import to_search_results

__all__ = [
    "HybridQueryEngine",
    "validate_query",
    "to_search_results",
]
