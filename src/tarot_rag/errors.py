"""
Error taxonomy for the retrieval engine.

Callers branch on the exception class; the HTTP layer reports
:func:`error_kind` so clients can do the same.
"""

from __future__ import annotations


class RagError(Exception):
    """Base class for retrieval engine errors."""


class ConfigurationError(RagError, ValueError):
    """Missing or invalid provider credentials/configuration."""


class ProviderError(RagError):
    """Embedding provider or vector store failure."""


class RateLimitError(ProviderError):
    """The embedding provider throttled the request."""


class QueryValidationError(RagError, ValueError):
    """Malformed query rejected before any I/O."""


class NotInitializedError(RagError):
    """Operation issued before the service reached the ready state."""


_KINDS: tuple[tuple[type[BaseException], str], ...] = (
    (ConfigurationError, "configuration_error"),
    (RateLimitError, "rate_limit_error"),
    (ProviderError, "provider_error"),
    (QueryValidationError, "validation_error"),
    (NotInitializedError, "not_initialized"),
)


def error_kind(exc: BaseException) -> str:
    for cls, kind in _KINDS:
        if isinstance(exc, cls):
            return kind
    return "internal_error"
