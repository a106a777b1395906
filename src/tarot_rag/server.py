"""
FastAPI server exposing the retrieval service.

Routes:
- ``GET /api/rag/status``
- ``POST /api/rag/index``
- ``POST /api/rag/search``
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError, NotInitializedError, QueryValidationError, error_kind
from .models import CompareResult
from .service import RagService, SearchMode, build_service

logger = logging.getLogger(__name__)

_SERVICE: RagService | None = None


def get_service() -> RagService:
    """Return the process-wide service, building it from the environment if needed."""
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = build_service()
    return _SERVICE


def set_service(service: RagService | None) -> None:
    global _SERVICE
    _SERVICE = service


@asynccontextmanager
async def lifespan(_app: FastAPI):
    service = get_service()
    try:
        await service.initialize()
    except ConfigurationError as exc:
        logger.warning("Retrieval service not initialized: %s", exc)
    except Exception:
        logger.exception("Retrieval service failed to initialize")
    try:
        yield
    finally:
        service.close()
        set_service(None)


app = FastAPI(
    title="tarot-rag",
    description="Hybrid semantic + BM25 search over tarot cards",
    lifespan=lifespan,
)


class SearchRequest(BaseModel):
    """Request model for search queries."""

    query: str = Field(min_length=1, max_length=500)
    mode: SearchMode = "hybrid"
    limit: int = Field(default=5, ge=1, le=20)


def _error(code: str, message: str, status_code: int, kind: str | None = None):
    error: dict[str, Any] = {"code": code, "message": message}
    if kind is not None:
        error["kind"] = kind
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


@app.get("/api/rag/status")
async def rag_status():
    """Report readiness and indexed document count."""
    status = get_service().status()
    return {"success": True, "data": asdict(status)}


@app.post("/api/rag/index")
async def rag_index():
    """Index every card, or refit BM25 when the collection is already complete."""
    service = get_service()
    try:
        result = await service.reindex()
    except NotInitializedError as exc:
        return _error("NOT_READY", str(exc), 503, error_kind(exc))
    except Exception as exc:
        return _error("INDEX_ERROR", str(exc), 500, error_kind(exc))
    return {
        "success": True,
        "data": {
            **asdict(result),
            "document_count": service.status().document_count,
        },
    }


@app.post("/api/rag/search")
async def rag_search(payload: Any = Body(default=None)):
    """Search cards in semantic, sparse, hybrid or compare mode."""
    try:
        request = SearchRequest.model_validate(payload)
    except ValidationError as exc:
        return _error("VALIDATION_ERROR", str(exc), 400, "validation_error")

    service = get_service()
    try:
        outcome = await service.search(request.query, request.mode, request.limit)
    except QueryValidationError as exc:
        return _error("VALIDATION_ERROR", str(exc), 400, error_kind(exc))
    except NotInitializedError as exc:
        return _error("NOT_READY", str(exc), 503, error_kind(exc))
    except Exception as exc:
        return _error("SEARCH_ERROR", str(exc), 500, error_kind(exc))

    if isinstance(outcome, CompareResult):
        return {"success": True, "data": outcome.to_dict()}
    return {
        "success": True,
        "data": {
            "query": request.query,
            "mode": request.mode,
            "results": [result.to_dict() for result in outcome],
        },
    }


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
