"""
FastAPI server exposing indexing and search over HTTP.

Handlers are plain functions so FastAPI runs them on its worker threadpool;
indexing and embedding calls block.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .context import RetrievalContext
from .errors import ConfigurationError
from .indexing import IndexStats
from .search import HybridSearchResponse, SemanticSearchResponse


logger = logging.getLogger(__name__)


class IndexRequest(BaseModel):
    """Request model for index build/refresh."""

    collection: str | None = None
    force: bool = False


class SearchRequest(BaseModel):
    """Request model for hybrid search queries."""

    query: str = Field(min_length=1)
    collection: str | None = None
    top_k: int = Field(default=10, ge=1, le=100)
    enable_semantic: bool = True
    enable_related: bool = True


class SemanticSearchRequest(BaseModel):
    """Request model for vector-only search queries."""

    query: str = Field(min_length=1)
    top_k: int = Field(default=10, ge=1, le=100)


def index_stats_payload(stats: IndexStats) -> dict:
    return asdict(stats)


def hybrid_payload(query: str, response: HybridSearchResponse) -> dict:
    return {
        "query": query,
        "index_available": response.index_available,
        "search_paths": list(response.search_paths),
        "results": [asdict(result) for result in response.results],
    }


def semantic_payload(query: str, response: SemanticSearchResponse) -> dict:
    return {
        "query": query,
        "index_available": response.index_available,
        "results": [asdict(hit) for hit in response.results],
    }


def _error(exc: Exception) -> JSONResponse:
    if isinstance(exc, ConfigurationError):
        return JSONResponse({"error": str(exc)}, status_code=400)
    logger.exception("Request failed")
    return JSONResponse({"error": str(exc)}, status_code=500)


def create_app(context: RetrievalContext) -> FastAPI:
    """Build the API bound to one retrieval context."""
    app = FastAPI(
        title="kb-retrieval",
        description="Hybrid keyword and semantic retrieval over a document catalog",
    )
    app.state.context = context
    index_lock = threading.Lock()

    @app.post("/api/index")
    def build_index(request: IndexRequest):
        """Build or incrementally update the semantic index."""
        if not index_lock.acquire(blocking=False):
            return JSONResponse(
                {"error": "Indexing is already in progress."}, status_code=409
            )
        try:
            stats = context.build_index(
                collection=request.collection, force=request.force
            )
            return index_stats_payload(stats)
        except Exception as exc:
            return _error(exc)
        finally:
            index_lock.release()

    @app.get("/api/index/status")
    def index_status():
        """Report index metadata, or indexed=false when no index exists."""
        try:
            meta = context.get_index_status()
        except Exception as exc:
            return _error(exc)
        if meta is None:
            return {"indexed": False}
        return {
            "indexed": True,
            "indexing": index_lock.locked(),
            **meta.model_dump(),
        }

    @app.post("/api/search")
    def search(request: SearchRequest):
        """Hybrid search across keyword, semantic and related paths."""
        try:
            response = context.hybrid_search(
                request.query,
                collection=request.collection,
                top_k=request.top_k,
                enable_semantic=request.enable_semantic,
                enable_related=request.enable_related,
            )
        except Exception as exc:
            return _error(exc)
        return hybrid_payload(request.query, response)

    @app.post("/api/search/semantic")
    def semantic_search(request: SemanticSearchRequest):
        """Vector-only search over indexed chunks."""
        try:
            response = context.semantic_search_only(request.query, top_k=request.top_k)
        except Exception as exc:
            return _error(exc)
        return semantic_payload(request.query, response)

    return app


def run_server(
    context: RetrievalContext | None = None,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Run the FastAPI server."""
    import uvicorn

    if context is not None:
        uvicorn.run(create_app(context), host=host, port=port)
        return

    owned = RetrievalContext.from_env()
    try:
        uvicorn.run(create_app(owned), host=host, port=port)
    finally:
        owned.close()
