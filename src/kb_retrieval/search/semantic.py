"""
Vector-based semantic search engine.

Embeds a query and ranks stored chunks by cosine similarity, without fusing in
any other search path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..embeddings import Embedder
from ..storage import SearchHit, VectorStore


StoreProvider = Callable[[], "VectorStore | None"]
EmbedderProvider = Callable[[], Embedder]


@dataclass(frozen=True)
class SemanticSearchResponse:
    """Raw vector similarity hits."""

    results: list[SearchHit]
    index_available: bool


class SemanticSearchEngine:
    """Embed a query and search stored chunk vectors."""

    def __init__(
        self,
        store_provider: StoreProvider,
        embedder_provider: EmbedderProvider,
    ) -> None:
        self.store_provider = store_provider
        self.embedder_provider = embedder_provider

    def search(self, query: str, *, top_k: int = 10) -> SemanticSearchResponse:
        """Return ranked chunk hits using vector cosine similarity."""
        store = self.store_provider()
        if store is None:
            return SemanticSearchResponse(results=[], index_available=False)

        query_vector = self.embedder_provider().embed_query(query)
        return SemanticSearchResponse(
            results=store.search(query_vector, top_k),
            index_available=True,
        )
