"""
Hybrid retrieval across keyword, semantic and related-document paths.

Keyword and semantic paths run in parallel; the related path is seeded from the
best candidate they produce. A failing or slow path is logged and dropped from
the response instead of failing the whole search.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable

from ..config import IndexSettings
from ..embeddings import Embedder
from ..repository import DocumentRepository, RepositoryHit
from ..storage import SearchHit, VectorStore
from .ranker import HybridResult, PathTag, ResultMerger


logger = logging.getLogger(__name__)

StoreProvider = Callable[[], "VectorStore | None"]
EmbedderProvider = Callable[[], Embedder]


@dataclass(frozen=True)
class HybridSearchResponse:
    """Ranked merged results plus the paths that contributed."""

    results: list[HybridResult]
    search_paths: list[PathTag]
    index_available: bool


class HybridSearchEngine:
    """Parallel retrieval engine fusing keyword, semantic and related paths."""

    def __init__(
        self,
        repository: DocumentRepository | None,
        store_provider: StoreProvider,
        embedder_provider: EmbedderProvider,
        settings: IndexSettings | None = None,
    ) -> None:
        self.repository = repository
        self.store_provider = store_provider
        self.embedder_provider = embedder_provider
        self.settings = settings or IndexSettings()

    def search(
        self,
        query: str,
        *,
        collection: str | None = None,
        top_k: int = 10,
        enable_semantic: bool = True,
        enable_related: bool = True,
    ) -> HybridSearchResponse:
        store = self._load_store()
        index_available = store is not None

        merger = ResultMerger()
        search_paths: list[PathTag] = []

        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="hybrid-search")
        try:
            keyword_future = None
            if self.repository is not None:
                keyword_future = executor.submit(
                    self._keyword_query, self.repository, query, collection
                )
            semantic_future = None
            if enable_semantic and store is not None:
                semantic_future = executor.submit(self._semantic_query, store, query)

            deadline = time.monotonic() + self.settings.call_timeout
            keyword_hits = self._collect(keyword_future, "keyword", deadline)
            semantic_hits = self._collect(semantic_future, "semantic", deadline)

            if keyword_hits is not None:
                merger.add_keyword(keyword_hits)
                search_paths.append("keyword")
            if semantic_hits is not None:
                merger.add_semantic(semantic_hits)
                search_paths.append("semantic")

            seed = merger.top()
            if enable_related and self.repository is not None and seed is not None:
                related_future = executor.submit(
                    self.repository.related_documents,
                    seed.document_id,
                    self.settings.related_limit,
                )
                related_hits = self._collect(
                    related_future,
                    "related",
                    time.monotonic() + self.settings.call_timeout,
                )
                if related_hits is not None:
                    merger.add_related(seed.document_id, related_hits)
                    search_paths.append("related")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return HybridSearchResponse(
            results=merger.ranked(top_k),
            search_paths=search_paths,
            index_available=index_available,
        )

    def _load_store(self) -> VectorStore | None:
        try:
            return self.store_provider()
        except Exception as exc:
            logger.warning("Semantic index unavailable: %s", exc)
            return None

    def _keyword_query(
        self,
        repository: DocumentRepository,
        query: str,
        collection: str | None,
    ) -> list[RepositoryHit]:
        return repository.keyword_search(
            query, collection=collection, limit=self.settings.keyword_limit
        )

    def _semantic_query(self, store: VectorStore, query: str) -> list[SearchHit]:
        query_vector = self.embedder_provider().embed_query(query)
        return store.search(query_vector, self.settings.semantic_limit)

    @staticmethod
    def _collect(
        future: Future[Any] | None,
        path: PathTag,
        deadline: float,
    ) -> list[Any] | None:
        """Wait for a path result; None means the path did not contribute."""
        if future is None:
            return None
        try:
            result = future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FuturesTimeoutError:
            future.cancel()
            logger.warning("%s search path timed out", path)
            return None
        except Exception as exc:
            logger.warning("%s search path failed: %s", path, exc)
            return None

        if not isinstance(result, list):
            logger.warning("%s search path returned %s, ignoring", path, type(result).__name__)
            return None
        return result
