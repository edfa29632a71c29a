"""
Process-level wiring for indexing and search.

A RetrievalContext owns the settings, the document repository, a lazily built
embedder and the loaded vector store. CLI commands and the HTTP server each
construct one and pass it to whatever needs it.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from .config import IndexSettings, resolve_db_path, resolve_index_dir
from .embeddings import Embedder, create_embedder
from .indexing import IndexManager, IndexStats
from .indexing.pipeline import ProgressCallback
from .repository import DocumentRepository, DuckDBRepository
from .search import (
    HybridSearchEngine,
    HybridSearchResponse,
    SemanticSearchEngine,
    SemanticSearchResponse,
)
from .storage import IndexMetadata, VectorStore, index_exists


logger = logging.getLogger(__name__)

EmbedderFactory = Callable[[], Embedder]


class RetrievalContext:
    """Shared state for one process: repository, embedder and loaded index."""

    def __init__(
        self,
        *,
        index_dir: str | Path,
        repository: DocumentRepository,
        settings: IndexSettings | None = None,
        embedder_factory: EmbedderFactory | None = None,
    ) -> None:
        self.index_dir = Path(index_dir)
        self.repository = repository
        self.settings = settings or IndexSettings()
        self._embedder_factory = embedder_factory or (
            lambda: create_embedder(settings=self.settings)
        )
        self._embedder: Embedder | None = None
        self._store: VectorStore | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_env(
        cls,
        index_dir: str | None = None,
        db_path: str | None = None,
    ) -> RetrievalContext:
        """Build a context from explicit overrides and KB_RETRIEVAL_* env vars."""
        settings = IndexSettings.from_env()
        return cls(
            index_dir=resolve_index_dir(index_dir),
            repository=DuckDBRepository(resolve_db_path(db_path)),
            settings=settings,
        )

    def get_embedder(self) -> Embedder:
        with self._lock:
            if self._embedder is None:
                self._embedder = self._embedder_factory()
                logger.debug(
                    "Embedder ready: %s/%s",
                    self._embedder.provider_name,
                    self._embedder.model_name,
                )
            return self._embedder

    def get_store(self) -> VectorStore | None:
        """Return the loaded index, or None when none exists on disk."""
        with self._lock:
            if self._store is not None:
                return self._store
            if not index_exists(self.index_dir):
                return None
            store = VectorStore(self.index_dir)
            if not store.load():
                return None
            self._store = store
            return store

    def reset(self) -> None:
        """Drop the cached embedder and store."""
        with self._lock:
            self._embedder = None
            self._store = None

    def close(self) -> None:
        self.reset()
        close = getattr(self.repository, "close", None)
        if callable(close):
            close()

    def build_index(
        self,
        *,
        collection: str | None = None,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> IndexStats:
        manager = IndexManager(
            self.repository,
            self.get_embedder(),
            self.index_dir,
            settings=self.settings,
        )
        try:
            return manager.build(
                collection=collection, force=force, on_progress=on_progress
            )
        finally:
            with self._lock:
                self._store = None

    def get_index_status(self) -> IndexMetadata | None:
        store = self.get_store()
        return store.get_meta() if store is not None else None

    def hybrid_search(
        self,
        query: str,
        *,
        collection: str | None = None,
        top_k: int = 10,
        enable_semantic: bool = True,
        enable_related: bool = True,
    ) -> HybridSearchResponse:
        engine = HybridSearchEngine(
            self.repository,
            self.get_store,
            self.get_embedder,
            settings=self.settings,
        )
        return engine.search(
            query,
            collection=collection,
            top_k=top_k,
            enable_semantic=enable_semantic,
            enable_related=enable_related,
        )

    def semantic_search_only(self, query: str, *, top_k: int = 10) -> SemanticSearchResponse:
        engine = SemanticSearchEngine(self.get_store, self.get_embedder)
        return engine.search(query, top_k=top_k)
