"""
Indexing pipeline orchestration.

Crawls the document repository, re-embeds only documents whose modification
date changed since the last run, and persists the vector store with periodic
checkpoints so a crash loses at most one checkpoint interval of work.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .chunker import DocumentInput, SmartChunker
from ..config import IndexSettings
from ..embeddings import Embedder
from ..errors import ConfigurationError, DocumentReadError
from ..repository import DocumentInfo, DocumentRepository
from ..storage import VectorStore


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass(frozen=True)
class IndexStats:
    """Summary output for an indexing run."""

    total_documents: int
    indexed_documents: int
    skipped_documents: int
    total_chunks: int
    errors: int
    duration_ms: int
    empty_documents: int = 0
    removed_documents: int = 0


class IndexManager:
    """Build and incrementally update the semantic index."""

    def __init__(
        self,
        repository: DocumentRepository,
        embedder: Embedder,
        index_dir: str | Path,
        settings: IndexSettings | None = None,
        chunker: SmartChunker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.embedder = embedder
        self.index_dir = Path(index_dir)
        self.settings = settings or IndexSettings()
        self.chunker = chunker or SmartChunker()
        self._sleep = sleep

    def build(
        self,
        *,
        collection: str | None = None,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> IndexStats:
        """Build or update the index and return statistics for the run."""
        started = time.monotonic()

        def progress(message: str) -> None:
            logger.info(message)
            if on_progress is not None:
                on_progress(message)

        progress(
            f"Embedding: {self.embedder.provider_name}/{self.embedder.model_name} "
            f"({self.embedder.dimensions} dims)"
        )
        store = self._open_store(force=force, progress=progress)

        progress("Crawling document repository...")
        documents = self._crawl(collection)
        progress(f"Found {len(documents)} documents")

        removed = 0
        if collection is None:
            removed = self._prune_missing(store, documents)
            if removed:
                progress(f"Removed {removed} documents no longer in the repository")

        to_index = (
            documents
            if force
            else [
                doc
                for doc in documents
                if store.needs_reindex(doc.id, doc.modification_date)
            ]
        )
        skipped = len(documents) - len(to_index)
        progress(
            f"{len(to_index)} documents to index"
            + (f" ({skipped} up-to-date, skipped)" if skipped else "")
        )

        indexed = 0
        empty = 0
        errors = 0
        new_chunks = 0
        dirty = removed > 0

        for position, document in enumerate(to_index, start=1):
            try:
                chunk_count = self._index_document(store, document)
            except ConfigurationError:
                raise
            except Exception as exc:
                errors += 1
                logger.warning(
                    "Error indexing %r (%s): %s", document.name, document.id, exc
                )
                progress(f"Warning: error indexing {document.name!r}: {str(exc)[:80]}")
                continue

            if chunk_count == 0:
                empty += 1
                # Drop chunks left over from earlier, longer content.
                if store.remove_document(document.id):
                    dirty = True
                continue

            indexed += 1
            new_chunks += chunk_count
            dirty = True

            if indexed % self.settings.checkpoint_interval == 0:
                store.save()
                dirty = False
                logger.debug("Checkpoint saved after %d documents", indexed)

            if position % self.settings.progress_interval == 0 or position == len(to_index):
                progress(
                    f"Indexed {indexed}/{len(to_index)} docs ({new_chunks} chunks)"
                )

        if dirty or not store.meta_path.exists():
            progress("Saving index to disk...")
            store.save()

        duration_ms = int((time.monotonic() - started) * 1000)
        progress(
            f"Done! {indexed} documents indexed, {store.total_chunks} total chunks "
            f"({duration_ms / 1000:.1f}s)"
        )
        return IndexStats(
            total_documents=len(documents),
            indexed_documents=indexed,
            skipped_documents=skipped,
            total_chunks=store.total_chunks,
            errors=errors,
            duration_ms=duration_ms,
            empty_documents=empty,
            removed_documents=removed,
        )

    def _open_store(self, *, force: bool, progress: ProgressCallback) -> VectorStore:
        store = VectorStore(
            self.index_dir,
            self.embedder.dimensions,
            provider=self.embedder.provider_name,
            model=self.embedder.model_name,
        )
        if force or not store.load():
            return store

        if not store.is_compatible(
            self.embedder.provider_name,
            self.embedder.model_name,
            self.embedder.dimensions,
        ):
            meta = store.get_meta()
            progress(
                f"Existing index was built with {meta.embedding_provider}/"
                f"{meta.embedding_model} ({meta.dimensions} dims); rebuilding"
            )
            return VectorStore(
                self.index_dir,
                self.embedder.dimensions,
                provider=self.embedder.provider_name,
                model=self.embedder.model_name,
            )
        return store

    def _crawl(self, collection: str | None) -> list[DocumentInfo]:
        if collection is not None:
            return self.repository.list_documents(collection)

        # Collection by collection keeps each repository request bounded.
        documents: list[DocumentInfo] = []
        for name in self.repository.list_collections():
            documents.extend(self.repository.list_documents(name))
        return documents

    @staticmethod
    def _prune_missing(store: VectorStore, documents: list[DocumentInfo]) -> int:
        listed = {doc.id for doc in documents}
        stale = store.document_ids() - listed
        for document_id in sorted(stale):
            store.remove_document(document_id)
        return len(stale)

    def _index_document(self, store: VectorStore, document: DocumentInfo) -> int:
        """Read, chunk, embed and store one document; returns its chunk count."""
        try:
            raw = self.repository.read_document_content(
                document.id, self.settings.max_content_length
            )
        except Exception as exc:
            raise DocumentReadError(document.id, str(exc)) from exc

        if raw.error:
            raise DocumentReadError(document.id, raw.error)
        if not raw.content or len(raw.content) < self.settings.min_content_chars:
            logger.debug("Skipping %r: no meaningful content", document.name)
            return 0

        chunks = self.chunker.chunk_document(
            DocumentInput(
                document_id=document.id,
                name=document.name,
                collection=document.collection,
                content=raw.content,
            )
        )
        if not chunks:
            return 0

        vectors: list[list[float]] = []
        batch_size = self.settings.embed_batch_size
        for start in range(0, len(chunks), batch_size):
            if start and self.settings.batch_delay_ms:
                self._sleep(self.settings.batch_delay_ms / 1000)
            batch = chunks[start : start + batch_size]
            vectors.extend(self.embedder.embed_batch([chunk.text for chunk in batch]))

        store.upsert_document(
            document.id,
            document.name,
            document.modification_date,
            chunks,
            vectors,
        )
        return len(chunks)
