"""
Local vector storage with a raw binary vector file.

Storage layout (one index directory):

    vectors.bin   raw little-endian float32, ``dimensions`` values per chunk,
                  in chunk order, no header
    chunks.json   chunk metadata in the same order as the vectors
    meta.json     IndexMetadata (dimensions, provider, document tracking)

Vectors live in a single float32 arena with a logical used length that is
separate from its capacity. Appends grow the arena geometrically and removals
compact it in place, so ``chunks[i]`` always owns
``arena[i * dimensions:(i + 1) * dimensions]``.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from dataclasses import asdict
from pathlib import Path
from typing import Sequence

import numpy as np
from pydantic import ValidationError

from ..errors import CorruptIndexError
from .base import Chunk, DocumentEntry, IndexMetadata, SearchHit, utc_now_iso


logger = logging.getLogger(__name__)

VECTORS_FILE = "vectors.bin"
CHUNKS_FILE = "chunks.json"
META_FILE = "meta.json"

_MIN_CAPACITY = 4096
_DISK_DTYPE = np.dtype("<f4")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise ValueError(f"shape mismatch: {left.shape} vs {right.shape}")
    denom = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denom == 0.0:
        return 0.0
    return max(-1.0, min(1.0, float(np.dot(left, right)) / denom))


def index_exists(index_dir: str | Path) -> bool:
    """Check whether an index has been written to *index_dir*."""
    root = Path(index_dir)
    return (root / META_FILE).exists() and (root / VECTORS_FILE).exists()


def _atomic_write(path: Path, data: bytes) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "wb") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


class VectorStore:
    """Chunk metadata plus a flat float32 vector arena, persisted to disk."""

    def __init__(
        self,
        index_dir: str | Path,
        dimensions: int = 0,
        provider: str = "unknown",
        model: str = "unknown",
    ) -> None:
        if dimensions < 0:
            raise ValueError("dimensions must be >= 0")
        self.index_dir = Path(index_dir).expanduser()
        self._dimensions = dimensions
        self._chunks: list[Chunk] = []
        self._vectors = np.zeros(0, dtype=np.float32)
        self._used = 0
        self._meta = IndexMetadata(
            embedding_provider=provider,
            embedding_model=model,
            dimensions=dimensions,
        )
        self._loaded = False

    # ------------------------------------------------------------------
    # Paths and read-only views
    # ------------------------------------------------------------------

    @property
    def vectors_path(self) -> Path:
        return self.index_dir / VECTORS_FILE

    @property
    def chunks_path(self) -> Path:
        return self.index_dir / CHUNKS_FILE

    @property
    def meta_path(self) -> Path:
        return self.index_dir / META_FILE

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def total_chunks(self) -> int:
        return len(self._chunks)

    @property
    def total_documents(self) -> int:
        return len(self._meta.documents)

    @property
    def used_length(self) -> int:
        return self._used

    @property
    def capacity(self) -> int:
        return int(self._vectors.size)

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return tuple(self._chunks)

    def get_vectors(self) -> np.ndarray:
        """Copy of the used region as a (chunks, dimensions) matrix."""
        if not self._chunks:
            return np.zeros((0, self._dimensions), dtype=np.float32)
        return self._vectors[: self._used].reshape(len(self._chunks), -1).copy()

    def document_ids(self) -> set[str]:
        return set(self._meta.documents)

    def get_meta(self) -> IndexMetadata:
        """Get a copy of the index metadata with current counters."""
        self._refresh_counters()
        return self._meta.model_copy(deep=True)

    def is_ready(self) -> bool:
        """Loaded from disk and holding at least one chunk."""
        return self._loaded and bool(self._chunks)

    def is_compatible(self, provider: str, model: str, dimensions: int) -> bool:
        """Whether vectors in this store were produced by the given embedder."""
        return (
            self._meta.embedding_provider == provider
            and self._meta.embedding_model == model
            and self._dimensions == dimensions
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Load the index from disk.

        Returns False when no index exists or when it is unreadable or
        inconsistent; the store is then left empty.
        """
        if not self.meta_path.exists():
            return False

        try:
            meta, chunks, vectors = self._read_artifacts()
        except CorruptIndexError as exc:
            logger.warning("Ignoring unreadable index at %s: %s", self.index_dir, exc)
            self._reset(self._dimensions)
            return False

        self._meta = meta
        self._dimensions = meta.dimensions
        self._chunks = chunks
        self._vectors = vectors
        self._used = int(vectors.size)
        self._loaded = True
        logger.debug(
            "Loaded index from %s: %d chunks, %d documents",
            self.index_dir,
            len(chunks),
            len(meta.documents),
        )
        return True

    def save(self) -> None:
        """Write vectors, chunks and metadata to the index directory.

        Each file is replaced atomically; metadata is written last so a crash
        mid-save leaves either the previous metadata or an inconsistent set
        that ``load()`` rejects.
        """
        self.index_dir.mkdir(parents=True, exist_ok=True)

        self._refresh_counters()
        self._meta.last_updated = utc_now_iso()
        self._meta.dimensions = self._dimensions

        used = self._vectors[: self._used].astype(_DISK_DTYPE, copy=False)
        _atomic_write(self.vectors_path, used.tobytes())
        _atomic_write(
            self.chunks_path,
            json.dumps(
                [asdict(chunk) for chunk in self._chunks], ensure_ascii=False
            ).encode("utf-8"),
        )
        _atomic_write(
            self.meta_path, self._meta.model_dump_json(indent=2).encode("utf-8")
        )

    def _read_artifacts(self) -> tuple[IndexMetadata, list[Chunk], np.ndarray]:
        try:
            meta = IndexMetadata.model_validate_json(
                self.meta_path.read_text(encoding="utf-8")
            )
        except (OSError, ValueError, ValidationError) as exc:
            raise CorruptIndexError(f"{META_FILE}: {exc}") from exc

        chunks: list[Chunk] = []
        if self.chunks_path.exists():
            try:
                raw_chunks = json.loads(self.chunks_path.read_text(encoding="utf-8"))
                if not isinstance(raw_chunks, list):
                    raise ValueError("expected a JSON array")
                chunks = [Chunk(**row) for row in raw_chunks]
            except (OSError, ValueError, TypeError) as exc:
                raise CorruptIndexError(f"{CHUNKS_FILE}: {exc}") from exc

        vectors = np.zeros(0, dtype=np.float32)
        if self.vectors_path.exists():
            try:
                data = self.vectors_path.read_bytes()
            except OSError as exc:
                raise CorruptIndexError(f"{VECTORS_FILE}: {exc}") from exc
            if len(data) % _DISK_DTYPE.itemsize:
                raise CorruptIndexError(f"{VECTORS_FILE}: truncated float32 data")
            vectors = np.frombuffer(data, dtype=_DISK_DTYPE).astype(np.float32)

        expected = len(chunks) * meta.dimensions
        if vectors.size != expected:
            raise CorruptIndexError(
                f"{VECTORS_FILE} holds {vectors.size} floats, expected {expected} "
                f"({len(chunks)} chunks x {meta.dimensions} dimensions)"
            )

        counts = Counter(chunk.document_id for chunk in chunks)
        tracked = {doc_id: entry.chunk_count for doc_id, entry in meta.documents.items()}
        if dict(counts) != tracked:
            raise CorruptIndexError("document map does not match chunk list")

        return meta, chunks, vectors

    def _reset(self, dimensions: int) -> None:
        self._chunks = []
        self._vectors = np.zeros(0, dtype=np.float32)
        self._used = 0
        self._meta = IndexMetadata(
            embedding_provider=self._meta.embedding_provider,
            embedding_model=self._meta.embedding_model,
            dimensions=dimensions,
        )
        self._loaded = False

    def _refresh_counters(self) -> None:
        self._meta.total_chunks = len(self._chunks)
        self._meta.total_documents = len(self._meta.documents)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query_vector: Sequence[float], top_k: int = 10) -> list[SearchHit]:
        """Find the top-K most similar chunks by cosine similarity."""
        if not self._chunks or top_k <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape != (self._dimensions,):
            raise ValueError(
                f"query vector has {query.size} dimensions, index has {self._dimensions}"
            )

        matrix = self._vectors[: self._used].reshape(len(self._chunks), self._dimensions)
        dots = matrix @ query
        denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)

        order = np.argsort(-scores, kind="stable")[:top_k]
        hits: list[SearchHit] = []
        for index in order:
            chunk = self._chunks[int(index)]
            hits.append(
                SearchHit(
                    document_id=chunk.document_id,
                    document_name=chunk.document_name,
                    collection=chunk.collection,
                    text=chunk.text,
                    chunk_index=chunk.chunk_index,
                    score=float(scores[index]),
                )
            )
        return hits

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def needs_reindex(self, document_id: str, modification_date: str) -> bool:
        """True when the document is unknown or its timestamp changed."""
        entry = self._meta.documents.get(document_id)
        return entry is None or entry.modification_date != modification_date

    def upsert_document(
        self,
        document_id: str,
        name: str,
        modification_date: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
    ) -> None:
        """Replace all chunks and vectors of a document."""
        if len(vectors) != len(chunks):
            raise ValueError(
                f"got {len(chunks)} chunks but {len(vectors)} vectors for {document_id}"
            )
        for chunk in chunks:
            if chunk.document_id != document_id:
                raise ValueError(
                    f"chunk {chunk.id} does not belong to document {document_id}"
                )

        new_vectors = np.asarray(vectors, dtype=np.float32)
        if chunks and new_vectors.shape != (len(chunks), self._dimensions):
            raise ValueError(
                f"expected vectors of shape ({len(chunks)}, {self._dimensions}), "
                f"got {new_vectors.shape}"
            )

        self.remove_document(document_id)
        if not chunks:
            return

        add_length = len(chunks) * self._dimensions
        self._ensure_capacity(self._used + add_length)
        self._vectors[self._used : self._used + add_length] = new_vectors.reshape(-1)
        self._used += add_length
        self._chunks.extend(chunks)

        self._meta.documents[document_id] = DocumentEntry(
            name=name,
            modification_date=modification_date,
            chunk_count=len(chunks),
        )

    def remove_document(self, document_id: str) -> int:
        """Remove all chunks of a document, compacting the arena in place.

        Returns the number of chunks removed.
        """
        self._meta.documents.pop(document_id, None)

        keep = [
            index
            for index, chunk in enumerate(self._chunks)
            if chunk.document_id != document_id
        ]
        removed = len(self._chunks) - len(keep)
        if removed == 0:
            return 0

        dims = self._dimensions
        for write_pos, old_index in enumerate(keep):
            if old_index != write_pos:
                src = old_index * dims
                dst = write_pos * dims
                self._vectors[dst : dst + dims] = self._vectors[src : src + dims]

        self._chunks = [self._chunks[index] for index in keep]
        self._used = len(keep) * dims
        return removed

    def _ensure_capacity(self, needed: int) -> None:
        if needed <= self._vectors.size:
            return
        new_capacity = max(needed, self._vectors.size * 2, _MIN_CAPACITY)
        expanded = np.zeros(new_capacity, dtype=np.float32)
        expanded[: self._used] = self._vectors[: self._used]
        self._vectors = expanded
