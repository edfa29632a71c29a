"""
DuckDB-backed local document repository.

Catalogs folders of plain-text documents so the engine can be run without an
external knowledge-base application. Each cataloged folder becomes one
collection. Keyword and related-document search are term-overlap scores on a
0-100 scale, matching what the hybrid search engine expects from an external
repository.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import duckdb

from .base import DocumentContent, DocumentInfo, RepositoryHit


logger = logging.getLogger(__name__)

DOCUMENT_TYPES: dict[str, str] = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".txt": "txt",
    ".text": "txt",
    ".rst": "rst",
}
SUPPORTED_EXTENSIONS = frozenset(DOCUMENT_TYPES)

_STOPWORDS = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
        "had", "her", "was", "one", "our", "out", "has", "his", "how", "its",
        "may", "new", "now", "see", "who", "did", "get", "use", "that", "with",
        "this", "from", "they", "have", "were", "been", "will", "which", "their",
        "there", "about", "would", "these", "other", "into", "than", "then",
        "them", "also", "such", "when", "what", "each", "more", "some",
    }
)


def _stable_id(prefix: str, value: str) -> str:
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest}"


def _query_terms(query: str, max_terms: int = 8) -> list[str]:
    terms = re.findall(r"\w{3,}", query.lower())
    unique_terms: list[str] = []
    for term in terms:
        if term not in unique_terms:
            unique_terms.append(term)
        if len(unique_terms) >= max_terms:
            break
    if unique_terms:
        return unique_terms
    fallback = query.strip().lower()
    return [fallback] if fallback else []


def _salient_terms(content: str, max_terms: int = 12) -> list[str]:
    """Most frequent non-trivial terms of a document, used to find related ones."""
    counts = Counter(
        term
        for term in re.findall(r"\w{4,}", content.lower())
        if term not in _STOPWORDS and not term.isdigit()
    )
    return [term for term, _ in counts.most_common(max_terms)]


@dataclass(frozen=True)
class CatalogResult:
    """Summary of a folder catalog run."""

    collection: str
    cataloged: int
    removed: int


class DuckDBRepository:
    """DuckDB-backed catalog of plain-text documents grouped into collections."""

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(self.db_path, read_only=read_only)
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id VARCHAR PRIMARY KEY,
                collection VARCHAR NOT NULL,
                name VARCHAR NOT NULL,
                relative_path VARCHAR NOT NULL,
                absolute_path VARCHAR NOT NULL,
                record_type VARCHAR NOT NULL,
                content VARCHAR NOT NULL,
                modification_date VARCHAR NOT NULL,
                word_count INTEGER NOT NULL,
                cataloged_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(collection, relative_path)
            );
            """
        )

    # ------------------------------------------------------------------
    # Cataloging
    # ------------------------------------------------------------------

    def catalog_folder(self, folder: str, *, collection: str | None = None) -> CatalogResult:
        """Add or refresh every supported file under *folder* as one collection.

        Files that disappeared since the last run are dropped from the catalog.
        """
        root = Path(folder).expanduser().resolve()
        if not root.is_dir():
            raise ValueError(f"No such directory: {root}")

        collection_name = collection or root.name
        active_paths: set[str] = set()
        cataloged = 0

        for file_path in self._iter_supported_files(root):
            relative_path = os.path.relpath(file_path, root)
            try:
                content = file_path.read_text(encoding="utf-8", errors="replace")
                stat = file_path.stat()
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", file_path, exc)
                continue

            active_paths.add(relative_path)
            self._upsert_document(
                collection=collection_name,
                relative_path=relative_path,
                absolute_path=str(file_path),
                content=content,
                mtime=stat.st_mtime,
            )
            cataloged += 1

        removed = self._remove_missing_documents(
            collection=collection_name, active_relative_paths=active_paths
        )
        logger.info(
            "Cataloged %d documents into %r (%d removed)",
            cataloged,
            collection_name,
            removed,
        )
        return CatalogResult(collection=collection_name, cataloged=cataloged, removed=removed)

    def _upsert_document(
        self,
        *,
        collection: str,
        relative_path: str,
        absolute_path: str,
        content: str,
        mtime: float,
    ) -> None:
        path = Path(relative_path)
        self._conn.execute(
            """
            INSERT INTO documents (
                id, collection, name, relative_path, absolute_path, record_type,
                content, modification_date, word_count
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                absolute_path = excluded.absolute_path,
                record_type = excluded.record_type,
                content = excluded.content,
                modification_date = excluded.modification_date,
                word_count = excluded.word_count,
                cataloged_at = now()
            """,
            [
                self.make_document_id(collection, relative_path),
                collection,
                path.stem,
                relative_path,
                absolute_path,
                DOCUMENT_TYPES.get(path.suffix.lower(), "txt"),
                content,
                datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat(),
                len(content.split()),
            ],
        )

    def _remove_missing_documents(
        self,
        *,
        collection: str,
        active_relative_paths: set[str],
    ) -> int:
        where = "collection = ?"
        params: list[Any] = [collection]
        if active_relative_paths:
            placeholders = ", ".join(["?"] * len(active_relative_paths))
            where += f" AND relative_path NOT IN ({placeholders})"
            params.extend(sorted(active_relative_paths))

        row = self._conn.execute(
            f"SELECT COUNT(*) FROM documents WHERE {where}", params
        ).fetchone()
        missing = int(row[0]) if row else 0
        if missing:
            self._conn.execute(f"DELETE FROM documents WHERE {where}", params)
        return missing

    # ------------------------------------------------------------------
    # DocumentRepository
    # ------------------------------------------------------------------

    def list_collections(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT DISTINCT collection FROM documents ORDER BY collection"
        ).fetchall()
        return [str(row[0]) for row in rows]

    def list_documents(self, collection: str | None = None) -> list[DocumentInfo]:
        sql = """
            SELECT id, name, record_type, collection, modification_date, word_count
            FROM documents
        """
        params: list[Any] = []
        if collection is not None:
            sql += " WHERE collection = ?"
            params.append(collection)
        sql += " ORDER BY collection, relative_path"

        rows = self._conn.execute(sql, params).fetchall()
        return [
            DocumentInfo(
                id=str(row[0]),
                name=str(row[1]),
                type=str(row[2]),
                collection=str(row[3]),
                modification_date=str(row[4]),
                word_count=int(row[5]),
            )
            for row in rows
        ]

    def read_document_content(self, document_id: str, max_length: int) -> DocumentContent:
        cursor = self._conn.cursor()
        try:
            row = cursor.execute(
                "SELECT content FROM documents WHERE id = ?", [document_id]
            ).fetchone()
        finally:
            cursor.close()

        if row is None:
            return DocumentContent(content="", error=f"No such document: {document_id}")
        content = str(row[0])
        if len(content) > max_length:
            return DocumentContent(content=content[:max_length], truncated=True)
        return DocumentContent(content=content)

    def keyword_search(
        self,
        query: str,
        collection: str | None = None,
        limit: int = 15,
    ) -> list[RepositoryHit]:
        terms = _query_terms(query)
        if not terms:
            return []
        return self._score_documents(terms, collection=collection, limit=limit)

    def related_documents(self, document_id: str, limit: int = 10) -> list[RepositoryHit]:
        seed = self.read_document_content(document_id, max_length=200_000)
        if seed.error is not None:
            return []
        terms = _salient_terms(seed.content)
        if not terms:
            return []
        return self._score_documents(terms, exclude_id=document_id, limit=limit)

    def _score_documents(
        self,
        terms: list[str],
        *,
        collection: str | None = None,
        exclude_id: str | None = None,
        limit: int,
    ) -> list[RepositoryHit]:
        score_expr = " + ".join(
            [
                "CASE WHEN lower(name) LIKE '%' || ? || '%' "
                "OR lower(content) LIKE '%' || ? || '%' THEN 1 ELSE 0 END"
            ]
            * len(terms)
        )
        filters: list[str] = []
        params: list[Any] = []
        for term in terms:
            params.extend([term, term])
        params.append(len(terms))
        if collection is not None:
            filters.append("collection = ?")
            params.append(collection)
        if exclude_id is not None:
            filters.append("id <> ?")
            params.append(exclude_id)
        where = f"WHERE {' AND '.join(filters)}" if filters else ""
        params.append(limit)

        sql = f"""
            SELECT * FROM (
                SELECT
                    id,
                    name,
                    record_type,
                    collection,
                    relative_path,
                    ({score_expr}) * 100.0 / ? AS score
                FROM documents
                {where}
            ) ranked
            WHERE score > 0
            ORDER BY score DESC, collection ASC, relative_path ASC
            LIMIT ?
        """
        # Search paths may run on worker threads; each query gets its own cursor.
        cursor = self._conn.cursor()
        try:
            rows = cursor.execute(sql, params).fetchall()
        finally:
            cursor.close()

        return [
            RepositoryHit(
                id=str(row[0]),
                name=str(row[1]),
                type=str(row[2]),
                collection=str(row[3]),
                score=float(row[5]),
            )
            for row in rows
        ]

    @staticmethod
    def make_document_id(collection: str, relative_path: str) -> str:
        return _stable_id("doc", f"{collection}:{relative_path}")

    @staticmethod
    def _iter_supported_files(root: Path) -> list[Path]:
        files: list[Path] = []
        for current_root, _, filenames in os.walk(root):
            for filename in filenames:
                if Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS:
                    files.append(Path(current_root) / filename)
        files.sort()
        return files
