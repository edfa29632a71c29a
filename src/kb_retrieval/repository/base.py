"""
Document repository interface consumed by indexing and hybrid search.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class DocumentInfo:
    """Metadata of an indexable document (no content)."""

    id: str
    name: str
    type: str
    collection: str
    modification_date: str
    word_count: int


@dataclass(frozen=True)
class DocumentContent:
    """Plain-text content of a document, possibly truncated."""

    content: str
    truncated: bool = False
    error: str | None = None


@dataclass(frozen=True)
class RepositoryHit:
    """A document matched by keyword or related-document search.

    Scores are on the repository's native 0-100 scale.
    """

    id: str
    name: str
    score: float
    type: str
    collection: str


class DocumentRepository(Protocol):
    """Read-only access to the external document collection."""

    def list_collections(self) -> list[str]:
        """Return the names of all collections."""

    def list_documents(self, collection: str | None = None) -> list[DocumentInfo]:
        """List indexable documents, optionally limited to one collection."""

    def read_document_content(self, document_id: str, max_length: int) -> DocumentContent:
        """Read up to *max_length* characters of a document's text."""

    def keyword_search(
        self,
        query: str,
        collection: str | None = None,
        limit: int = 15,
    ) -> list[RepositoryHit]:
        """Search documents by keyword."""

    def related_documents(self, document_id: str, limit: int = 10) -> list[RepositoryHit]:
        """Return documents similar to *document_id*."""
