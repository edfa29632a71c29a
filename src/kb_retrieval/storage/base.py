"""
Chunk records, persisted index metadata and search hit models.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, Field


INDEX_FORMAT_VERSION = 1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentEntry(BaseModel):
    """Per-document tracking used for incremental reindex decisions."""

    name: str
    modification_date: str
    chunk_count: int = Field(ge=0)


class IndexMetadata(BaseModel):
    """Store-wide state written to ``meta.json``."""

    version: int = INDEX_FORMAT_VERSION
    embedding_provider: str = "unknown"
    embedding_model: str = "unknown"
    dimensions: int = Field(ge=0)
    total_chunks: int = 0
    total_documents: int = 0
    last_updated: str = Field(default_factory=utc_now_iso)
    documents: dict[str, DocumentEntry] = Field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of one document's text, the unit of embedding."""

    id: str
    document_id: str
    document_name: str
    collection: str
    text: str
    chunk_index: int


@dataclass(frozen=True)
class SearchHit:
    """A stored chunk ranked by cosine similarity to a query vector."""

    document_id: str
    document_name: str
    collection: str
    text: str
    chunk_index: int
    score: float
