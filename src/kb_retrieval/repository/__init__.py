"""Document repositories consumed by indexing and hybrid search."""

from .base import DocumentContent, DocumentInfo, DocumentRepository, RepositoryHit
from .duckdb import CatalogResult, DuckDBRepository

__all__ = [
    "DocumentContent",
    "DocumentInfo",
    "DocumentRepository",
    "RepositoryHit",
    "CatalogResult",
    "DuckDBRepository",
]
