"""Vector storage for the semantic index."""

from .base import Chunk, DocumentEntry, IndexMetadata, SearchHit
from .vector_store import VectorStore, cosine_similarity, index_exists

__all__ = [
    "Chunk",
    "DocumentEntry",
    "IndexMetadata",
    "SearchHit",
    "VectorStore",
    "cosine_similarity",
    "index_exists",
]
