"""Hybrid keyword and semantic retrieval over a document catalog."""

from .context import RetrievalContext
from .embeddings import Embedder, create_embedder
from .errors import (
    ConfigurationError,
    CorruptIndexError,
    DocumentReadError,
    MissingCredentialError,
    PermanentProviderError,
    ProviderError,
    RetrievalError,
    TransientProviderError,
)
from .indexing import IndexManager, IndexStats, SmartChunker
from .search import HybridResult, HybridSearchResponse, SemanticSearchResponse
from .storage import VectorStore

__all__ = [
    "RetrievalContext",
    "Embedder",
    "create_embedder",
    "ConfigurationError",
    "CorruptIndexError",
    "DocumentReadError",
    "MissingCredentialError",
    "PermanentProviderError",
    "ProviderError",
    "RetrievalError",
    "TransientProviderError",
    "IndexManager",
    "IndexStats",
    "SmartChunker",
    "HybridResult",
    "HybridSearchResponse",
    "SemanticSearchResponse",
    "VectorStore",
]
