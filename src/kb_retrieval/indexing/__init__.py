"""Indexing components for the semantic index."""

from .chunker import DocumentInput, SmartChunker, make_chunk_id
from .pipeline import IndexManager, IndexStats

__all__ = [
    "DocumentInput",
    "SmartChunker",
    "make_chunk_id",
    "IndexManager",
    "IndexStats",
]
