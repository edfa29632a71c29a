"""
Chunking utilities for indexing document content.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..storage.base import Chunk


_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?。！？；\n])\s+")


@dataclass(frozen=True)
class DocumentInput:
    """Raw document text plus the identity the chunks inherit."""

    document_id: str
    name: str
    collection: str
    content: str


def make_chunk_id(document_id: str, chunk_index: int) -> str:
    return f"{document_id}#{chunk_index}"


class SmartChunker:
    """
    Paragraph-aware chunker with sentence fallback and overlap.

    This implementation is char-based to keep it deterministic and lightweight.
    """

    def __init__(
        self,
        max_chars: int = 2000,
        overlap_chars: int = 400,
        min_chars: int = 100,
    ) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be > 0")
        if overlap_chars < 0:
            raise ValueError("overlap_chars must be >= 0")
        if overlap_chars >= max_chars:
            raise ValueError("overlap_chars must be smaller than max_chars")
        if min_chars < 0:
            raise ValueError("min_chars must be >= 0")

        self.max_chars = max_chars
        self.overlap_chars = overlap_chars
        self.min_chars = min_chars

    def chunk_document(self, document: DocumentInput) -> list[Chunk]:
        """
        Split a document into overlapping chunks.

        Short paragraphs are merged, long ones are split by sentences, and the
        tail of each chunk is carried into the next one for context.
        """
        text = document.content.strip()
        if len(text) < self.min_chars:
            return []

        raw_chunks = self._split_paragraphs(text)
        overlapped = self._apply_overlap(raw_chunks)

        kept = [chunk for chunk in overlapped if len(chunk) >= self.min_chars]
        return [
            Chunk(
                id=make_chunk_id(document.document_id, index),
                document_id=document.document_id,
                document_name=document.name,
                collection=document.collection,
                text=chunk_text,
                chunk_index=index,
            )
            for index, chunk_text in enumerate(kept)
        ]

    def _split_paragraphs(self, text: str) -> list[str]:
        chunks: list[str] = []
        buffer = ""

        for paragraph in _PARAGRAPH_BREAK.split(text):
            trimmed = paragraph.strip()
            if not trimmed:
                continue

            if len(buffer) + len(trimmed) + 2 <= self.max_chars:
                buffer = f"{buffer}\n\n{trimmed}" if buffer else trimmed
                continue

            if buffer:
                chunks.append(buffer)

            if len(trimmed) > self.max_chars:
                chunks.extend(self._split_sentences(trimmed))
                buffer = ""
            else:
                buffer = trimmed

        if buffer:
            chunks.append(buffer)
        return chunks

    def _split_sentences(self, text: str) -> list[str]:
        chunks: list[str] = []
        current = ""

        for sentence in _SENTENCE_BREAK.split(text):
            if not sentence:
                continue
            if len(current) + len(sentence) + 1 <= self.max_chars:
                current = f"{current} {sentence}" if current else sentence
                continue

            if current:
                chunks.append(current)

            if len(sentence) > self.max_chars:
                # No usable boundary: hard split at the character limit.
                for start in range(0, len(sentence), self.max_chars):
                    chunks.append(sentence[start : start + self.max_chars])
                current = ""
            else:
                current = sentence

        if current:
            chunks.append(current)
        return chunks

    def _apply_overlap(self, raw_chunks: list[str]) -> list[str]:
        if len(raw_chunks) <= 1 or self.overlap_chars == 0:
            return list(raw_chunks)

        max_allowed = self.max_chars + self.overlap_chars
        result = [raw_chunks[0]]
        for previous, current in zip(raw_chunks, raw_chunks[1:]):
            tail = previous[-self.overlap_chars :]
            separator = "" if tail.endswith("\n") else "\n"
            combined = tail + separator + current
            result.append(combined[:max_allowed])
        return result
