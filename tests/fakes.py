"""In-memory collaborators shared by the test modules."""

from __future__ import annotations

import time
from dataclasses import dataclass

from kb_retrieval.repository import DocumentContent, DocumentInfo, RepositoryHit


VOCAB = (
    "purchase",
    "price",
    "risk",
    "litigation",
    "revenue",
    "forecast",
    "security",
    "credential",
)

DEFAULT_DATE = "2024-01-01T00:00:00+00:00"


def make_content(sentence: str, repeat: int = 6) -> str:
    """Build a document body long enough to survive chunk filtering."""
    return " ".join([sentence] * repeat)


def make_long_content(sentence: str, paragraphs: int, per_paragraph: int = 20) -> str:
    return "\n\n".join(make_content(sentence, per_paragraph) for _ in range(paragraphs))


class FakeEmbedder:
    """Bag-of-words embedder over a fixed vocabulary."""

    provider_name = "fake"

    def __init__(
        self,
        model_name: str = "fake-embed",
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.model_name = model_name
        self.dimensions = len(VOCAB)
        self.failures = failures or {}
        self.batch_calls: list[list[str]] = []
        self.query_calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        for marker, error in self.failures.items():
            if marker in text:
                raise error
        lowered = text.lower()
        return [float(lowered.count(term)) for term in VOCAB]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        self.query_calls.append(text)
        return self._vector(text)


@dataclass
class StoredDocument:
    id: str
    name: str
    collection: str
    content: str
    modification_date: str = DEFAULT_DATE
    type: str = "markdown"


class InMemoryRepository:
    """Dictionary-backed document repository with scriptable search results."""

    def __init__(self, documents: list[StoredDocument] | None = None) -> None:
        self.documents: dict[str, StoredDocument] = {}
        for document in documents or []:
            self.add(document)
        self.keyword_hits: list[RepositoryHit] | None = None
        self.related_hits: dict[str, list[RepositoryHit]] = {}
        self.read_errors: dict[str, str] = {}
        self.keyword_error: Exception | None = None
        self.keyword_delay = 0.0
        self.related_calls: list[str] = []

    def add(self, document: StoredDocument) -> None:
        self.documents[document.id] = document

    def list_collections(self) -> list[str]:
        return sorted({doc.collection for doc in self.documents.values()})

    def list_documents(self, collection: str | None = None) -> list[DocumentInfo]:
        return [
            DocumentInfo(
                id=doc.id,
                name=doc.name,
                type=doc.type,
                collection=doc.collection,
                modification_date=doc.modification_date,
                word_count=len(doc.content.split()),
            )
            for doc in self.documents.values()
            if collection is None or doc.collection == collection
        ]

    def read_document_content(self, document_id: str, max_length: int) -> DocumentContent:
        if document_id in self.read_errors:
            return DocumentContent(content="", error=self.read_errors[document_id])
        document = self.documents.get(document_id)
        if document is None:
            return DocumentContent(content="", error=f"No such document: {document_id}")
        if len(document.content) > max_length:
            return DocumentContent(content=document.content[:max_length], truncated=True)
        return DocumentContent(content=document.content)

    def keyword_search(
        self,
        query: str,
        collection: str | None = None,
        limit: int = 15,
    ) -> list[RepositoryHit]:
        if self.keyword_delay:
            time.sleep(self.keyword_delay)
        if self.keyword_error is not None:
            raise self.keyword_error
        if self.keyword_hits is not None:
            return list(self.keyword_hits)

        terms = query.lower().split()
        hits: list[RepositoryHit] = []
        for doc in self.documents.values():
            if collection is not None and doc.collection != collection:
                continue
            matched = sum(1 for term in terms if term in doc.content.lower())
            if matched:
                hits.append(
                    RepositoryHit(
                        id=doc.id,
                        name=doc.name,
                        score=matched * 100 / len(terms),
                        type=doc.type,
                        collection=doc.collection,
                    )
                )
        hits.sort(key=lambda hit: -hit.score)
        return hits[:limit]

    def related_documents(self, document_id: str, limit: int = 10) -> list[RepositoryHit]:
        self.related_calls.append(document_id)
        return list(self.related_hits.get(document_id, []))[:limit]


def hit(document_id: str, score: float, collection: str = "kb") -> RepositoryHit:
    return RepositoryHit(
        id=document_id,
        name=document_id.upper(),
        score=score,
        type="markdown",
        collection=collection,
    )
