"""
Ranking helpers for merging retrieval result sets.

Scores from each path are normalized to [0, 1]. A document found by more than
one path is boosted rather than averaged, and documents found by a single later
path start from a dampened score, so cross-path agreement outranks a lone match
of similar confidence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal

from ..repository import RepositoryHit
from ..storage import SearchHit


PathTag = Literal["keyword", "semantic", "related"]

SNIPPET_CHARS = 200
SEMANTIC_NOISE_FLOOR = 0.1
SEMANTIC_BOOST = 0.5
SEMANTIC_ONLY_WEIGHT = 0.85
RELATED_BOOST = 0.15
RELATED_ONLY_WEIGHT = 0.6


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def normalize_keyword_score(score: float) -> float:
    """Keyword scores arrive on a 0-100 scale."""
    return _clamp(score / 100)


def normalize_related_score(score: float) -> float:
    return _clamp(score / 100)


def normalize_semantic_score(score: float) -> float:
    """Map cosine similarity [0.4, 1.0] onto [0, 1].

    Related text typically scores 0.3-0.95, so the raw range is too compressed
    to compare against the other paths.
    """
    return _clamp((score - 0.4) / 0.6)


@dataclass
class HybridResult:
    """Merged retrieval candidate for a document."""

    document_id: str
    name: str
    collection: str
    document_type: str
    score: float
    matched_by: list[PathTag] = field(default_factory=list)
    snippet: str | None = None

    @property
    def path_count(self) -> int:
        return len(self.matched_by)

    def tag(self, path: PathTag) -> None:
        if path not in self.matched_by:
            self.matched_by.append(path)


class ResultMerger:
    """Accumulates per-path results keyed by document id."""

    def __init__(self) -> None:
        self._results: dict[str, HybridResult] = {}

    def __len__(self) -> int:
        return len(self._results)

    def get(self, document_id: str) -> HybridResult | None:
        return self._results.get(document_id)

    def add_keyword(self, hits: Iterable[RepositoryHit]) -> None:
        for hit in hits:
            if hit.id in self._results:
                self._results[hit.id].tag("keyword")
                continue
            self._results[hit.id] = HybridResult(
                document_id=hit.id,
                name=hit.name,
                collection=hit.collection,
                document_type=hit.type,
                score=normalize_keyword_score(hit.score),
                matched_by=["keyword"],
            )

    def add_semantic(self, hits: Iterable[SearchHit]) -> None:
        seen: set[str] = set()
        for hit in hits:
            # Hits are sorted by score, so the first chunk is the document's best.
            if hit.document_id in seen:
                continue
            seen.add(hit.document_id)

            normalized = normalize_semantic_score(hit.score)
            if normalized < SEMANTIC_NOISE_FLOOR:
                continue

            snippet = hit.text[:SNIPPET_CHARS]
            existing = self._results.get(hit.document_id)
            if existing is not None:
                existing.score = min(1.0, existing.score + normalized * SEMANTIC_BOOST)
                existing.tag("semantic")
                existing.snippet = snippet
                continue

            self._results[hit.document_id] = HybridResult(
                document_id=hit.document_id,
                name=hit.document_name,
                collection=hit.collection,
                document_type="",
                score=normalized * SEMANTIC_ONLY_WEIGHT,
                matched_by=["semantic"],
                snippet=snippet,
            )

    def add_related(self, seed_id: str, hits: Iterable[RepositoryHit]) -> None:
        for hit in hits:
            if hit.id == seed_id:
                continue
            existing = self._results.get(hit.id)
            if existing is not None:
                if "related" not in existing.matched_by:
                    existing.score = min(1.0, existing.score + RELATED_BOOST)
                    existing.tag("related")
                continue

            self._results[hit.id] = HybridResult(
                document_id=hit.id,
                name=hit.name,
                collection=hit.collection,
                document_type=hit.type,
                score=normalize_related_score(hit.score) * RELATED_ONLY_WEIGHT,
                matched_by=["related"],
            )

    def top(self) -> HybridResult | None:
        """Highest-scoring entry so far; earliest entry wins ties."""
        best: HybridResult | None = None
        for result in self._results.values():
            if best is None or result.score > best.score:
                best = result
        return best

    def ranked(self, limit: int) -> list[HybridResult]:
        return rank_results(list(self._results.values()), limit=limit)


def rank_results(results: list[HybridResult], *, limit: int) -> list[HybridResult]:
    """Sort merged results, multi-path matches first, and apply limit."""
    ordered = sorted(results, key=lambda result: (-result.path_count, -result.score))
    return ordered[: max(limit, 0)]
