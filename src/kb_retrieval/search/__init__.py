"""Search and ranking components."""

from .hybrid import HybridSearchEngine, HybridSearchResponse
from .ranker import (
    HybridResult,
    ResultMerger,
    normalize_keyword_score,
    normalize_related_score,
    normalize_semantic_score,
    rank_results,
)
from .semantic import SemanticSearchEngine, SemanticSearchResponse

__all__ = [
    "HybridSearchEngine",
    "HybridSearchResponse",
    "HybridResult",
    "ResultMerger",
    "normalize_keyword_score",
    "normalize_related_score",
    "normalize_semantic_score",
    "rank_results",
    "SemanticSearchEngine",
    "SemanticSearchResponse",
]
