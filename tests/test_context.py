"""Tests for RetrievalContext wiring and configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import FakeEmbedder, InMemoryRepository
from kb_retrieval.config import IndexSettings, resolve_db_path, resolve_index_dir
from kb_retrieval.context import RetrievalContext
from kb_retrieval.errors import ConfigurationError, MissingCredentialError
from kb_retrieval.repository import DuckDBRepository


def _context(tmp_path: Path, repository: InMemoryRepository, calls: list[int]):
    def factory() -> FakeEmbedder:
        calls.append(1)
        return FakeEmbedder()

    return RetrievalContext(
        index_dir=tmp_path / "index",
        repository=repository,
        settings=IndexSettings(batch_delay_ms=0),
        embedder_factory=factory,
    )


def test_status_is_empty_before_first_build(
    tmp_path: Path, repository: InMemoryRepository
) -> None:
    context = _context(tmp_path, repository, [])

    assert context.get_index_status() is None
    assert context.get_store() is None


def test_build_then_search(tmp_path: Path, repository: InMemoryRepository) -> None:
    calls: list[int] = []
    context = _context(tmp_path, repository, calls)

    stats = context.build_index()
    status = context.get_index_status()
    response = context.hybrid_search("purchase price")

    assert stats.indexed_documents == 3
    assert status is not None
    assert status.total_documents == 3
    assert status.embedding_provider == "fake"
    assert response.index_available is True
    assert response.search_paths == ["keyword", "semantic", "related"]
    assert response.results[0].document_id == "agreement"
    assert response.results[0].matched_by == ["keyword", "semantic"]
    assert calls == [1]


def test_semantic_search_only_returns_chunks(
    tmp_path: Path, repository: InMemoryRepository
) -> None:
    context = _context(tmp_path, repository, [])
    context.build_index()

    response = context.semantic_search_only("litigation risk", top_k=2)

    assert response.index_available is True
    assert len(response.results) == 2
    assert response.results[0].document_id == "risk"
    assert response.results[0].score == pytest.approx(1.0)


def test_store_cache_is_refreshed_after_build(
    tmp_path: Path, repository: InMemoryRepository
) -> None:
    context = _context(tmp_path, repository, [])
    context.build_index()
    first = context.get_store()

    assert context.get_store() is first

    context.build_index(force=True)
    assert context.get_store() is not first


def test_reset_drops_cached_embedder(tmp_path: Path, repository: InMemoryRepository) -> None:
    calls: list[int] = []
    context = _context(tmp_path, repository, calls)

    context.get_embedder()
    context.get_embedder()
    context.reset()
    context.get_embedder()

    assert calls == [1, 1]


def test_missing_credential_surfaces_on_build(
    tmp_path: Path, repository: InMemoryRepository
) -> None:
    def factory():
        raise MissingCredentialError("GOOGLE_API_KEY", "gemini")

    context = RetrievalContext(
        index_dir=tmp_path / "index",
        repository=repository,
        embedder_factory=factory,
    )

    with pytest.raises(MissingCredentialError, match="GOOGLE_API_KEY"):
        context.build_index()
    assert context.hybrid_search("purchase").search_paths == ["keyword", "related"]


def test_from_env_uses_configured_paths(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("KB_RETRIEVAL_INDEX_DIR", str(tmp_path / "idx"))
    monkeypatch.setenv("KB_RETRIEVAL_DB_PATH", str(tmp_path / "db" / "catalog.duckdb"))
    monkeypatch.setenv("KB_RETRIEVAL_EMBED_BATCH_SIZE", "8")

    context = RetrievalContext.from_env()
    try:
        assert context.index_dir == (tmp_path / "idx").resolve()
        assert context.index_dir.is_dir()
        assert isinstance(context.repository, DuckDBRepository)
        assert context.settings.embed_batch_size == 8
        assert context.get_index_status() is None
    finally:
        context.close()


def test_explicit_paths_override_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("KB_RETRIEVAL_INDEX_DIR", str(tmp_path / "from-env"))

    assert resolve_index_dir(str(tmp_path / "explicit")) == (tmp_path / "explicit").resolve()
    assert resolve_db_path(str(tmp_path / "x" / "c.duckdb")).endswith("c.duckdb")
    assert (tmp_path / "x").is_dir()


def test_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("KB_RETRIEVAL_BATCH_DELAY_MS", "0")
    monkeypatch.setenv("KB_RETRIEVAL_RETRY_BASE_DELAY", "0.5")
    monkeypatch.setenv("KB_RETRIEVAL_CALL_TIMEOUT", "5")

    settings = IndexSettings.from_env()

    assert settings.batch_delay_ms == 0
    assert settings.retry_base_delay == 0.5
    assert settings.call_timeout == 5.0
    assert settings.embed_batch_size == 50
    assert settings.max_content_length == 32000


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("KB_RETRIEVAL_EMBED_BATCH_SIZE", "many"),
        ("KB_RETRIEVAL_EMBED_BATCH_SIZE", "0"),
        ("KB_RETRIEVAL_RETRY_BASE_DELAY", "-1"),
    ],
)
def test_invalid_settings_are_rejected(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        IndexSettings.from_env()


def test_non_positive_progress_interval_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="progress_interval"):
        IndexSettings(progress_interval=0)
