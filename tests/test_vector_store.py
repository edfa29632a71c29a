"""Tests for the on-disk vector store."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from kb_retrieval.storage import Chunk, VectorStore, cosine_similarity, index_exists


def _chunks(document_id: str, count: int, *, start: int = 0) -> list[Chunk]:
    return [
        Chunk(
            id=f"{document_id}#{i}",
            document_id=document_id,
            document_name=document_id.title(),
            collection="kb",
            text=f"{document_id} chunk {i}",
            chunk_index=i,
        )
        for i in range(start, start + count)
    ]


def _store_with(tmp_path: Path, dims: int = 3) -> VectorStore:
    store = VectorStore(tmp_path / "index", dims, provider="fake", model="fake-embed")
    store.upsert_document(
        "alpha",
        "Alpha",
        "2024-01-01",
        _chunks("alpha", 2),
        [[1.0, 0.0, 0.0], [0.9, 0.1, 0.0]],
    )
    store.upsert_document(
        "beta",
        "Beta",
        "2024-02-01",
        _chunks("beta", 1),
        [[0.0, 1.0, 0.0]],
    )
    return store


def test_cosine_similarity_properties() -> None:
    assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([0, 0], [1, 1]) == 0.0
    assert cosine_similarity([3, 4], [6, 8]) == pytest.approx(cosine_similarity([6, 8], [3, 4]))
    with pytest.raises(ValueError):
        cosine_similarity([1, 2], [1, 2, 3])


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    store = _store_with(tmp_path)
    store.save()

    assert index_exists(tmp_path / "index")
    assert (tmp_path / "index" / "vectors.bin").stat().st_size == 3 * 3 * 4
    saved_chunks = json.loads((tmp_path / "index" / "chunks.json").read_text())
    assert [row["id"] for row in saved_chunks] == ["alpha#0", "alpha#1", "beta#0"]

    loaded = VectorStore(tmp_path / "index")
    assert loaded.load() is True
    assert loaded.is_ready()
    assert loaded.dimensions == 3
    assert loaded.chunks == store.chunks
    np.testing.assert_allclose(loaded.get_vectors(), store.get_vectors())

    meta = loaded.get_meta()
    assert meta.embedding_provider == "fake"
    assert meta.embedding_model == "fake-embed"
    assert meta.total_chunks == 3
    assert meta.total_documents == 2
    assert meta.documents["alpha"].chunk_count == 2
    assert meta.documents["beta"].modification_date == "2024-02-01"


def test_load_without_index_returns_false(tmp_path: Path) -> None:
    store = VectorStore(tmp_path / "missing", 3)

    assert store.load() is False
    assert not store.is_ready()
    assert index_exists(tmp_path / "missing") is False


def test_search_ranks_by_cosine_similarity(tmp_path: Path) -> None:
    store = _store_with(tmp_path)

    hits = store.search([1.0, 0.0, 0.0], top_k=2)

    assert [(hit.document_id, hit.chunk_index) for hit in hits] == [("alpha", 0), ("alpha", 1)]
    assert hits[0].score == pytest.approx(1.0)
    assert hits[0].score >= hits[1].score
    assert hits[0].document_name == "Alpha"
    assert hits[0].text == "alpha chunk 0"


def test_search_edge_cases(tmp_path: Path) -> None:
    empty = VectorStore(tmp_path / "empty", 3)
    assert empty.search([1.0, 0.0, 0.0]) == []

    store = _store_with(tmp_path)
    assert store.search([1.0, 0.0, 0.0], top_k=0) == []
    assert len(store.search([1.0, 0.0, 0.0], top_k=50)) == 3
    assert all(hit.score == 0.0 for hit in store.search([0.0, 0.0, 0.0]))
    with pytest.raises(ValueError):
        store.search([1.0, 0.0])


def test_upsert_replaces_existing_document(tmp_path: Path) -> None:
    store = _store_with(tmp_path)

    store.upsert_document(
        "alpha",
        "Alpha v2",
        "2024-03-01",
        _chunks("alpha", 1),
        [[0.0, 0.0, 1.0]],
    )

    assert store.total_chunks == 2
    assert store.total_documents == 2
    assert [chunk.id for chunk in store.chunks] == ["beta#0", "alpha#0"]
    np.testing.assert_allclose(store.get_vectors(), [[0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    assert store.get_meta().documents["alpha"].name == "Alpha v2"


def test_upsert_with_no_chunks_removes_document(tmp_path: Path) -> None:
    store = _store_with(tmp_path)

    store.upsert_document("alpha", "Alpha", "2024-05-01", [], [])

    assert store.document_ids() == {"beta"}
    assert store.total_chunks == 1


def test_upsert_validates_input(tmp_path: Path) -> None:
    store = VectorStore(tmp_path / "index", 3)

    with pytest.raises(ValueError):
        store.upsert_document("alpha", "Alpha", "d", _chunks("alpha", 2), [[1.0, 0.0, 0.0]])
    with pytest.raises(ValueError):
        store.upsert_document("alpha", "Alpha", "d", _chunks("beta", 1), [[1.0, 0.0, 0.0]])
    with pytest.raises(ValueError):
        store.upsert_document("alpha", "Alpha", "d", _chunks("alpha", 1), [[1.0, 0.0]])
    assert store.total_chunks == 0


def test_needs_reindex_tracks_modification_date(tmp_path: Path) -> None:
    store = _store_with(tmp_path)

    assert store.needs_reindex("gamma", "2024-01-01") is True
    assert store.needs_reindex("alpha", "2024-01-01") is False
    assert store.needs_reindex("alpha", "2024-06-01") is True


def test_remove_document_keeps_remaining_vectors_aligned(tmp_path: Path) -> None:
    dims = 4
    store = VectorStore(tmp_path / "index", dims)
    expected: dict[str, list[float]] = {}
    serial = 0
    for document_id, count in (("first", 20), ("target", 12), ("last", 18)):
        chunks = _chunks(document_id, count)
        vectors = []
        for chunk in chunks:
            serial += 1
            vector = [float(serial), 1.0, 0.0, float(serial % 7)]
            expected[chunk.id] = vector
            vectors.append(vector)
        store.upsert_document(document_id, document_id, "2024-01-01", chunks, vectors)
    assert store.total_chunks == 50

    removed = store.remove_document("target")

    assert removed == 12
    assert store.total_chunks == 38
    assert store.used_length == 38 * dims
    assert all(chunk.document_id != "target" for chunk in store.chunks)
    matrix = store.get_vectors()
    for row, chunk in enumerate(store.chunks):
        np.testing.assert_allclose(matrix[row], expected[chunk.id])
    assert store.remove_document("target") == 0


def test_arena_grows_geometrically(tmp_path: Path) -> None:
    dims = 1000
    store = VectorStore(tmp_path / "index", dims)
    assert store.capacity == 0

    store.upsert_document("a", "A", "d", _chunks("a", 5), [[0.5] * dims] * 5)
    assert store.capacity == 5000

    store.upsert_document("b", "B", "d", _chunks("b", 1), [[0.25] * dims])
    assert store.capacity == 10000
    assert store.used_length == 6000


def test_truncated_vector_file_is_rejected(tmp_path: Path) -> None:
    store = _store_with(tmp_path)
    store.save()
    vectors_path = tmp_path / "index" / "vectors.bin"
    vectors_path.write_bytes(vectors_path.read_bytes()[:-4])

    reloaded = VectorStore(tmp_path / "index")

    assert reloaded.load() is False
    assert reloaded.total_chunks == 0
    assert not reloaded.is_ready()


def test_inconsistent_document_map_is_rejected(tmp_path: Path) -> None:
    store = _store_with(tmp_path)
    store.save()
    meta_path = tmp_path / "index" / "meta.json"
    meta = json.loads(meta_path.read_text())
    meta["documents"]["alpha"]["chunk_count"] = 5
    meta_path.write_text(json.dumps(meta))

    assert VectorStore(tmp_path / "index").load() is False


def test_malformed_metadata_is_rejected(tmp_path: Path) -> None:
    store = _store_with(tmp_path)
    store.save()
    (tmp_path / "index" / "meta.json").write_text("{not json")

    assert VectorStore(tmp_path / "index").load() is False


def test_incompatible_embedder_is_detected(tmp_path: Path) -> None:
    store = _store_with(tmp_path)

    assert store.is_compatible("fake", "fake-embed", 3)
    assert not store.is_compatible("fake", "other-model", 3)
    assert not store.is_compatible("fake", "fake-embed", 8)
