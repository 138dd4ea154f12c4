"""Tests shared by both vector backends, plus SQLite-specific behavior."""

import sqlite3
from unittest.mock import patch

import numpy as np
import pytest

from widgetbot import KnowledgeChunk, SQLiteVectorStore, get_vector_store
from widgetbot.errors import VectorStoreError


def test_store_initialization(temp_vector_store):
    store = temp_vector_store

    assert store.db_path.exists()
    assert store.backend == "sqlite"
    assert store.count("tenant-1") == 0
    assert store.active_generation("tenant-1") is None


def test_get_vector_store_rejects_unknown_backend(tmp_path):
    with pytest.raises(ValueError, match="Unsupported vector store backend"):
        get_vector_store("chroma", db_path=tmp_path / "x.db")


def test_replace_all_then_query(vector_store, chunk_factory):
    chunks = chunk_factory("tenant-1", [[1.0, 0.0], [0.0, 1.0], [0.7, 0.7]])

    generation = vector_store.replace_all("tenant-1", chunks)
    results = vector_store.query("tenant-1", np.array([1.0, 0.0]), 0.0, 3)

    assert vector_store.active_generation("tenant-1") == generation
    assert vector_store.count("tenant-1") == 3
    assert [chunk.content for chunk, _ in results] == [
        "passage 0",
        "passage 2",
        "passage 1",
    ]
    assert results[0][1] == pytest.approx(1.0, abs=1e-5)
    assert results[0][0].metadata["generation"] == generation


def test_replace_all_leaves_exactly_the_new_rows(vector_store, chunk_factory):
    vector_store.replace_all(
        "tenant-1",
        chunk_factory("tenant-1", [[1.0, 0.0]] * 4, [f"old {i}" for i in range(4)]),
    )
    vector_store.replace_all(
        "tenant-1",
        chunk_factory("tenant-1", [[0.0, 1.0]] * 2, ["new 0", "new 1"]),
    )

    stored = vector_store.list_chunks("tenant-1")
    results = vector_store.query("tenant-1", np.array([1.0, 0.0]), -1.0, 10)

    assert [chunk.content for chunk in stored] == ["new 0", "new 1"]
    assert {chunk.content for chunk, _ in results} == {"new 0", "new 1"}
    assert vector_store.count("tenant-1") == 2


def test_replace_all_is_idempotent(vector_store, chunk_factory):
    vectors = [[1.0, 0.0], [0.0, 1.0]]

    vector_store.replace_all("tenant-1", chunk_factory("tenant-1", vectors))
    first = [c.content for c in vector_store.list_chunks("tenant-1")]
    vector_store.replace_all("tenant-1", chunk_factory("tenant-1", vectors))
    second = [c.content for c in vector_store.list_chunks("tenant-1")]

    assert first == second
    assert vector_store.count("tenant-1") == 2


def test_tenants_are_isolated(vector_store, chunk_factory):
    vector_store.replace_all(
        "tenant-a", chunk_factory("tenant-a", [[1.0, 0.0]], ["alpha fact"])
    )
    vector_store.replace_all(
        "tenant-b", chunk_factory("tenant-b", [[1.0, 0.0]], ["beta fact"])
    )
    vector_store.replace_all("tenant-a", chunk_factory("tenant-a", [[0.0, 1.0]]))

    results = vector_store.query("tenant-b", np.array([1.0, 0.0]), 0.0, 5)

    assert [chunk.content for chunk, _ in results] == ["beta fact"]
    assert all(chunk.tenant_id == "tenant-b" for chunk, _ in results)


def test_query_respects_threshold_and_top_k(vector_store, chunk_factory):
    vector_store.replace_all(
        "tenant-1",
        chunk_factory("tenant-1", [[1.0, 0.0], [0.8, 0.6], [0.6, 0.8], [0.0, 1.0]]),
    )
    query = np.array([1.0, 0.0])

    above = vector_store.query("tenant-1", query, 0.5, 10)
    capped = vector_store.query("tenant-1", query, 0.0, 2)

    assert [round(score, 4) for _, score in above] == [1.0, 0.8, 0.6]
    assert len(capped) == 2
    scores = [score for _, score in vector_store.query("tenant-1", query, -1.0, 10)]
    assert scores == sorted(scores, reverse=True)


def test_query_ties_keep_insertion_order(vector_store, chunk_factory):
    vector_store.replace_all(
        "tenant-1",
        chunk_factory("tenant-1", [[1.0, 0.0]] * 3, ["first", "second", "third"]),
    )

    results = vector_store.query("tenant-1", np.array([1.0, 0.0]), 0.0, 3)

    assert [chunk.content for chunk, _ in results] == ["first", "second", "third"]


@pytest.mark.parametrize("top_k", [0, -1])
def test_query_with_non_positive_top_k_is_empty(vector_store, chunk_factory, top_k):
    vector_store.replace_all("tenant-1", chunk_factory("tenant-1", [[1.0, 0.0]]))

    assert vector_store.query("tenant-1", np.array([1.0, 0.0]), 0.0, top_k) == []


def test_query_unknown_tenant_is_empty(vector_store):
    assert vector_store.query("nobody", np.array([1.0, 0.0]), 0.0, 5) == []


def test_replace_with_no_chunks_clears_tenant(vector_store, chunk_factory):
    vector_store.replace_all("tenant-1", chunk_factory("tenant-1", [[1.0, 0.0]]))

    vector_store.replace_all("tenant-1", [])

    assert vector_store.count("tenant-1") == 0
    assert vector_store.query("tenant-1", np.array([1.0, 0.0]), -1.0, 5) == []


def test_query_dimension_mismatch_raises(vector_store, chunk_factory):
    vector_store.replace_all("tenant-1", chunk_factory("tenant-1", [[1.0, 0.0]]))

    with pytest.raises(VectorStoreError, match="does not match"):
        vector_store.query("tenant-1", np.array([1.0, 0.0, 0.0]), 0.0, 5)


def test_replace_all_validates_chunks(vector_store, chunk_factory):
    foreign = chunk_factory("tenant-b", [[1.0, 0.0]])
    missing = [KnowledgeChunk(tenant_id="tenant-1", index=0, content="no vector")]
    ragged = chunk_factory("tenant-1", [[1.0, 0.0], [1.0, 0.0, 0.0]])

    for chunks in (foreign, missing, ragged):
        with pytest.raises(VectorStoreError):
            vector_store.replace_all("tenant-1", chunks)

    assert vector_store.active_generation("tenant-1") is None


def test_delete_tenant(vector_store, chunk_factory):
    vector_store.replace_all("tenant-1", chunk_factory("tenant-1", [[1.0, 0.0]]))

    vector_store.delete_tenant("tenant-1")

    assert vector_store.active_generation("tenant-1") is None
    assert vector_store.list_chunks("tenant-1") == []


def test_metadata_roundtrip(vector_store, chunk_factory):
    chunks = chunk_factory("tenant-1", [[1.0, 0.0]], ["We ship within 3 days."])
    chunks[0].metadata["business"] = "Acme Shipping"

    vector_store.replace_all("tenant-1", chunks)
    [(chunk, _score)] = vector_store.query("tenant-1", np.array([1.0, 0.0]), 0.0, 1)

    assert chunk.content == "We ship within 3 days."
    assert chunk.index == 0
    assert chunk.source == "rag_content"
    assert chunk.metadata["business"] == "Acme Shipping"
    assert "row_id" in chunk.metadata


def test_sqlite_failed_replace_keeps_previous_rows(temp_vector_store, chunk_factory):
    store = temp_vector_store
    store.replace_all("tenant-1", chunk_factory("tenant-1", [[1.0, 0.0]], ["old"]))
    previous = store.active_generation("tenant-1")

    with (
        patch.object(
            SQLiteVectorStore,
            "_purge_inactive",
            side_effect=sqlite3.OperationalError("disk I/O error"),
        ),
        pytest.raises(VectorStoreError, match="Failed to write vector rows"),
    ):
        store.replace_all("tenant-1", chunk_factory("tenant-1", [[0.0, 1.0]], ["new"]))

    assert store.active_generation("tenant-1") == previous
    assert [chunk.content for chunk in store.list_chunks("tenant-1")] == ["old"]
    with sqlite3.connect(store.db_path) as conn:
        (total,) = conn.execute("SELECT COUNT(*) FROM document_embeddings").fetchone()
    assert total == 1


def test_sqlite_vectors_persist_across_instances(temp_vector_store, chunk_factory):
    temp_vector_store.replace_all(
        "tenant-1", chunk_factory("tenant-1", [[0.6, 0.8]], ["persisted"])
    )

    reopened = SQLiteVectorStore(temp_vector_store.db_path)
    results = reopened.query("tenant-1", np.array([0.6, 0.8]), 0.9, 1)

    assert [chunk.content for chunk, _ in results] == ["persisted"]


def test_cosine_similarity_handles_zero_vectors():
    embeddings = np.array([[1.0, 0.0], [0.0, 0.0]], dtype=np.float32)

    scores = SQLiteVectorStore.cosine_similarity(np.array([1.0, 0.0]), embeddings)
    zero_query = SQLiteVectorStore.cosine_similarity(np.zeros(2), embeddings)

    np.testing.assert_allclose(scores, [1.0, 0.0])
    np.testing.assert_array_equal(zero_query, [0.0, 0.0])
    assert not np.isnan(scores).any()
