"""
Tests for the SQLite vector store and batch vectorization.
"""

import sqlite3

import numpy as np
import pytest

from conftest import seed_document
from docquery.core.db import get_db
from docquery.core.schema import embedding_text
from docquery.vector.embeddings import HashEmbeddingEngine
from docquery.vector.store import SQLiteVectorStore


@pytest.fixture
def store(seeded_db):
    return SQLiteVectorStore(HashEmbeddingEngine(), db_path=seeded_db)


def test_needs_embedding_tracks_content_hash(store):
    assert store.needs_embedding("doc-1", "some text") is True
    store.upsert("doc-1", "some text")
    assert store.needs_embedding("doc-1", "some text") is False
    assert store.needs_embedding("doc-1", "edited text") is True


def test_upsert_replaces_existing(store):
    store.upsert("doc-1", "first")
    store.upsert("doc-1", "second")

    record = store.get_embedding("doc-1")
    assert record.vector.shape == (384,)
    assert np.array_equal(record.vector, store.embedder.embed_text("second"))
    with get_db(store.db_path, read_only=True) as conn:
        assert conn.execute("SELECT COUNT(*) FROM document_embeddings").fetchone()[0] == 1


def test_upsert_rejects_wrong_dimension(store):
    with pytest.raises(ValueError):
        store.upsert("doc-1", "text", vector=np.ones(10, dtype=np.float32))
    assert store.get_embedding("doc-1") is None


def test_search_ranks_by_similarity(store):
    store.vectorize_all()
    hits = store.search_similar("medical bills", k=5, min_similarity=0.0)

    assert hits[0].document_id == "doc-4"
    scores = [hit.similarity for hit in hits]
    assert scores == sorted(scores, reverse=True)


def test_search_respects_k_and_threshold(store):
    store.vectorize_all()
    assert len(store.search_similar("Kroger receipt", k=2, min_similarity=-1.0)) == 2
    assert store.search_similar("Kroger receipt", k=5, min_similarity=1.01) == []
    assert store.search_similar("Kroger receipt", k=0, min_similarity=0.0) == []


def test_search_empty_query_returns_nothing(store):
    store.vectorize_all()
    assert store.search_similar("   ", k=5, min_similarity=-1.0) == []


def test_search_skips_malformed_vectors(store):
    store.vectorize_all()
    with sqlite3.connect(store.db_path) as conn:
        conn.execute("UPDATE document_embeddings SET vector = ? WHERE document_id = 'doc-4'", (b"\x00" * 12,))

    hits = store.search_similar("medical bills", k=5, min_similarity=-1.0)
    assert "doc-4" not in [hit.document_id for hit in hits]
    assert len(hits) == 4


def test_vectorize_all_progress(store):
    calls = []
    progress = store.vectorize_all(on_progress=lambda done, total: calls.append((done, total)))

    assert progress.total == 5
    assert progress.vectorized == 5
    assert progress.skipped == 0
    assert progress.failed == 0
    assert progress.cancelled is False
    assert calls == [(i, 5) for i in range(1, 6)]

    stats = store.get_statistics()
    assert stats.total_documents == 5
    assert stats.vectorized_documents == 5
    assert stats.pending_documents == 0
    assert stats.coverage == 1.0


def test_vectorize_all_skips_unchanged(store):
    store.vectorize_all()
    progress = store.vectorize_all(batch_size=2)
    assert progress.vectorized == 0
    assert progress.skipped == 5


def test_vectorize_all_reembeds_changed_text(store):
    store.vectorize_all()
    seed_document(store.db_path, "doc-2", "Kroger receipt", "Eggs and cheese")

    progress = store.vectorize_all()
    assert progress.vectorized == 1
    record = store.get_embedding("doc-2")
    assert not store.needs_embedding("doc-2", embedding_text("Kroger receipt", "Eggs and cheese"))
    assert record.content_hash


def test_vectorize_all_skips_empty_documents(store):
    seed_document(store.db_path, "doc-empty", "", "   ")
    progress = store.vectorize_all()
    assert progress.total == 6
    assert progress.vectorized == 5
    assert progress.skipped == 1
    assert store.get_embedding("doc-empty") is None


def test_vectorize_all_can_be_cancelled(store):
    seen = []

    def should_stop():
        return len(seen) >= 2

    progress = store.vectorize_all(on_progress=lambda done, total: seen.append(done), should_stop=should_stop)
    assert progress.cancelled is True
    assert progress.vectorized == 2
    assert store.get_statistics().pending_documents == 3


def test_delete_embedding(store):
    store.upsert("doc-1", "text")
    assert store.delete_embedding("doc-1") is True
    assert store.delete_embedding("doc-1") is False
    assert store.get_embedding("doc-1") is None


def test_statistics_on_empty_store(db_path):
    stats = SQLiteVectorStore(HashEmbeddingEngine(), db_path=db_path).get_statistics()
    assert stats.total_documents == 0
    assert stats.coverage == 1.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
