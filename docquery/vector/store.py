"""
SQLite-backed vector store.
One embedding per document in document_embeddings, keyed by document_id, with the
content hash of the embedded text so unchanged documents are never re-embedded.
"""

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional

import numpy as np

from util.logging import logger as structured_logger
from ..core import dao
from ..core.db import get_db
from ..core.errors import QueryExecutionError
from ..core.schema import Document, EmbeddingRecord, datetime_to_ms, ms_to_datetime
from .embeddings import IEmbeddingProvider, bytes_to_vector, content_hash, vector_to_bytes
from .types import SimilarityHit, VectorizationProgress, VectorStoreStats

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
StopCheck = Callable[[], bool]


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def upsert(self, document_id: str, text: str, vector: Optional[np.ndarray] = None) -> None:
        """Insert or replace the embedding of a document."""
        pass

    @abstractmethod
    def needs_embedding(self, document_id: str, text: str) -> bool:
        """True when no embedding exists or its content hash is stale."""
        pass

    @abstractmethod
    def search_similar(self, query_text: str, k: int, min_similarity: float) -> List[SimilarityHit]:
        """Search for similar documents and return ranked results."""
        pass

    @abstractmethod
    def delete_embedding(self, document_id: str) -> bool:
        """Delete the embedding of a document."""
        pass


class SQLiteVectorStore(IVectorStore):
    """Vector store over the document_embeddings table using a linear cosine scan."""

    def __init__(self, embedder: IEmbeddingProvider, db_path: Optional[str] = None):
        self.embedder = embedder
        self.db_path = db_path
        self.dimension = embedder.get_dimension()

    def upsert(self, document_id: str, text: str, vector: Optional[np.ndarray] = None) -> None:
        """Insert or replace the embedding of a document in its own short transaction."""
        if vector is None:
            vector = self.embedder.embed_text(text)
        vector = np.asarray(vector, dtype=np.float32)
        if vector.shape != (self.dimension,):
            raise ValueError(f"Vector dimension {vector.shape} does not match store dimension {self.dimension}")

        now_ms = datetime_to_ms(datetime.now(timezone.utc))
        with get_db(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO document_embeddings (document_id, vector, content_hash, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    vector = excluded.vector,
                    content_hash = excluded.content_hash,
                    created_at = excluded.created_at
                """,
                (document_id, vector_to_bytes(vector), content_hash(text), now_ms)
            )
            conn.commit()

        structured_logger.log_vector_operation("upsert", document_id)

    def needs_embedding(self, document_id: str, text: str) -> bool:
        with get_db(self.db_path, read_only=True) as conn:
            row = conn.execute(
                "SELECT content_hash FROM document_embeddings WHERE document_id = ?",
                (document_id,)
            ).fetchone()
        return row is None or row["content_hash"] != content_hash(text)

    def get_embedding(self, document_id: str) -> Optional[EmbeddingRecord]:
        """Get the stored embedding of a document."""
        with get_db(self.db_path, read_only=True) as conn:
            row = conn.execute(
                "SELECT document_id, vector, content_hash, created_at FROM document_embeddings WHERE document_id = ?",
                (document_id,)
            ).fetchone()
        if row is None:
            return None
        return EmbeddingRecord(
            document_id=row["document_id"],
            vector=bytes_to_vector(row["vector"]),
            content_hash=row["content_hash"],
            created_at=ms_to_datetime(row["created_at"]),
        )

    def search_similar(self, query_text: str, k: int, min_similarity: float) -> List[SimilarityHit]:
        """
        Embed the query once and rank every stored vector by cosine similarity.

        Args:
            query_text: Free-text query
            k: Maximum number of hits
            min_similarity: Hits below this similarity are dropped

        Returns:
            Hits sorted by similarity, highest first
        """
        if k <= 0:
            return []

        query_vector = self.embedder.embed_text(query_text)
        if not np.any(query_vector):
            return []

        try:
            with get_db(self.db_path, read_only=True) as conn:
                rows = conn.execute("SELECT document_id, vector FROM document_embeddings").fetchall()
        except sqlite3.Error as e:
            logger.error(f"Vector scan failed: {e}")
            raise QueryExecutionError(f"Vector scan failed: {e}")

        ids = []
        vectors = []
        expected_bytes = self.dimension * 4
        for row in rows:
            blob = row["vector"]
            if len(blob) != expected_bytes:
                logger.warning(f"Skipping embedding for {row['document_id']} with {len(blob)} bytes")
                continue
            ids.append(row["document_id"])
            vectors.append(bytes_to_vector(blob))

        if not vectors:
            return []

        similarities = np.vstack(vectors) @ query_vector
        order = np.argsort(-similarities, kind="stable")

        hits = []
        for idx in order:
            score = float(similarities[idx])
            if score < min_similarity:
                break
            hits.append(SimilarityHit(document_id=ids[idx], similarity=score))
            if len(hits) >= k:
                break
        return hits

    def vectorize_document(self, document: Document) -> bool:
        """Embed one document if its text changed. Returns True when an embedding was written."""
        text = document.embedding_text
        if not document.extracted_text.strip() and not document.title.strip():
            return False
        if not self.needs_embedding(document.id, text):
            return False
        self.upsert(document.id, text)
        return True

    def vectorize_all(self, on_progress: Optional[ProgressCallback] = None,
                      should_stop: Optional[StopCheck] = None,
                      batch_size: int = 50) -> VectorizationProgress:
        """
        Re-embed the whole corpus, one short transaction per document.

        Args:
            on_progress: Called with (processed, total) after every document
            should_stop: Checked before every document; True cancels the run
            batch_size: Rows fetched per read

        Returns:
            Summary of the run
        """
        start = time.time()
        progress = VectorizationProgress(total=dao.count_documents(self.db_path))

        for document in dao.iter_documents(self.db_path, batch_size=batch_size):
            if should_stop is not None and should_stop():
                progress.cancelled = True
                break

            try:
                if self.vectorize_document(document):
                    progress.vectorized += 1
                else:
                    progress.skipped += 1
            except (sqlite3.Error, ValueError) as e:
                progress.failed += 1
                structured_logger.log_vector_operation("vectorize", document.id, {"error": str(e)}, status="failed")

            if on_progress is not None:
                on_progress(progress.processed, progress.total)
            if progress.processed % 10 == 0:
                structured_logger.log_vectorization_progress(
                    progress.processed, progress.total, progress.vectorized, progress.skipped
                )

        progress.duration_ms = (time.time() - start) * 1000
        structured_logger.log_operation("vector.vectorize_all", "cancelled" if progress.cancelled else "completed", {
            "total": progress.total,
            "vectorized": progress.vectorized,
            "skipped": progress.skipped,
            "failed": progress.failed,
            "duration_ms": round(progress.duration_ms, 2)
        })
        return progress

    def delete_embedding(self, document_id: str) -> bool:
        with get_db(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM document_embeddings WHERE document_id = ?", (document_id,))
            conn.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            structured_logger.log_vector_operation("delete", document_id)
        return deleted

    def get_statistics(self) -> VectorStoreStats:
        """Count documents and how many of them have an embedding."""
        with get_db(self.db_path, read_only=True) as conn:
            total = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            vectorized = conn.execute(
                "SELECT COUNT(*) FROM document_embeddings e JOIN documents d ON d.id = e.document_id"
            ).fetchone()[0]
        return VectorStoreStats(total_documents=total, vectorized_documents=vectorized)
