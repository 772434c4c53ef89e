"""
Records produced by the vector store.
Embeddings are a derived, rebuildable layer over the documents table.
"""

from dataclasses import dataclass


@dataclass
class SimilarityHit:
    """Represents a search result from the vector store."""

    document_id: str
    """Identifier of the matching document"""

    similarity: float
    """Cosine similarity to the query (-1 to 1, higher is closer)"""


@dataclass
class VectorizationProgress:
    """Summary of a batch vectorization run."""

    total: int
    """Documents in the store when the run started"""

    vectorized: int = 0
    """Documents whose embedding was written"""

    skipped: int = 0
    """Documents with empty text or an unchanged content hash"""

    failed: int = 0
    """Documents whose embedding could not be written"""

    cancelled: bool = False
    """True when the run stopped before reaching the end"""

    duration_ms: float = 0.0

    @property
    def processed(self) -> int:
        return self.vectorized + self.skipped + self.failed


@dataclass
class VectorStoreStats:
    """Coverage of the embedding table."""

    total_documents: int
    vectorized_documents: int

    @property
    def pending_documents(self) -> int:
        return max(0, self.total_documents - self.vectorized_documents)

    @property
    def coverage(self) -> float:
        if self.total_documents == 0:
            return 1.0
        return self.vectorized_documents / self.total_documents
