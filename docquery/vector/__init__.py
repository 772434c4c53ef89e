"""
Embedding engine and SQLite vector store.
Derived, rebuildable layer over the documents table.
"""

# Package initialization for vector module
from .embeddings import IEmbeddingProvider, HashEmbeddingEngine, cosine_similarity, content_hash
from .store import IVectorStore, SQLiteVectorStore
from .types import SimilarityHit, VectorizationProgress, VectorStoreStats

__all__ = [
    'IEmbeddingProvider',
    'HashEmbeddingEngine',
    'cosine_similarity',
    'content_hash',
    'IVectorStore',
    'SQLiteVectorStore',
    'SimilarityHit',
    'VectorizationProgress',
    'VectorStoreStats'
]
