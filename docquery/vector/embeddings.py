"""
Deterministic locality-sensitive text embeddings.
No external model: character trigrams, word n-grams and a domain lexicon are hashed
with MD5 into a fixed 384-dimension vector, so the same text always yields the same bytes.
"""

from abc import ABC, abstractmethod
from functools import lru_cache
import hashlib
import re
from typing import Dict, List, Tuple

import numpy as np

from ..search.lexicon import CATEGORY_KEYWORDS, STOP_WORDS

DEFAULT_DIMENSION = 384

# Component weights: trigrams, words, lexicon
TRIGRAM_WEIGHT = 0.2
WORD_WEIGHT = 0.5
LEXICON_WEIGHT = 0.3

TRIGRAM_HASHES = 3
WORD_HASHES = 2
LEXICON_HASHES = 4

_DOLLAR_RE = re.compile(r'\$\s*\d|\b\d+\.\d{2}\b|\b\d+\s*(?:dollars|usd)\b')
_DATE_RE = re.compile(
    r'\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b'
    r'|\b\d{4}-\d{2}-\d{2}\b'
    r'|\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+\d{1,2}\b'
)
_PUNCT_RE = re.compile(r'[^a-z0-9\s]')
_SPACE_RE = re.compile(r'\s+')

_CATEGORY_PATTERNS = {
    category: re.compile(r'\b(?:' + '|'.join(re.escape(k) for k in keywords) + r')\b')
    for category, keywords in CATEGORY_KEYWORDS.items()
}


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> np.ndarray:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


@lru_cache(maxsize=65536)
def _hash_positions(feature: str, num_hashes: int, dimension: int) -> Tuple[Tuple[int, float], ...]:
    """Derive (index, sign) pairs for a feature from independent MD5 digests."""
    positions = []
    for k in range(num_hashes):
        digest = hashlib.md5(f"{k}:{feature}".encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "little") % dimension
        sign = 1.0 if digest[4] & 1 else -1.0
        positions.append((index, sign))
    return tuple(positions)


def _accumulate(acc: np.ndarray, feature: str, num_hashes: int, weight: float = 1.0) -> None:
    for index, sign in _hash_positions(feature, num_hashes, acc.shape[0]):
        acc[index] += sign * weight


def _l2_normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


def normalize_text(text: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    lowered = (text or "").lower()
    return _SPACE_RE.sub(" ", _PUNCT_RE.sub(" ", lowered)).strip()


class HashEmbeddingEngine(IEmbeddingProvider):
    """Hash-based embedding provider.

    Near-duplicate wording shares trigrams and words, and shared domain vocabulary
    (vendor names, category terms) lands on the same lexicon positions, so related
    texts end up with a higher cosine similarity than unrelated ones.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive")
        self.dimension = dimension

    def embed_text(self, text: str) -> np.ndarray:
        """Embed text into an L2-normalized float32 vector. Empty text gives a zero vector."""
        lowered = (text or "").lower()
        normalized = normalize_text(text)
        if not normalized:
            return np.zeros(self.dimension, dtype=np.float32)

        trigrams = _l2_normalize(self._trigram_component(normalized))
        words = _l2_normalize(self._word_component(normalized))
        lexicon = _l2_normalize(self._lexicon_component(lowered, normalized))

        combined = TRIGRAM_WEIGHT * trigrams + WORD_WEIGHT * words + LEXICON_WEIGHT * lexicon
        return _l2_normalize(combined).astype(np.float32)

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension

    def _trigram_component(self, normalized: str) -> np.ndarray:
        acc = np.zeros(self.dimension, dtype=np.float64)
        padded = f" {normalized} "
        for i in range(len(padded) - 2):
            _accumulate(acc, "t:" + padded[i:i + 3], TRIGRAM_HASHES)
        return acc

    def _word_component(self, normalized: str) -> np.ndarray:
        acc = np.zeros(self.dimension, dtype=np.float64)
        tokens = [t for t in normalized.split(" ") if t and t not in STOP_WORDS]
        for token in tokens:
            _accumulate(acc, "w:" + token, WORD_HASHES)
        for first, second in zip(tokens, tokens[1:]):
            _accumulate(acc, f"b:{first} {second}", WORD_HASHES, weight=0.5)
        return acc

    def _lexicon_component(self, lowered: str, normalized: str) -> np.ndarray:
        acc = np.zeros(self.dimension, dtype=np.float64)
        for category, pattern in _CATEGORY_PATTERNS.items():
            hits = len(pattern.findall(normalized))
            if hits:
                _accumulate(acc, f"category:{category}", LEXICON_HASHES, weight=float(hits))

        # Detectors run before punctuation stripping so "$12.50" and "3/14/2025" survive
        if _DOLLAR_RE.search(lowered):
            _accumulate(acc, "feature:amount", LEXICON_HASHES)
        if _DATE_RE.search(lowered):
            _accumulate(acc, "feature:date", LEXICON_HASHES)
        return acc

    def category_hits(self, text: str) -> Dict[str, int]:
        """Lexicon matches per category, for debugging rankings."""
        normalized = normalize_text(text)
        hits = {c: len(p.findall(normalized)) for c, p in _CATEGORY_PATTERNS.items()}
        return {c: n for c, n in hits.items() if n}


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two L2-normalized vectors (their dot product)."""
    if a.shape != b.shape:
        raise ValueError(f"Dimension mismatch: {a.shape} vs {b.shape}")
    return float(np.dot(a, b))


def vector_to_bytes(vector: np.ndarray) -> bytes:
    """Serialize as little-endian float32."""
    return np.asarray(vector, dtype='<f4').tobytes()


def bytes_to_vector(blob: bytes) -> np.ndarray:
    """Deserialize little-endian float32 bytes."""
    return np.frombuffer(blob, dtype='<f4').astype(np.float32)


def content_hash(text: str) -> str:
    """MD5 hex digest used to detect stale embeddings."""
    return hashlib.md5((text or "").encode("utf-8")).hexdigest()


def embed_texts(provider: IEmbeddingProvider, texts: List[str]) -> np.ndarray:
    """
    Embed multiple texts into vectors.

    Returns:
        Numpy array of shape (len(texts), embedding_dim)
    """
    if not texts:
        return np.zeros((0, provider.get_dimension()), dtype=np.float32)
    return np.vstack([provider.embed_text(t) for t in texts])
