"""
Domain records shared by the search components.
Documents are read-only snapshots of store rows, scoped to a single request.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np


class QueryType(str, Enum):
    STRUCTURED = "structured"
    SEMANTIC = "semantic"
    COMPLEX = "complex"


class SearchState(str, Enum):
    RECEIVED = "received"
    SANITIZED = "sanitized"
    RATE_CHECKED = "rate_checked"
    CLASSIFIED = "classified"
    EXECUTING = "executing"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SearchState.COMPLETED, SearchState.REJECTED, SearchState.FAILED})


def ms_to_datetime(value: Optional[int]) -> Optional[datetime]:
    """Convert a store timestamp (ms since epoch) to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    """Convert a datetime to the store's ms-since-epoch encoding."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


@dataclass
class Document:
    id: str
    title: str
    extracted_text: str
    category: Optional[str]
    vendor: Optional[str]
    amount: Optional[float]
    transaction_date: Optional[datetime]
    tags: List[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Document":
        tags = row.get("tags") or ""
        amount = row.get("amount")
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            extracted_text=row.get("extracted_text") or "",
            category=row.get("category"),
            vendor=row.get("vendor"),
            amount=float(amount) if amount is not None else None,
            transaction_date=ms_to_datetime(row.get("transaction_date")),
            tags=[t.strip() for t in tags.split(",") if t.strip()],
            created_at=ms_to_datetime(row.get("created_at")),
            updated_at=ms_to_datetime(row.get("updated_at")),
        )

    @property
    def embedding_text(self) -> str:
        """Text that is embedded and hashed for staleness detection."""
        return embedding_text(self.title, self.extracted_text)


def embedding_text(title: str, extracted_text: str) -> str:
    return f"{title or ''}. {extracted_text or ''}".strip()


@dataclass
class DocumentSummary:
    """Display-ready view of a document returned to callers."""
    id: str
    title: str
    category: Optional[str]
    vendor: Optional[str]
    amount: Optional[float]
    transaction_date: Optional[datetime]
    tags: List[str]
    snippet: str
    similarity: Optional[float] = None

    @classmethod
    def from_document(cls, doc: Document, similarity: Optional[float] = None, snippet_length: int = 200) -> "DocumentSummary":
        text = doc.extracted_text or ""
        snippet = text[:snippet_length] + "..." if len(text) > snippet_length else text
        return cls(
            id=doc.id,
            title=doc.title,
            category=doc.category,
            vendor=doc.vendor,
            amount=doc.amount,
            transaction_date=doc.transaction_date,
            tags=list(doc.tags),
            snippet=snippet,
            similarity=similarity,
        )


@dataclass
class EmbeddingRecord:
    document_id: str
    vector: np.ndarray
    content_hash: str
    created_at: datetime


@dataclass
class FilterSet:
    vendor: Optional[str] = None
    category: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    date_range_label: Optional[str] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    want_sum: bool = False
    want_average: bool = False
    want_count: bool = False

    @property
    def has_date_filter(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    @property
    def has_amount_filter(self) -> bool:
        return self.min_amount is not None or self.max_amount is not None

    @property
    def has_aggregation(self) -> bool:
        return self.want_sum or self.want_average or self.want_count


@dataclass(frozen=True)
class ParameterizedSQL:
    sql: str
    params: tuple = ()


@dataclass
class Aggregation:
    total_amount: float
    average_amount: Optional[float]
    document_count: int
    vendor: Optional[str] = None
    category: Optional[str] = None
    date_range: Optional[str] = None


@dataclass
class AnalysisResult:
    answer: str
    confidence: float


@dataclass(frozen=True)
class AuditEntry:
    timestamp: datetime
    query: str
    classification: Optional[QueryType]
    generated_query: str
    result_count: int
    duration_ms: float
    success: bool
    status: SearchState
    error: Optional[str] = None
    suspicious: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "query": self.query,
            "classification": self.classification.value if self.classification else None,
            "generated_query": self.generated_query,
            "result_count": self.result_count,
            "duration_ms": round(self.duration_ms, 2),
            "success": self.success,
            "status": self.status.value,
            "error": self.error,
            "suspicious": self.suspicious,
        }


@dataclass
class QueryResult:
    """Typed outcome of one search request. Never raised, always returned."""
    query: str
    status: SearchState
    classification: Optional[QueryType] = None
    documents: List[DocumentSummary] = field(default_factory=list)
    aggregation: Optional[Aggregation] = None
    analysis: Optional[str] = None
    confidence: Optional[float] = None
    execution_time_ms: float = 0.0
    generated_query: str = ""
    matched_rule: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    retry_after: Optional[float] = None
    states: List[SearchState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == SearchState.COMPLETED

    @property
    def result_count(self) -> int:
        return len(self.documents)

    @property
    def has_aggregation(self) -> bool:
        return self.aggregation is not None

    @property
    def has_analysis(self) -> bool:
        return bool(self.analysis)
