"""
Request and response models for the search HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

# Request bodies larger than this are refused before they reach the sanitizer
MAX_REQUEST_QUERY_LENGTH = 10000


class SearchRequest(BaseModel):
    query: str

    @field_validator('query')
    @classmethod
    def query_must_be_bounded(cls, v):
        if len(v) > MAX_REQUEST_QUERY_LENGTH:
            raise ValueError(f'query cannot exceed {MAX_REQUEST_QUERY_LENGTH} characters')
        return v


class KeywordSearchRequest(SearchRequest):
    category: Optional[str] = None
    limit: int = 50

    @field_validator('limit')
    @classmethod
    def limit_must_be_in_range(cls, v):
        if v < 1 or v > 100:
            raise ValueError('limit must be between 1 and 100')
        return v


class DocumentSummaryResponse(BaseModel):
    id: str
    title: str
    category: Optional[str] = None
    vendor: Optional[str] = None
    amount: Optional[float] = None
    transaction_date: Optional[datetime] = None
    tags: List[str] = []
    snippet: str
    similarity: Optional[float] = None


class AggregationResponse(BaseModel):
    total_amount: float
    average_amount: Optional[float] = None
    document_count: int
    vendor: Optional[str] = None
    category: Optional[str] = None
    date_range: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    status: str                              # "completed"
    classification: Optional[str] = None     # "structured", "semantic", "complex"
    documents: List[DocumentSummaryResponse]
    aggregation: Optional[AggregationResponse] = None
    analysis: Optional[str] = None
    confidence: Optional[float] = None
    execution_time_ms: float
    matched_rule: Optional[str] = None
    generated_query: Optional[str] = None    # Only populated in debug mode
    states: List[str] = []


class AuditEntryResponse(BaseModel):
    timestamp: datetime
    query: str
    classification: Optional[str] = None
    generated_query: str
    result_count: int
    duration_ms: float
    success: bool
    status: str
    error: Optional[str] = None
    suspicious: bool = False


class AuditListResponse(BaseModel):
    entries: List[AuditEntryResponse]


class RateLimitResponse(BaseModel):
    requests_last_minute: int
    requests_last_hour: int
    per_minute_limit: int
    per_hour_limit: int
    remaining_minute: int
    remaining_hour: int


class ExampleQueriesResponse(BaseModel):
    examples: List[str]


class VectorStatsResponse(BaseModel):
    total_documents: int
    vectorized_documents: int
    pending_documents: int
    coverage: float


class VectorRebuildResponse(BaseModel):
    total: int
    vectorized: int
    skipped: int
    failed: int
    cancelled: bool
    duration_ms: float


class HealthResponse(BaseModel):
    status: str
    version: str
    database: bool
    vectors: Optional[Dict[str, int]] = None
    llm_ready: bool
    llm_sql_enabled: bool
    sanitizer: Dict[str, Any]
    timestamp: datetime


class ErrorResponse(BaseModel):
    error: str
    error_type: str
    retry_after: Optional[float] = None
