"""
Query orchestrator: the single entry point for a search.

Coordinates sanitize → rate check → classify → execute → (analyze) and returns a
typed QueryResult with an explicit terminal status:

1. Sanitizer and rate limiter failures end in REJECTED before anything executes
2. Structured queries run builder SQL through the validator and read-only gateway
3. Semantic queries rank embeddings, then load the matching documents
4. Complex queries retrieve documents (LLM SQL when enabled, else semantic) and,
   when the LLM adapter is ready, add an analysis that may fail without failing the search
5. Exactly one audit entry is written per terminal state
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from util.logging import logger as structured_logger
from ..core.config import (
    LLM_TIMEOUT_SEC, SEMANTIC_MIN_SIMILARITY, SEMANTIC_TOP_K, SQL_MAX_LIMIT, VERSION
)
from ..core.db import health_check as db_health_check
from ..core.errors import LLMUnavailableError, RateLimitError, SearchError, SecurityError
from ..core.schema import (
    Aggregation, AuditEntry, Document, DocumentSummary, QueryResult, QueryType, SearchState
)
from ..llm.adapter import ILLMAdapter
from ..vector.store import SQLiteVectorStore
from .audit import SearchAuditLog
from .classifier import QueryClassifier
from .gateway import ReadOnlyGateway
from .lexicon import EXAMPLE_QUERIES
from .rate_limiter import RateLimiter, RateLimitStats
from .sanitizer import InputSanitizer
from .sql_validator import SQLValidator
from .structured import StructuredQueryBuilder


@dataclass
class _Execution:
    """What the EXECUTING (and ANALYZING) stages produced."""
    documents: List[Document] = field(default_factory=list)
    similarities: Dict[str, float] = field(default_factory=dict)
    aggregation: Optional[Aggregation] = None
    generated_query: str = ""
    analysis: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class _Request:
    raw_query: str
    started: float
    states: List[SearchState] = field(default_factory=lambda: [SearchState.RECEIVED])
    query: str = ""
    classification: Optional[QueryType] = None
    matched_rule: Optional[str] = None
    suspicious: bool = False
    # Latest SQL or retrieval description, kept for the audit of a failed request
    generated_query: str = ""

    def advance(self, state: SearchState) -> None:
        self.states.append(state)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


class QueryOrchestrator:
    """
    Runs search requests through the pipeline.
    All collaborators are injected; see docquery.engine.build_engine().
    """

    def __init__(self, sanitizer: InputSanitizer, rate_limiter: RateLimiter, classifier: QueryClassifier,
                 builder: StructuredQueryBuilder, validator: SQLValidator, gateway: ReadOnlyGateway,
                 vector_store: SQLiteVectorStore, audit_log: SearchAuditLog,
                 llm_adapter: Optional[ILLMAdapter] = None, llm_sql_enabled: bool = False,
                 llm_timeout: float = LLM_TIMEOUT_SEC, top_k: int = SEMANTIC_TOP_K,
                 min_similarity: float = SEMANTIC_MIN_SIMILARITY):
        self.sanitizer = sanitizer
        self.rate_limiter = rate_limiter
        self.classifier = classifier
        self.builder = builder
        self.validator = validator
        self.gateway = gateway
        self.vector_store = vector_store
        self.audit_log = audit_log
        self.llm_adapter = llm_adapter
        self.llm_sql_enabled = llm_sql_enabled
        self.llm_timeout = llm_timeout
        self.top_k = top_k
        self.min_similarity = min_similarity

    async def search(self, raw_query: str, now: Optional[datetime] = None) -> QueryResult:
        """
        Execute a natural-language search.

        Args:
            raw_query: Query text exactly as the user typed it
            now: Reference time for relative date phrases (defaults to the current time)

        Returns:
            QueryResult whose status is COMPLETED, REJECTED or FAILED. Never raises.
        """
        request = _Request(raw_query=raw_query or "", started=time.perf_counter())

        rejected = self._admit(request)
        if rejected is not None:
            return rejected

        request.matched_rule, request.classification = self.classifier.classify_with_rule(request.query)
        request.advance(SearchState.CLASSIFIED)

        try:
            request.advance(SearchState.EXECUTING)
            execution = await self._execute(request, now)

            if request.classification == QueryType.COMPLEX and self._llm_ready():
                request.advance(SearchState.ANALYZING)
                await self._analyze(request, execution)
        except SearchError as e:
            if isinstance(e, SecurityError):
                structured_logger.log_security_violation(request.query, "generated_sql", e.message)
            return self._fail(request, e.message, e.public_message, type(e).__name__)
        except Exception as e:
            structured_logger.error(f"Unexpected search failure: {e}")
            return self._fail(request, str(e), "Search failed", "SearchError")

        return self._complete(request, execution)

    async def keyword_search(self, raw_term: str, category: Optional[str] = None,
                             limit: int = SQL_MAX_LIMIT) -> QueryResult:
        """Plain keyword search over title, text and tags. Sanitized, rate limited and audited."""
        request = _Request(raw_query=raw_term or "", started=time.perf_counter())

        rejected = self._admit(request)
        if rejected is not None:
            return rejected

        request.matched_rule = "keyword"
        request.generated_query = "keyword"
        request.advance(SearchState.EXECUTING)
        try:
            documents = await self.gateway.search_documents(request.query, category=category, limit=limit)
        except SearchError as e:
            return self._fail(request, e.message, e.public_message, type(e).__name__)
        except Exception as e:
            structured_logger.error(f"Unexpected keyword search failure: {e}")
            return self._fail(request, str(e), "Search failed", "SearchError")

        return self._complete(request, _Execution(documents=documents, generated_query=request.generated_query))

    def _admit(self, request: _Request) -> Optional[QueryResult]:
        """Sanitize and rate check. Returns a REJECTED result, or None when admitted."""
        try:
            request.query = self.sanitizer.sanitize(request.raw_query)
        except SecurityError as e:
            structured_logger.log_security_violation(request.raw_query, "input", e.message)
            return self._reject(request, e)
        except SearchError as e:
            return self._reject(request, e)
        request.advance(SearchState.SANITIZED)
        request.suspicious = self.sanitizer.is_suspicious(request.query)

        try:
            self.rate_limiter.admit()
        except RateLimitError as e:
            structured_logger.log_rate_limited("search", e.retry_after)
            return self._reject(request, e, retry_after=e.retry_after)
        request.advance(SearchState.RATE_CHECKED)
        return None

    async def _execute(self, request: _Request, now: Optional[datetime]) -> _Execution:
        if request.classification == QueryType.STRUCTURED:
            return await self._execute_structured(request, now)
        if request.classification == QueryType.COMPLEX and self.llm_sql_enabled and self._llm_ready():
            try:
                return await self._execute_llm_sql(request)
            except LLMUnavailableError as e:
                structured_logger.warning(f"LLM SQL unusable, using semantic retrieval: {e.message}")
        return await self._execute_semantic(request)

    async def _execute_structured(self, request: _Request, now: Optional[datetime]) -> _Execution:
        filters, statement = self.builder.build(request.query, now)
        request.generated_query = f"{statement.sql} {list(statement.params)}"
        safe_sql = self.validator.validate(statement.sql)
        request.generated_query = f"{safe_sql.sql} {list(statement.params)}"
        rows = await self.gateway.execute(safe_sql, statement.params)
        documents = [Document.from_row(row) for row in rows]
        return _Execution(
            documents=documents,
            aggregation=self.builder.aggregate(filters, documents, request.query),
            generated_query=request.generated_query,
        )

    async def _execute_semantic(self, request: _Request) -> _Execution:
        request.generated_query = f"semantic(k={self.top_k}, min_similarity={self.min_similarity})"
        hits = await asyncio.to_thread(self.vector_store.search_similar, request.query, self.top_k, self.min_similarity)
        documents = await self.gateway.fetch_documents([hit.document_id for hit in hits])
        return _Execution(
            documents=documents,
            similarities={hit.document_id: hit.similarity for hit in hits},
            generated_query=request.generated_query,
        )

    async def _execute_llm_sql(self, request: _Request) -> _Execution:
        """
        Run model-generated SQL as a document id selector.

        Raises:
            LLMUnavailableError: No SQL was produced or it does not select document ids
            SecurityError: The statement failed validation (fails the request)
        """
        try:
            sql = await asyncio.wait_for(self.llm_adapter.generate_sql(request.query), timeout=self.llm_timeout)
        except LLMUnavailableError:
            raise
        except Exception as e:
            raise LLMUnavailableError(f"SQL generation failed: {e!r}")

        request.generated_query = sql
        safe_sql = self.validator.validate(sql)
        request.generated_query = safe_sql.sql
        rows = await self.gateway.execute(safe_sql)
        if rows and "id" not in rows[0]:
            raise LLMUnavailableError("Generated SQL does not select document ids")

        # Rows only name documents; full records come from the documents table
        document_ids = list(dict.fromkeys(str(row["id"]) for row in rows))
        return _Execution(
            documents=await self.gateway.fetch_documents(document_ids),
            generated_query=safe_sql.sql,
        )

    async def _analyze(self, request: _Request, execution: _Execution) -> None:
        try:
            result = await asyncio.wait_for(
                self.llm_adapter.analyze(request.query, execution.documents),
                timeout=self.llm_timeout
            )
            execution.analysis = result.answer
            execution.confidence = result.confidence
        except Exception as e:
            detail = e.message if isinstance(e, LLMUnavailableError) else repr(e)
            structured_logger.warning(f"LLM analysis failed, returning documents only: {detail}")

    def _llm_ready(self) -> bool:
        return self.llm_adapter is not None and self.llm_adapter.is_ready()

    def _complete(self, request: _Request, execution: _Execution) -> QueryResult:
        request.advance(SearchState.COMPLETED)
        summaries = [
            DocumentSummary.from_document(doc, similarity=execution.similarities.get(doc.id))
            for doc in execution.documents
        ]
        result = QueryResult(
            query=request.query,
            status=SearchState.COMPLETED,
            classification=request.classification,
            documents=summaries,
            aggregation=execution.aggregation,
            analysis=execution.analysis,
            confidence=execution.confidence,
            execution_time_ms=request.elapsed_ms,
            generated_query=execution.generated_query,
            matched_rule=request.matched_rule,
            states=list(request.states),
        )
        self._audit(request, result, execution.generated_query, error=None)
        structured_logger.log_search(request.query, result.classification.value if result.classification else "keyword",
                                     result.result_count, result.execution_time_ms)
        return result

    def _reject(self, request: _Request, error: SearchError, retry_after: Optional[float] = None) -> QueryResult:
        request.advance(SearchState.REJECTED)
        result = QueryResult(
            query=request.raw_query,
            status=SearchState.REJECTED,
            execution_time_ms=request.elapsed_ms,
            error=error.public_message,
            error_type=type(error).__name__,
            retry_after=retry_after,
            states=list(request.states),
        )
        self._audit(request, result, "", error=error.message)
        return result

    def _fail(self, request: _Request, detail: str, public_message: str, error_type: str) -> QueryResult:
        request.advance(SearchState.FAILED)
        result = QueryResult(
            query=request.query or request.raw_query,
            status=SearchState.FAILED,
            classification=request.classification,
            execution_time_ms=request.elapsed_ms,
            matched_rule=request.matched_rule,
            error=public_message,
            error_type=error_type,
            states=list(request.states),
        )
        self._audit(request, result, request.generated_query, error=detail)
        structured_logger.log_search(request.query, request.classification.value if request.classification else "keyword",
                                     0, result.execution_time_ms, success=False, error=detail)
        return result

    def _audit(self, request: _Request, result: QueryResult, generated_query: str, error: Optional[str]) -> None:
        self.audit_log.record(AuditEntry(
            timestamp=datetime.now(timezone.utc),
            query=request.query or request.raw_query,
            classification=request.classification,
            generated_query=generated_query,
            result_count=result.result_count,
            duration_ms=result.execution_time_ms,
            success=result.success,
            status=result.status,
            error=error,
            suspicious=request.suspicious,
        ))

    def recent_audit(self, limit: int = 50) -> List[AuditEntry]:
        return self.audit_log.recent(limit)

    def rate_limit_stats(self) -> RateLimitStats:
        return self.rate_limiter.get_statistics()

    def example_queries(self) -> List[str]:
        return list(EXAMPLE_QUERIES)

    async def health(self) -> Dict[str, Any]:
        """Health of every collaborator."""
        database_ok = await asyncio.to_thread(db_health_check, self.gateway.db_path)
        vector_stats = None
        if database_ok:
            stats = await asyncio.to_thread(self.vector_store.get_statistics)
            vector_stats = {
                "total_documents": stats.total_documents,
                "vectorized_documents": stats.vectorized_documents,
                "pending_documents": stats.pending_documents,
            }

        return {
            "status": "healthy" if database_ok else "unhealthy",
            "version": VERSION,
            "database": database_ok,
            "vectors": vector_stats,
            "llm_ready": self._llm_ready(),
            "llm_sql_enabled": self.llm_sql_enabled,
            "sanitizer": self.sanitizer.get_stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
