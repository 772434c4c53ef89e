"""
HTTP surface for the query engine.
Rejected searches map to 400/429 and failed ones to 503/504; response bodies carry
only caller-safe messages, internal detail stays in the server log and audit trail.
"""

import asyncio
import math
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from util.logging import logger
from ..core.config import VERSION, debug_enabled, validate_search_config
from ..core.schema import QueryResult, SearchState
from ..engine import SearchEngine, build_engine
from .schemas import (
    AggregationResponse,
    AuditEntryResponse,
    AuditListResponse,
    DocumentSummaryResponse,
    ErrorResponse,
    ExampleQueriesResponse,
    HealthResponse,
    KeywordSearchRequest,
    RateLimitResponse,
    SearchRequest,
    SearchResponse,
    VectorRebuildResponse,
    VectorStatsResponse,
)


def _status_code(result: QueryResult) -> int:
    if result.status == SearchState.REJECTED:
        return 429 if result.error_type == "RateLimitError" else 400
    return 504 if result.error_type == "QueryTimeoutError" else 503


def _to_response(result: QueryResult) -> SearchResponse:
    if result.status != SearchState.COMPLETED:
        error = ErrorResponse(
            error=result.error or "Search failed",
            error_type=result.error_type or "SearchError",
            retry_after=result.retry_after,
        )
        headers = None
        if result.retry_after is not None:
            headers = {"Retry-After": str(max(1, math.ceil(result.retry_after)))}
        raise HTTPException(status_code=_status_code(result), detail=error.model_dump(), headers=headers)

    aggregation = None
    if result.aggregation is not None:
        aggregation = AggregationResponse(**vars(result.aggregation))

    return SearchResponse(
        query=result.query,
        status=result.status.value,
        classification=result.classification.value if result.classification else None,
        documents=[DocumentSummaryResponse(**vars(doc)) for doc in result.documents],
        aggregation=aggregation,
        analysis=result.analysis,
        confidence=result.confidence,
        execution_time_ms=round(result.execution_time_ms, 2),
        matched_rule=result.matched_rule,
        generated_query=result.generated_query if debug_enabled() else None,
        states=[state.value for state in result.states],
    )


def create_app(engine: Optional[SearchEngine] = None) -> FastAPI:
    """Create the FastAPI application. Without an engine, one is built from configuration at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for issue in validate_search_config():
            logger.warning(f"Configuration issue: {issue}")

        app.state.engine = engine or build_engine()
        ready = await app.state.engine.llm_adapter.refresh()
        logger.log_operation("api.startup", "ready", {"version": VERSION, "llm_ready": ready})
        yield

    app = FastAPI(
        title="DocQuery Search API",
        version=VERSION,
        description="Natural-language search over a local document store",
        docs_url="/docs" if debug_enabled() else None,
        redoc_url="/redoc" if debug_enabled() else None,
        lifespan=lifespan
    )

    @app.post("/search", response_model=SearchResponse)
    async def search_endpoint(body: SearchRequest, request: Request):
        """Run a natural-language search."""
        result = await request.app.state.engine.orchestrator.search(body.query)
        return _to_response(result)

    @app.post("/search/keyword", response_model=SearchResponse)
    async def keyword_search_endpoint(body: KeywordSearchRequest, request: Request):
        """Plain keyword search over title, text and tags."""
        result = await request.app.state.engine.orchestrator.keyword_search(
            body.query, category=body.category, limit=body.limit
        )
        return _to_response(result)

    @app.get("/search/audit", response_model=AuditListResponse)
    def audit_endpoint(request: Request, limit: int = 50):
        """Most recent audit entries, newest first."""
        if limit < 1 or limit > 1000:
            raise HTTPException(status_code=400, detail="limit must be between 1 and 1000")
        entries = request.app.state.engine.orchestrator.recent_audit(limit)
        return AuditListResponse(entries=[AuditEntryResponse(**entry.to_dict()) for entry in entries])

    @app.get("/search/rate-limit", response_model=RateLimitResponse)
    def rate_limit_endpoint(request: Request):
        stats = request.app.state.engine.orchestrator.rate_limit_stats()
        return RateLimitResponse(
            requests_last_minute=stats.requests_last_minute,
            requests_last_hour=stats.requests_last_hour,
            per_minute_limit=stats.per_minute_limit,
            per_hour_limit=stats.per_hour_limit,
            remaining_minute=stats.remaining_minute,
            remaining_hour=stats.remaining_hour,
        )

    @app.get("/search/examples", response_model=ExampleQueriesResponse)
    def examples_endpoint(request: Request):
        return ExampleQueriesResponse(examples=request.app.state.engine.orchestrator.example_queries())

    @app.get("/vectors/stats", response_model=VectorStatsResponse)
    async def vector_stats_endpoint(request: Request):
        """Embedding coverage of the document store."""
        stats = await asyncio.to_thread(request.app.state.engine.vector_store.get_statistics)
        return VectorStatsResponse(
            total_documents=stats.total_documents,
            vectorized_documents=stats.vectorized_documents,
            pending_documents=stats.pending_documents,
            coverage=round(stats.coverage, 4),
        )

    @app.post("/vectors/rebuild", response_model=VectorRebuildResponse)
    async def vector_rebuild_endpoint(request: Request):
        """Embed every new or changed document."""
        progress = await asyncio.to_thread(request.app.state.engine.vector_store.vectorize_all)
        return VectorRebuildResponse(
            total=progress.total,
            vectorized=progress.vectorized,
            skipped=progress.skipped,
            failed=progress.failed,
            cancelled=progress.cancelled,
            duration_ms=round(progress.duration_ms, 2),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check_endpoint(request: Request):
        """Check system health."""
        return HealthResponse(**await request.app.state.engine.orchestrator.health())

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Handle all unhandled exceptions."""
        logger.error(f"Unhandled exception: {exc}")
        content = {"detail": "Internal server error"}
        if debug_enabled():
            content["debug"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    return app


app = create_app()
