"""
End-to-end tests for the query orchestrator over a seeded store.
"""

import sqlite3
from unittest.mock import AsyncMock, MagicMock

import pytest

from docquery.core.errors import LLMUnavailableError, QueryTimeoutError
from docquery.core.schema import AnalysisResult, QueryType, SearchState, TERMINAL_STATES
from docquery.llm.adapter import ILLMAdapter, OllamaAdapter
from docquery.search.rate_limiter import RateLimiter


class FakeLLMAdapter(ILLMAdapter):
    """Scripted adapter: returns canned SQL/analysis or raises."""

    def __init__(self, ready=True, sql=None, answer="Grocery spending is flat.", analysis_error=None):
        self.ready = ready
        self.sql = sql
        self.answer = answer
        self.analysis_error = analysis_error
        self.sql_calls = []
        self.analysis_calls = []

    def is_ready(self):
        return self.ready

    async def generate_sql(self, query):
        self.sql_calls.append(query)
        if self.sql is None:
            raise LLMUnavailableError("no model")
        return self.sql

    async def analyze(self, query, documents):
        self.analysis_calls.append((query, list(documents)))
        if self.analysis_error is not None:
            raise self.analysis_error
        return AnalysisResult(answer=self.answer, confidence=0.7)


def document_count(db_path):
    with sqlite3.connect(db_path) as conn:
        return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]


@pytest.mark.asyncio
async def test_structured_kroger_total(engine, now):
    result = await engine.orchestrator.search("how much did I spend at Kroger last month", now=now)

    assert result.status == SearchState.COMPLETED
    assert result.classification == QueryType.STRUCTURED
    assert result.matched_rule == "structured_pattern"
    assert {doc.id for doc in result.documents} == {"doc-1", "doc-2", "doc-3"}
    assert result.aggregation.total_amount == pytest.approx(60.00)
    assert result.aggregation.document_count == 3
    assert result.aggregation.date_range == "last 30 days"
    assert result.generated_query.startswith("SELECT * FROM documents WHERE 1=1 AND vendor LIKE ?")
    assert "%Kroger%" in result.generated_query
    assert result.states == [
        SearchState.RECEIVED, SearchState.SANITIZED, SearchState.RATE_CHECKED,
        SearchState.CLASSIFIED, SearchState.EXECUTING, SearchState.COMPLETED,
    ]


@pytest.mark.asyncio
async def test_semantic_medical_bills(engine):
    engine.orchestrator.min_similarity = 0.0
    result = await engine.orchestrator.search("show me medical bills")

    assert result.status == SearchState.COMPLETED
    assert result.classification == QueryType.SEMANTIC
    assert result.documents[0].id == "doc-4"
    similarities = [doc.similarity for doc in result.documents]
    assert similarities == sorted(similarities, reverse=True)
    assert result.generated_query.startswith("semantic(")
    assert result.aggregation is None


@pytest.mark.asyncio
async def test_complex_without_llm_returns_documents_only(engine):
    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.COMPLETED
    assert result.classification == QueryType.COMPLEX
    assert result.analysis is None
    assert SearchState.ANALYZING not in result.states


@pytest.mark.asyncio
async def test_injection_is_rejected_before_execution(engine):
    result = await engine.orchestrator.search("'; DROP TABLE documents; --")

    assert result.status == SearchState.REJECTED
    assert result.error_type == "SecurityError"
    assert result.error == "Query rejected for security reasons"
    assert result.generated_query == ""
    assert result.states == [SearchState.RECEIVED, SearchState.REJECTED]
    assert document_count(engine.db_path) == 5

    entry = engine.orchestrator.recent_audit(1)[0]
    assert entry.status == SearchState.REJECTED
    assert entry.success is False


@pytest.mark.asyncio
async def test_empty_query_is_rejected(engine):
    result = await engine.orchestrator.search("   ")
    assert result.status == SearchState.REJECTED
    assert result.error_type == "ValidationError"


@pytest.mark.asyncio
async def test_rate_limit_rejects_with_retry_after(engine_factory):
    engine = engine_factory(rate_limiter=RateLimiter(per_minute=2, per_hour=100))

    for _ in range(2):
        assert (await engine.orchestrator.search("tax documents")).success

    result = await engine.orchestrator.search("tax documents")
    assert result.status == SearchState.REJECTED
    assert result.error_type == "RateLimitError"
    assert 0 < result.retry_after <= 60
    assert SearchState.SANITIZED in result.states
    assert SearchState.RATE_CHECKED not in result.states


@pytest.mark.asyncio
async def test_one_audit_entry_per_request(engine, now):
    queries = [
        "how much did I spend at Kroger last month",
        "show me medical bills",
        "'; DROP TABLE documents; --",
        "",
    ]
    results = [await engine.orchestrator.search(q, now=now) for q in queries]

    assert len(engine.orchestrator.audit_log) == len(queries)
    for result in results:
        assert result.states[-1] in TERMINAL_STATES
        assert sum(1 for state in result.states if state in TERMINAL_STATES) == 1

    entries = engine.orchestrator.recent_audit(10)
    assert [entry.status for entry in entries] == [r.status for r in reversed(results)]


@pytest.mark.asyncio
async def test_suspicious_query_is_flagged_in_audit(engine):
    result = await engine.orchestrator.search("receipts from the drop table sale")
    assert result.success
    assert engine.orchestrator.recent_audit(1)[0].suspicious is True


@pytest.mark.asyncio
async def test_complex_with_analysis(engine_factory):
    adapter = FakeLLMAdapter()
    engine = engine_factory(llm_adapter=adapter)
    engine.vector_store.vectorize_all()

    result = await engine.orchestrator.search("why did my grocery spending go up")

    assert result.status == SearchState.COMPLETED
    assert result.analysis == "Grocery spending is flat."
    assert result.confidence == 0.7
    assert SearchState.ANALYZING in result.states
    assert adapter.sql_calls == []
    assert len(adapter.analysis_calls) == 1


@pytest.mark.asyncio
async def test_analysis_failure_degrades_gracefully(engine_factory):
    engine = engine_factory(llm_adapter=FakeLLMAdapter(analysis_error=LLMUnavailableError("model crashed")))
    engine.vector_store.vectorize_all()

    result = await engine.orchestrator.search("explain my pharmacy charges")

    assert result.status == SearchState.COMPLETED
    assert result.analysis is None
    assert result.confidence is None


@pytest.mark.asyncio
async def test_llm_sql_path(engine_factory):
    adapter = FakeLLMAdapter(sql="SELECT * FROM documents WHERE category = 'grocery' ORDER BY transaction_date DESC")
    engine = engine_factory(llm_adapter=adapter, llm_sql_enabled=True)

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.COMPLETED
    assert {doc.id for doc in result.documents} == {"doc-1", "doc-2", "doc-3"}
    assert result.generated_query.endswith("LIMIT 100")
    assert result.analysis == "Grocery spending is flat."


@pytest.mark.asyncio
async def test_unsafe_llm_sql_fails_request(engine_factory):
    engine = engine_factory(llm_adapter=FakeLLMAdapter(sql="DELETE FROM documents"), llm_sql_enabled=True)

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.FAILED
    assert result.error_type == "SecurityError"
    assert result.error == "Query rejected for security reasons"
    assert document_count(engine.db_path) == 5

    entry = engine.orchestrator.recent_audit(1)[0]
    assert entry.generated_query == "DELETE FROM documents"
    assert entry.error == "Only SELECT statements are allowed"


@pytest.mark.asyncio
async def test_stacked_llm_sql_is_audited(engine_factory):
    sql = "SELECT * FROM documents; DROP TABLE documents"
    engine = engine_factory(llm_adapter=FakeLLMAdapter(sql=sql), llm_sql_enabled=True)

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.FAILED
    entry = engine.orchestrator.recent_audit(1)[0]
    assert entry.generated_query == sql
    assert entry.error == "Multiple statements are not allowed"
    assert document_count(engine.db_path) == 5


@pytest.mark.asyncio
async def test_llm_sql_cannot_read_schema_through_literal(engine_factory):
    sql = "SELECT 'FROM documents WHERE', name AS id FROM sqlite_master"
    engine = engine_factory(llm_adapter=FakeLLMAdapter(sql=sql), llm_sql_enabled=True)

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.FAILED
    assert result.error_type == "SecurityError"
    assert result.documents == []
    assert engine.orchestrator.recent_audit(1)[0].error == "Table not allowed: sqlite_master"


@pytest.mark.asyncio
async def test_llm_sql_selecting_ids_returns_full_documents(engine_factory):
    adapter = FakeLLMAdapter(sql="SELECT id FROM documents WHERE category = 'grocery'")
    engine = engine_factory(llm_adapter=adapter, llm_sql_enabled=True)

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.COMPLETED
    assert {doc.id for doc in result.documents} == {"doc-1", "doc-2", "doc-3"}
    assert {doc.vendor for doc in result.documents} == {"Kroger"}
    assert result.generated_query == "SELECT id FROM documents WHERE category = 'grocery' LIMIT 100"


@pytest.mark.asyncio
async def test_llm_sql_without_ids_falls_back_to_semantic(engine_factory):
    adapter = FakeLLMAdapter(sql="SELECT vendor, SUM(amount) AS total FROM documents GROUP BY vendor")
    engine = engine_factory(llm_adapter=adapter, llm_sql_enabled=True)
    engine.vector_store.vectorize_all()

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.COMPLETED
    assert len(adapter.sql_calls) == 1
    assert result.generated_query.startswith("semantic(")
    assert engine.orchestrator.recent_audit(1)[0].status == SearchState.COMPLETED


@pytest.mark.asyncio
async def test_analysis_resumes_after_transient_model_failure(engine_factory):
    client = MagicMock()
    client.list = AsyncMock(return_value={"models": [{"model": "gemma2:2b"}]})
    client.chat = AsyncMock(side_effect=[
        ConnectionError("reset"),
        {"message": {"content": "Grocery spending is flat."}},
    ])
    adapter = OllamaAdapter(model_name="gemma2:2b", client=client, retry_backoff=0)
    await adapter.refresh()
    engine = engine_factory(llm_adapter=adapter)
    engine.vector_store.vectorize_all()

    first = await engine.orchestrator.search("why did my grocery spending go up")
    second = await engine.orchestrator.search("why did my grocery spending go up")

    assert first.status == SearchState.COMPLETED
    assert first.analysis is None
    assert second.status == SearchState.COMPLETED
    assert second.analysis == "Grocery spending is flat."


@pytest.mark.asyncio
async def test_llm_sql_unavailable_falls_back_to_semantic(engine_factory):
    adapter = FakeLLMAdapter(sql=None)
    engine = engine_factory(llm_adapter=adapter, llm_sql_enabled=True)
    engine.vector_store.vectorize_all()

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.status == SearchState.COMPLETED
    assert len(adapter.sql_calls) == 1
    assert result.generated_query.startswith("semantic(")


@pytest.mark.asyncio
async def test_llm_sql_not_used_when_adapter_not_ready(engine_factory):
    adapter = FakeLLMAdapter(ready=False, sql="SELECT * FROM documents")
    engine = engine_factory(llm_adapter=adapter, llm_sql_enabled=True)

    result = await engine.orchestrator.search("compare my grocery spending across months")

    assert result.success
    assert adapter.sql_calls == []
    assert adapter.analysis_calls == []


@pytest.mark.asyncio
async def test_execution_timeout_fails_request(engine, now, monkeypatch):
    async def slow_execute(safe_sql, params=()):
        raise QueryTimeoutError("Query exceeded 5.0s")

    monkeypatch.setattr(engine.orchestrator.gateway, "execute", slow_execute)
    result = await engine.orchestrator.search("how much did I spend at Kroger last month", now=now)

    assert result.status == SearchState.FAILED
    assert result.error_type == "QueryTimeoutError"
    assert result.error == "Search took too long, please try again"
    entry = engine.orchestrator.recent_audit(1)[0]
    assert entry.error == "Query exceeded 5.0s"
    assert entry.generated_query.startswith("SELECT * FROM documents WHERE 1=1")


@pytest.mark.asyncio
async def test_unexpected_error_is_opaque(engine, monkeypatch):
    def broken_search(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(engine.orchestrator.vector_store, "search_similar", broken_search)
    result = await engine.orchestrator.search("show me medical bills")

    assert result.status == SearchState.FAILED
    assert result.error == "Search failed"
    assert "disk" not in result.error


@pytest.mark.asyncio
async def test_keyword_search(engine):
    result = await engine.orchestrator.keyword_search("produce")

    assert result.success
    assert {doc.id for doc in result.documents} == {"doc-1", "doc-3"}
    assert result.matched_rule == "keyword"
    assert result.classification is None

    result = await engine.orchestrator.keyword_search("receipt", category="fuel", limit=5)
    assert [doc.id for doc in result.documents] == ["doc-5"]


@pytest.mark.asyncio
async def test_keyword_search_is_sanitized(engine):
    result = await engine.orchestrator.keyword_search("x'; DELETE FROM documents --")
    assert result.status == SearchState.REJECTED
    assert document_count(engine.db_path) == 5


@pytest.mark.asyncio
async def test_health(engine):
    health = await engine.orchestrator.health()

    assert health["status"] == "healthy"
    assert health["database"] is True
    assert health["vectors"]["total_documents"] == 5
    assert health["vectors"]["pending_documents"] == 0
    assert health["llm_ready"] is False
    assert health["llm_sql_enabled"] is False
    assert "accepted" in health["sanitizer"]


def test_example_queries(engine):
    examples = engine.orchestrator.example_queries()
    assert "find all invoices" in examples
    assert len(examples) == 8


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
