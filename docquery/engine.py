"""
Component wiring. Every collaborator is constructed once here and injected,
so tests can build an engine over a temporary database with their own fakes.
"""

from dataclasses import dataclass
from typing import Optional

from .core import config
from .llm.adapter import DisabledLLMAdapter, ILLMAdapter, OllamaAdapter
from .search.audit import JsonlFileSink, SearchAuditLog, log_sink
from .search.classifier import QueryClassifier
from .search.gateway import ReadOnlyGateway
from .search.orchestrator import QueryOrchestrator
from .search.rate_limiter import RateLimiter
from .search.sanitizer import InputSanitizer
from .search.sql_validator import SQLValidator
from .search.structured import StructuredQueryBuilder
from .vector.embeddings import HashEmbeddingEngine
from .vector.store import SQLiteVectorStore


@dataclass
class SearchEngine:
    """The wired component graph."""
    orchestrator: QueryOrchestrator
    vector_store: SQLiteVectorStore
    llm_adapter: ILLMAdapter
    db_path: str


def build_engine(db_path: Optional[str] = None, llm_adapter: Optional[ILLMAdapter] = None,
                 rate_limiter: Optional[RateLimiter] = None, audit_log_path: Optional[str] = None,
                 llm_sql_enabled: Optional[bool] = None) -> SearchEngine:
    """
    Build a search engine from configuration.

    Args:
        db_path: SQLite store path, defaults to DB_PATH
        llm_adapter: Adapter to use; defaults to Ollama when LLM_ENABLED, else a disabled adapter
        rate_limiter: Shared limiter; defaults to the configured quotas
        audit_log_path: JSONL audit file; defaults to AUDIT_LOG_PATH, "" disables the file sink
        llm_sql_enabled: Overrides LLM_SQL_ENABLED

    Returns:
        SearchEngine with a ready orchestrator
    """
    db_path = db_path or config.DB_PATH

    if llm_adapter is None:
        llm_adapter = OllamaAdapter() if config.are_llm_features_enabled() else DisabledLLMAdapter()
    if llm_sql_enabled is None:
        llm_sql_enabled = config.is_llm_sql_enabled()

    sinks = [log_sink]
    audit_log_path = config.AUDIT_LOG_PATH if audit_log_path is None else audit_log_path
    if audit_log_path:
        sinks.append(JsonlFileSink(audit_log_path))

    validator = SQLValidator(max_limit=config.SQL_MAX_LIMIT)
    embedder = HashEmbeddingEngine(dimension=config.EMBED_DIM)
    vector_store = SQLiteVectorStore(embedder, db_path=db_path)

    orchestrator = QueryOrchestrator(
        sanitizer=InputSanitizer(max_length=config.SEARCH_MAX_QUERY_LENGTH),
        rate_limiter=rate_limiter or RateLimiter(config.RATE_LIMIT_PER_MINUTE, config.RATE_LIMIT_PER_HOUR),
        classifier=QueryClassifier(),
        builder=StructuredQueryBuilder(max_limit=config.SQL_MAX_LIMIT),
        validator=validator,
        gateway=ReadOnlyGateway(db_path=db_path, validator=validator, timeout=config.SQL_TIMEOUT_SEC),
        vector_store=vector_store,
        audit_log=SearchAuditLog(sinks=sinks, ring_size=config.AUDIT_RING_SIZE),
        llm_adapter=llm_adapter,
        llm_sql_enabled=llm_sql_enabled,
        llm_timeout=config.LLM_TIMEOUT_SEC,
        top_k=config.SEMANTIC_TOP_K,
        min_similarity=config.SEMANTIC_MIN_SIMILARITY,
    )

    return SearchEngine(
        orchestrator=orchestrator,
        vector_store=vector_store,
        llm_adapter=llm_adapter,
        db_path=db_path,
    )
