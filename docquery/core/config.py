"""
Configuration for the query engine.
Values come from the environment (optionally a .env file) and are passed into
components at construction time by docquery.engine.build_engine().
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/documents.db")

# Input sanitization
SEARCH_MAX_QUERY_LENGTH = int(os.getenv("SEARCH_MAX_QUERY_LENGTH", "200"))

# Rate limiting (sliding windows)
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "10"))
RATE_LIMIT_PER_HOUR = int(os.getenv("RATE_LIMIT_PER_HOUR", "100"))

# Read-only execution
SQL_TIMEOUT_SEC = float(os.getenv("SQL_TIMEOUT_SEC", "5"))
SQL_MAX_LIMIT = int(os.getenv("SQL_MAX_LIMIT", "100"))

# Vector search
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
SEMANTIC_TOP_K = int(os.getenv("SEMANTIC_TOP_K", "20"))
SEMANTIC_MIN_SIMILARITY = float(os.getenv("SEMANTIC_MIN_SIMILARITY", "0.3"))

# LLM adapter (default disabled)
LLM_ENABLED = os.getenv("LLM_ENABLED", "false").lower() == "true"
LLM_SQL_ENABLED = os.getenv("LLM_SQL_ENABLED", "false").lower() == "true"
LLM_TIMEOUT_SEC = float(os.getenv("LLM_TIMEOUT_SEC", "30"))
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "gemma2:2b")
OLLAMA_HOST = os.getenv("OLLAMA_HOST")  # None means the ollama client default
LLM_RETRY_BACKOFF_SEC = float(os.getenv("LLM_RETRY_BACKOFF_SEC", "30"))

# Audit trail
AUDIT_RING_SIZE = int(os.getenv("AUDIT_RING_SIZE", "1000"))
AUDIT_LOG_PATH = os.getenv("AUDIT_LOG_PATH", "./data/search_audit.jsonl")

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled. Read at call time so tests can toggle DEBUG."""
    return os.getenv("DEBUG", "false").lower() == "true"


def are_llm_features_enabled():
    """Check if the LLM adapter should be constructed."""
    return os.getenv("LLM_ENABLED", "false").lower() == "true"


def is_llm_sql_enabled():
    """Check if complex queries may be answered with LLM-generated SQL."""
    return are_llm_features_enabled() and os.getenv("LLM_SQL_ENABLED", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_search_config():
    """Validate search configuration and return any issues."""
    issues = []

    if SEARCH_MAX_QUERY_LENGTH < 1:
        issues.append("SEARCH_MAX_QUERY_LENGTH must be >= 1")

    if RATE_LIMIT_PER_MINUTE < 1 or RATE_LIMIT_PER_HOUR < 1:
        issues.append("RATE_LIMIT_PER_MINUTE and RATE_LIMIT_PER_HOUR must be >= 1")

    if RATE_LIMIT_PER_MINUTE > RATE_LIMIT_PER_HOUR:
        issues.append("RATE_LIMIT_PER_MINUTE cannot exceed RATE_LIMIT_PER_HOUR")

    if SQL_TIMEOUT_SEC <= 0:
        issues.append("SQL_TIMEOUT_SEC must be > 0")

    if LLM_TIMEOUT_SEC <= SQL_TIMEOUT_SEC:
        issues.append("LLM_TIMEOUT_SEC must be longer than SQL_TIMEOUT_SEC")

    if SQL_MAX_LIMIT < 1:
        issues.append("SQL_MAX_LIMIT must be >= 1")

    if not 0.0 <= SEMANTIC_MIN_SIMILARITY <= 1.0:
        issues.append(f"Invalid SEMANTIC_MIN_SIMILARITY: {SEMANTIC_MIN_SIMILARITY}")

    if EMBED_DIM != 384:
        issues.append("EMBED_DIM must be 384 to match persisted vectors")

    return issues
