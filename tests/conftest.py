"""
Shared fixtures: a temporary SQLite store, seeding helpers and a wired engine.
"""

from datetime import datetime, timedelta, timezone

import pytest

from docquery.core import dao
from docquery.core.db import init_db
from docquery.engine import build_engine
from docquery.llm.adapter import DisabledLLMAdapter
from docquery.search.rate_limiter import RateLimiter

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_path(tmp_path):
    """Initialized, empty document store."""
    path = str(tmp_path / "documents.db")
    init_db(path)
    return path


def seed_document(db_path, document_id, title, text, **fields):
    dao.insert_document(document_id, title, text, db_path=db_path, **fields)


@pytest.fixture
def seeded_db(db_path):
    """Store with a few receipts and bills."""
    seed_document(db_path, "doc-1", "Kroger receipt", "Milk, bread and produce from Kroger grocery",
                  category="grocery", vendor="Kroger", amount=10.00,
                  transaction_date=NOW - timedelta(days=3), tags=["receipt", "food"])
    seed_document(db_path, "doc-2", "Kroger receipt", "Weekly groceries: dairy, meat and bakery items",
                  category="grocery", vendor="Kroger", amount=20.00,
                  transaction_date=NOW - timedelta(days=10), tags=["receipt"])
    seed_document(db_path, "doc-3", "Kroger receipt", "Deli and produce purchase",
                  category="grocery", vendor="Kroger", amount=30.00,
                  transaction_date=NOW - timedelta(days=20), tags=["receipt"])
    seed_document(db_path, "doc-4", "Hospital bill", "Medical bill for clinic visit, copay and diagnosis",
                  category="medical", vendor="City Hospital", amount=150.00,
                  transaction_date=NOW - timedelta(days=40), tags=["bill", "medical"])
    seed_document(db_path, "doc-5", "Shell fuel receipt", "Gasoline 12 gallon pump 4",
                  category="fuel", vendor="Shell", amount=45.50,
                  transaction_date=NOW - timedelta(days=400), tags=["receipt", "car"])
    return db_path


@pytest.fixture
def engine_factory(seeded_db):
    """Build engines over the seeded store with a disabled LLM and a generous rate limit."""
    def factory(llm_adapter=None, rate_limiter=None, llm_sql_enabled=False):
        return build_engine(
            db_path=seeded_db,
            llm_adapter=llm_adapter or DisabledLLMAdapter(),
            rate_limiter=rate_limiter or RateLimiter(per_minute=100, per_hour=1000),
            audit_log_path="",
            llm_sql_enabled=llm_sql_enabled,
        )
    return factory


@pytest.fixture
def engine(engine_factory):
    engine = engine_factory()
    engine.vector_store.vectorize_all()
    return engine
