"""
Data access helpers for the documents table.

Reads used by vectorization go through read-only connections. insert_document()
is a store-side helper for seeding (scripts and tests); the query engine never
calls it.
"""

import logging
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence

from .db import get_db
from .schema import Document, datetime_to_ms

logger = logging.getLogger(__name__)


def get_document(document_id: str, db_path: Optional[str] = None) -> Optional[Document]:
    """Get a single document by id."""
    if not document_id or not document_id.strip():
        return None

    with get_db(db_path, read_only=True) as conn:
        row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id.strip(),)).fetchone()
        return Document.from_row(dict(row)) if row else None


def count_documents(db_path: Optional[str] = None) -> int:
    """Count all documents in the store."""
    with get_db(db_path, read_only=True) as conn:
        return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]


def iter_documents(db_path: Optional[str] = None, batch_size: int = 50) -> Iterator[Document]:
    """
    Iterate all documents in id order using keyset pagination.

    Each batch uses its own short-lived connection so a long iteration never
    holds a read transaction open across the whole corpus.
    """
    last_id = ""
    while True:
        with get_db(db_path, read_only=True) as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE id > ? ORDER BY id LIMIT ?",
                (last_id, batch_size)
            ).fetchall()

        if not rows:
            return

        for row in rows:
            yield Document.from_row(dict(row))

        last_id = rows[-1]["id"]


def insert_document(document_id: str, title: str, extracted_text: str, category: str = None,
                    vendor: str = None, amount: float = None, transaction_date: datetime = None,
                    tags: Sequence[str] = (), db_path: Optional[str] = None) -> None:
    """Insert or replace a document row (store-side seeding helper)."""
    now_ms = datetime_to_ms(datetime.now(timezone.utc))
    with get_db(db_path) as conn:
        conn.execute(
            "INSERT OR REPLACE INTO documents "
            "(id, title, extracted_text, category, vendor, amount, transaction_date, tags, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                document_id,
                title,
                extracted_text,
                category,
                vendor,
                amount,
                datetime_to_ms(transaction_date) if transaction_date else None,
                ",".join(tags),
                now_ms,
                now_ms,
            )
        )
        conn.commit()
    logger.debug(f"Inserted document {document_id}")


def list_document_ids(db_path: Optional[str] = None) -> List[str]:
    """List all document ids."""
    with get_db(db_path, read_only=True) as conn:
        return [row[0] for row in conn.execute("SELECT id FROM documents ORDER BY id").fetchall()]
