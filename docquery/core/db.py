"""
SQLite connection handling for the document store.

The query engine itself only reads ``documents`` and owns ``document_embeddings``;
init_db() is the store-side bootstrap used by scripts and tests.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional
from .config import DB_PATH, ensure_db_directory


@contextmanager
def get_db(db_path: Optional[str] = None, read_only: bool = False,
           timeout: float = 5.0) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection. Read-only connections use URI mode=ro."""
    path = db_path or DB_PATH
    if read_only:
        uri = Path(path).resolve().as_uri() + "?mode=ro"
        conn = sqlite3.connect(uri, uri=True, timeout=timeout)
    else:
        conn = sqlite3.connect(path, timeout=timeout)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    ensure_db_directory(db_path)
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # WAL lets searches read while a vectorization job writes
        cursor.execute("PRAGMA journal_mode=WAL")

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                extracted_text TEXT NOT NULL DEFAULT '',
                category TEXT,
                vendor TEXT,
                amount REAL,
                transaction_date INTEGER,  -- ms since epoch
                tags TEXT DEFAULT '',      -- comma-separated
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS document_embeddings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id TEXT NOT NULL UNIQUE,
                vector BLOB NOT NULL,      -- little-endian float32 x 384
                content_hash TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_documents_transaction_date ON documents(transaction_date DESC)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_documents_vendor ON documents(vendor)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_document_embeddings_doc_id ON document_embeddings(document_id)')

        conn.commit()


def health_check(db_path: Optional[str] = None):
    """Check database health."""
    try:
        with get_db(db_path, read_only=True) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]

            required_tables = ['documents', 'document_embeddings']
            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
