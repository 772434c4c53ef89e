"""
Read-only execution gateway.

The only component that runs SQL for a search. It accepts SafeSQL only, opens the
store in SQLite read-only mode, enforces a fixed timeout and turns every store failure
into an opaque QueryExecutionError; engine diagnostics go to the server log only.
"""

import asyncio
import logging
import sqlite3
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import SQL_MAX_LIMIT, SQL_TIMEOUT_SEC
from ..core.db import get_db
from ..core.errors import QueryExecutionError, QueryTimeoutError, SecurityError
from ..core.schema import Document, datetime_to_ms
from .sql_validator import SafeSQL, SQLValidator

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

# SQLite calls the progress handler every N virtual machine instructions
_PROGRESS_STEPS = 1000


class ReadOnlyGateway:
    """Executes validated SELECT statements against a read-only connection."""

    def __init__(self, db_path: Optional[str] = None, validator: Optional[SQLValidator] = None,
                 timeout: float = SQL_TIMEOUT_SEC):
        self.db_path = db_path
        self.validator = validator or SQLValidator()
        self.timeout = timeout

    async def execute(self, safe_sql: SafeSQL, params: Sequence[Any] = ()) -> List[Row]:
        """
        Run a validated statement with bound parameters.

        Args:
            safe_sql: Output of SQLValidator.validate()
            params: Values bound to the statement's placeholders

        Returns:
            Result rows as dicts

        Raises:
            SecurityError: Statement was not validated
            QueryTimeoutError: Execution exceeded the timeout
            QueryExecutionError: The store failed
        """
        if not isinstance(safe_sql, SafeSQL):
            raise SecurityError("Gateway only executes validated SQL")

        deadline = time.monotonic() + self.timeout
        holder: Dict[str, sqlite3.Connection] = {}

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._run, safe_sql.sql, tuple(params), deadline, holder),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            # The worker thread notices the interrupt and closes its own connection
            conn = holder.get("conn")
            if conn is not None:
                conn.interrupt()
            logger.warning(f"Query timed out after {self.timeout}s")
            raise QueryTimeoutError(f"Query exceeded {self.timeout}s timeout")

    def _run(self, sql: str, params: tuple, deadline: float, holder: Dict[str, sqlite3.Connection]) -> List[Row]:
        try:
            with get_db(self.db_path, read_only=True, timeout=self.timeout) as conn:
                holder["conn"] = conn
                conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEPS)
                rows = conn.execute(sql, params).fetchall()
                return [dict(row) for row in rows]
        except sqlite3.OperationalError as e:
            if time.monotonic() > deadline:
                raise QueryTimeoutError(f"Query exceeded {self.timeout}s timeout")
            logger.error(f"Query execution failed: {e}")
            raise QueryExecutionError()
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {e}")
            raise QueryExecutionError()

    async def fetch_documents(self, document_ids: Sequence[str]) -> List[Document]:
        """Load documents by id, preserving the order of ``document_ids``. Missing ids are dropped."""
        if not document_ids:
            return []

        placeholders = ",".join("?" for _ in document_ids)
        safe_sql = self.validator.validate(f"SELECT * FROM documents WHERE id IN ({placeholders})")
        rows = await self.execute(safe_sql, list(document_ids))

        by_id = {row["id"]: Document.from_row(row) for row in rows}
        return [by_id[doc_id] for doc_id in document_ids if doc_id in by_id]

    async def search_documents(self, search_term: Optional[str] = None, category: Optional[str] = None,
                               after: Optional[datetime] = None, before: Optional[datetime] = None,
                               tags: Optional[Sequence[str]] = None,
                               limit: int = SQL_MAX_LIMIT) -> List[Document]:
        """Parameterized keyword search over title, text and tags."""
        sql = "SELECT * FROM documents WHERE 1=1"
        params: List[Any] = []

        if search_term:
            pattern = f"%{_escape_like(search_term)}%"
            sql += " AND (title LIKE ? ESCAPE '\\' OR extracted_text LIKE ? ESCAPE '\\' OR tags LIKE ? ESCAPE '\\')"
            params.extend([pattern, pattern, pattern])
        if category:
            sql += " AND category = ?"
            params.append(category)
        if after:
            sql += " AND transaction_date >= ?"
            params.append(datetime_to_ms(after))
        if before:
            sql += " AND transaction_date <= ?"
            params.append(datetime_to_ms(before))
        for tag in tags or []:
            sql += " AND (',' || tags || ',') LIKE ? ESCAPE '\\'"
            params.append(f"%,{_escape_like(tag)},%")

        sql += f" ORDER BY transaction_date DESC LIMIT {max(1, int(limit))}"

        rows = await self.execute(self.validator.validate(sql), params)
        return [Document.from_row(row) for row in rows]

    async def count_documents(self) -> int:
        rows = await self.execute(self.validator.validate("SELECT COUNT(*) AS total FROM documents"))
        return int(rows[0]["total"]) if rows else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
