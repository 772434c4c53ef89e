"""
LLM adapter for complex queries, backed by a local Ollama model.

The model is optional: it may be missing, slow or fail. Callers check is_ready()
and treat LLMUnavailableError as a degradation, never as a failed search.
Generated SQL is untrusted text and must go through the SQL validator.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import ollama

from util.logging import logger as structured_logger
from ..core.config import LLM_RETRY_BACKOFF_SEC, OLLAMA_HOST, OLLAMA_MODEL
from ..core.errors import LLMUnavailableError
from ..core.schema import AnalysisResult, Document

logger = logging.getLogger(__name__)

# Leading lines of a model reply that may start the SQL body
_SQL_LINE_PREFIXES = ('SELECT', 'FROM', 'WHERE', 'ORDER', 'LIMIT', 'AND', 'OR', 'GROUP', 'JOIN')

MAX_ANALYSIS_DOCUMENTS = 10


class ILLMAdapter(ABC):
    """Abstract interface for the external LLM runtime."""

    @abstractmethod
    def is_ready(self) -> bool:
        """True when the model is loaded and calls are expected to succeed."""
        pass

    @abstractmethod
    async def generate_sql(self, query: str) -> str:
        """Translate a natural-language query into a single SELECT statement."""
        pass

    @abstractmethod
    async def analyze(self, query: str, documents: Sequence[Document]) -> AnalysisResult:
        """Answer a query using the retrieved documents as context."""
        pass

    async def refresh(self) -> bool:
        """Re-check readiness. Returns the new readiness."""
        return self.is_ready()


class DisabledLLMAdapter(ILLMAdapter):
    """Adapter used when LLM features are turned off. Never ready."""

    def is_ready(self) -> bool:
        return False

    async def generate_sql(self, query: str) -> str:
        raise LLMUnavailableError("LLM features are disabled")

    async def analyze(self, query: str, documents: Sequence[Document]) -> AnalysisResult:
        raise LLMUnavailableError("LLM features are disabled")


def build_sql_prompt(user_query: str) -> str:
    return f'''You are a SQL query generator for a personal document database.

**Database Schema:**
Table: documents
Columns:
- id (TEXT, PRIMARY KEY)
- title (TEXT)
- extracted_text (TEXT) - text extracted from the document
- category (TEXT) - one of: grocery, restaurant, medical, pharmacy, utilities, fuel, entertainment, retail, services, travel, financial
- vendor (TEXT)
- amount (REAL)
- transaction_date (INTEGER) - milliseconds since epoch
- tags (TEXT) - comma-separated tags
- created_at (INTEGER) - milliseconds since epoch

**Important Rules:**
1. ONLY generate a single SELECT query, no subqueries and no UNION
2. NEVER use INSERT, UPDATE, DELETE, DROP, or other modifying operations
3. Use LIKE for text searches with % wildcards
4. Always ORDER BY transaction_date DESC
5. Always include LIMIT (max 100)
6. Return ONLY the SQL query, no explanations or markdown

**User Query:** "{user_query}"

**SQL Query:**'''


def build_analysis_prompt(user_query: str, documents: Sequence[Document]) -> str:
    lines = []
    for doc in list(documents)[:MAX_ANALYSIS_DOCUMENTS]:
        date = doc.transaction_date.date().isoformat() if doc.transaction_date else "unknown date"
        amount = f"${doc.amount:.2f}" if doc.amount is not None else "no amount"
        snippet = doc.extracted_text[:300].replace("\n", " ")
        lines.append(f"- {doc.title} | {doc.vendor or 'unknown vendor'} | {doc.category or 'uncategorized'} | {amount} | {date}: {snippet}")

    context = "\n".join(lines) if lines else "(no documents found)"
    return f'''You are a helpful assistant answering questions about the user's personal documents.
Answer using only the documents below. If they do not contain the answer, say so.

**Documents:**
{context}

**Question:** {user_query}

**Answer:**'''


def extract_sql(response: str) -> str:
    """Pull the SQL statement out of a model reply (markdown fences, preamble, trailing ';')."""
    sql = (response or '').strip()

    if '```sql' in sql:
        start = sql.index('```sql') + 6
        end = sql.find('```', start)
        if end > start:
            sql = sql[start:end].strip()
    elif '```' in sql:
        start = sql.index('```') + 3
        end = sql.find('```', start)
        if end > start:
            sql = sql[start:end].strip()

    sql_lines = []
    for line in sql.split('\n'):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith('--'):
            continue
        # Skip explanation lines before the query starts
        if not sql_lines and not trimmed.upper().startswith(_SQL_LINE_PREFIXES):
            continue
        sql_lines.append(trimmed)

    sql = ' '.join(sql_lines).strip()
    while sql.endswith(';'):
        sql = sql[:-1].rstrip()
    return sql


def calculate_confidence(response_content: str) -> float:
    """
    Simple confidence heuristic based on response characteristics.
    Higher scores for longer, more specific answers.
    """
    if not response_content:
        return 0.0

    confidence = 0.5  # Base confidence

    # Longer responses generally indicate more confident answers
    confidence += min(len(response_content) / 500, 0.3)

    # Responses with specific details score higher
    if any(keyword in response_content.lower() for keyword in ['because', 'therefore', 'specifically', 'according to', 'total']):
        confidence += 0.1

    return min(confidence, 0.9)


class OllamaAdapter(ILLMAdapter):
    """Adapter that talks to a local Ollama server.

    A failed request marks the model unavailable for retry_backoff seconds; after that
    the next call tries again, so a restarted server is picked up without a refresh().
    """

    def __init__(self, model_name: str = OLLAMA_MODEL, host: Optional[str] = OLLAMA_HOST,
                 client: Optional[ollama.AsyncClient] = None,
                 retry_backoff: float = LLM_RETRY_BACKOFF_SEC):
        self.model_name = model_name
        self.client = client or ollama.AsyncClient(host=host)
        self.retry_backoff = retry_backoff
        self._ready = False
        self._unavailable_until = 0.0

    def is_ready(self) -> bool:
        return self._ready and time.monotonic() >= self._unavailable_until

    async def refresh(self) -> bool:
        """Check if Ollama is available and the model is pulled."""
        try:
            models = await self.client.list()
            names: List[str] = []
            for model in models.get('models', []) or []:
                name = model.get('model') or model.get('name')
                if name:
                    names.append(name)
            self._ready = self.model_name in names
            self._unavailable_until = 0.0
        except Exception as e:
            logger.warning(f"Ollama health check failed: {e}")
            self._ready = False
        return self._ready

    async def _chat(self, call: str, prompt: str, temperature: float) -> str:
        if not self.is_ready():
            raise LLMUnavailableError(f"Model {self.model_name} is not ready")

        start_time = time.time()
        try:
            response = await self.client.chat(
                model=self.model_name,
                messages=[{'role': 'user', 'content': prompt}],
                options={'temperature': temperature}
            )
        except ollama.ResponseError as e:
            structured_logger.log_llm_call(call, start_time, time.time(), status="failed", details={"error": str(e)})
            raise LLMUnavailableError(f"Ollama model error: {e}")
        except Exception as e:
            structured_logger.log_llm_call(call, start_time, time.time(), status="failed", details={"error": str(e)})
            self._unavailable_until = time.monotonic() + self.retry_backoff
            raise LLMUnavailableError(f"Ollama request failed: {e}")

        content = response['message']['content'] or ''
        structured_logger.log_llm_call(call, start_time, time.time(), details={"response_length": len(content)})
        return content

    async def generate_sql(self, query: str) -> str:
        content = await self._chat("generate_sql", build_sql_prompt(query), temperature=0.0)
        sql = extract_sql(content)
        if not sql:
            raise LLMUnavailableError("Model returned no SQL")
        return sql

    async def analyze(self, query: str, documents: Sequence[Document]) -> AnalysisResult:
        content = (await self._chat("analyze", build_analysis_prompt(query, documents), temperature=0.3)).strip()
        if not content:
            raise LLMUnavailableError("Model returned an empty analysis")
        return AnalysisResult(answer=content, confidence=calculate_confidence(content))
