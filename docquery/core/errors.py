"""
Error taxonomy for the query engine.

Every error carries a caller-safe ``public_message``; the constructor message may
hold internal detail and is only written to server-side logs and the audit trail.
"""

from typing import Optional


class SearchError(Exception):
    """Base class for all query engine errors."""

    retryable = False
    public_message = "Search failed"

    def __init__(self, message: str, public_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if public_message is not None:
            self.public_message = public_message


class ValidationError(SearchError):
    """Empty or malformed input. User-correctable."""

    def __init__(self, message: str):
        super().__init__(message, public_message=message)


class SecurityError(SearchError):
    """Denylisted pattern, disallowed character or unsafe SQL shape."""

    def __init__(self, message: str):
        super().__init__(message, public_message="Query rejected for security reasons")


class RateLimitError(SearchError):
    """Quota exceeded. Carries retry guidance in seconds."""

    retryable = True

    def __init__(self, message: str, retry_after: float = 60.0):
        super().__init__(message, public_message=message)
        self.retry_after = retry_after


class QueryTimeoutError(SearchError, TimeoutError):
    """Execution exceeded its time budget."""

    retryable = True

    def __init__(self, message: str):
        super().__init__(message, public_message="Search took too long, please try again")


class QueryExecutionError(SearchError):
    """Opaque wrapper over store failures; never exposes engine diagnostics."""

    retryable = True

    def __init__(self, message: str = "Failed to execute search query"):
        super().__init__(message, public_message="Failed to execute search query")


class LLMUnavailableError(SearchError):
    """LLM adapter not ready or failed. Never fatal to a search."""

    retryable = True

    def __init__(self, message: str):
        super().__init__(message, public_message="Analysis is currently unavailable")
