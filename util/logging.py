"""
Structured logging for the query engine.
Search, security, vector and LLM events share one "Operation/Status/Details" line format.
"""

import logging
from typing import Any, Dict, List

class StructuredLogger:
    """Structured logger for search, security, vectorization and audit operations."""

    def __init__(self, name: str = "docquery"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_search(self, query: str, method: str, result_count: int, duration_ms: float,
                   success: bool = True, error: str = None):
        """Log a completed or failed search request."""
        details = {
            "query": _truncate(query, 50),
            "method": method,
            "result_count": result_count,
            "duration_ms": round(duration_ms, 2)
        }
        if error:
            details["error"] = _truncate(error, 100)

        self.log_operation("search", "success" if success else "failed", details)

    def log_security_violation(self, query: str, violation_type: str, details: str):
        """Log a security violation. Always emitted at WARNING level."""
        log_details = {
            "violation_type": violation_type,
            "query": _truncate(query, 50),
            "details": _truncate(details, 100)
        }
        self.log_operation("security.violation", "rejected", log_details, level=logging.WARNING)

    def log_suspicious_query(self, query: str):
        """Log a query that passed sanitization but looks like SQL."""
        self.log_operation("security.suspicious", "flagged", {"query": _truncate(query, 50)},
                           level=logging.WARNING)

    def log_rate_limited(self, window: str, retry_after: float):
        """Log a rate limit rejection (not a security event)."""
        self.log_operation("rate_limit", "exceeded", {"window": window, "retry_after": round(retry_after, 1)})

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_vectorization_progress(self, processed: int, total: int, vectorized: int, skipped: int):
        """Log batch vectorization progress."""
        log_details = {
            "processed": processed,
            "total": total,
            "vectorized": vectorized,
            "skipped": skipped
        }
        self.log_operation("vector.vectorize_all", "progress", log_details)

    def log_llm_call(self, call: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log an LLM adapter call with its duration."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)

        self.log_operation(f"llm.{call}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def _truncate(value: str, limit: int) -> str:
    if value is None:
        return ""
    return value[:limit] + "..." if len(value) > limit else value


# Global logger instance
logger = StructuredLogger()


# General audit event function
def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    # Auto-sanitize sensitive fields if not specified
    if sensitive_fields is None:
        sensitive_fields = ['extracted_text', 'content', 'secret', 'password', 'token']

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(f"audit.{event_type}", "recorded", log_details)


# Payload sanitization utility
def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = ['extracted_text', 'content', 'secret', 'password', 'token']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
