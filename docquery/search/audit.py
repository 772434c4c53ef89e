"""
Append-only search audit trail.
Entries go into a bounded in-memory ring for inspection and to a durable sink.
A failing sink is logged and never fails the search that produced the entry.
"""

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional

from util.logging import audit_event, logger as structured_logger
from ..core.config import AUDIT_RING_SIZE
from ..core.schema import AuditEntry

logger = logging.getLogger(__name__)

AuditSink = Callable[[AuditEntry], None]


def log_sink(entry: AuditEntry) -> None:
    """Write the entry to the structured log, with the query text truncated."""
    audit_event(
        "search",
        {"status": entry.status.value, "success": entry.success},
        payload=entry.to_dict()
    )


class JsonlFileSink:
    """Appends one JSON object per line to a file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def __call__(self, entry: AuditEntry) -> None:
        line = json.dumps(entry.to_dict())
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")


class SearchAuditLog:
    """Ring buffer of the most recent audit entries plus durable sinks."""

    def __init__(self, sinks: Optional[List[AuditSink]] = None, ring_size: int = AUDIT_RING_SIZE):
        self._entries: Deque[AuditEntry] = deque(maxlen=ring_size)
        self._lock = threading.Lock()
        self.sinks = list(sinks) if sinks is not None else [log_sink]

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

        if entry.suspicious:
            structured_logger.log_suspicious_query(entry.query)

        for sink in self.sinks:
            try:
                sink(entry)
            except Exception as e:
                logger.error(f"Audit sink {getattr(sink, '__name__', type(sink).__name__)} failed: {e}")

    def recent(self, limit: int = 50) -> List[AuditEntry]:
        """Most recent entries, newest first."""
        with self._lock:
            entries = list(self._entries)
        return list(reversed(entries))[:max(0, limit)]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
