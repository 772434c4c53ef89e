"""
Input sanitizer: the first line of defense against injection.

Queries are trimmed and whitespace-collapsed, then rejected (never repaired) when
they are too long, contain a denylisted SQL/command fragment, or use a character
outside the allowed set. Suspicious DDL/DML phrasing is flagged for the audit trail
but still allowed, since it is harmless once every value is bound as a parameter.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List

from ..core.config import SEARCH_MAX_QUERY_LENGTH
from ..core.errors import SecurityError, ValidationError


@dataclass
class SanitizerStats:
    """Counters kept across the lifetime of a sanitizer."""
    accepted: int = 0
    rejected_empty: int = 0
    rejected_length: int = 0
    rejected_pattern: int = 0
    rejected_character: int = 0
    suspicious_flagged: int = 0


class InputSanitizer:
    """Validates raw query text before it reaches any other component."""

    # Fragments that terminate, comment out or call into SQL/stored procedures
    DENYLIST = ['--', ';', '/*', '*/', 'xp_', 'sp_', '\x00']

    # Letters, digits, whitespace and . , - ? ! ( ) ' " $
    ALLOWED_PATTERN = re.compile(r'^[a-zA-Z0-9\s.,\-?!()\'"$]+$')

    SUSPICIOUS_PHRASES = [
        'drop table',
        'delete from',
        'update set',
        'insert into',
        'create table',
        'alter table',
        'truncate',
    ]

    _WHITESPACE = re.compile(r'\s+')

    def __init__(self, max_length: int = SEARCH_MAX_QUERY_LENGTH):
        self.max_length = max_length
        self.stats = SanitizerStats()

    def sanitize(self, raw: str) -> str:
        """
        Normalize and validate a raw query.

        Args:
            raw: Query text exactly as the user typed it

        Returns:
            Trimmed query with runs of whitespace collapsed to one space

        Raises:
            ValidationError: Query is empty
            SecurityError: Query is too long, contains a denylisted fragment or a disallowed character
        """
        cleaned = self._WHITESPACE.sub(' ', raw or '').strip()

        if not cleaned:
            self.stats.rejected_empty += 1
            raise ValidationError("Search query cannot be empty")

        if len(cleaned) > self.max_length:
            self.stats.rejected_length += 1
            raise SecurityError(f"Query exceeds {self.max_length} characters ({len(cleaned)})")

        lowered = cleaned.lower()
        for fragment in self.DENYLIST:
            if fragment in lowered:
                self.stats.rejected_pattern += 1
                raise SecurityError(f"Query contains blocked pattern {fragment!r}")

        if not self.ALLOWED_PATTERN.match(cleaned):
            self.stats.rejected_character += 1
            raise SecurityError("Query contains disallowed characters")

        self.stats.accepted += 1
        return cleaned

    def is_suspicious(self, query: str) -> bool:
        """True when the query reads like DDL/DML. Audit visibility only."""
        lowered = (query or '').lower()
        suspicious = any(phrase in lowered for phrase in self.SUSPICIOUS_PHRASES)
        if suspicious:
            self.stats.suspicious_flagged += 1
        return suspicious

    def matched_denylist(self, query: str) -> List[str]:
        """List the denylisted fragments present in a query."""
        lowered = (query or '').lower()
        return [fragment for fragment in self.DENYLIST if fragment in lowered]

    def get_stats(self) -> Dict[str, Any]:
        """Get sanitizer statistics."""
        rejected = (self.stats.rejected_empty + self.stats.rejected_length
                    + self.stats.rejected_pattern + self.stats.rejected_character)
        return {
            "accepted": self.stats.accepted,
            "rejected": rejected,
            "rejected_empty": self.stats.rejected_empty,
            "rejected_length": self.stats.rejected_length,
            "rejected_pattern": self.stats.rejected_pattern,
            "rejected_character": self.stats.rejected_character,
            "suspicious_flagged": self.stats.suspicious_flagged,
            "max_length": self.max_length,
        }
