"""
Query intent classifier.
An ordered rule table; the first rule whose predicate matches decides the query type.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..core.schema import QueryType
from .lexicon import COMPLEX_KEYWORDS
from .structured import detect_time_range, detect_vendor

STRUCTURED_PATTERNS = [
    re.compile(r'how much.*(spent|spend|cost|paid|pay)'),
    re.compile(r'total.*\b(at|from|on|for)\s+\w+'),
    re.compile(r'\b(sum|total|average|avg|count)\s+(of|from|at)\b'),
    re.compile(r'\b(last|this|past)\s+(week|month|year)\b'),
    re.compile(r'\$\s*\d+'),
    re.compile(r'\b(more|less|over|under|above|below)\s+than\s+\$?\d+'),
    re.compile(r'\bbetween\s+\$?\d+\s+(and|to)\s+\$?\d+'),
]

COMPLEX_PATTERN = re.compile(r'\b(?:' + '|'.join(re.escape(k) for k in COMPLEX_KEYWORDS) + r')\b')


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    predicate: Callable[[str], bool]
    query_type: QueryType


def _matches_structured_pattern(lower: str) -> bool:
    return any(pattern.search(lower) for pattern in STRUCTURED_PATTERNS)


def _has_vendor_and_time_range(lower: str) -> bool:
    return detect_vendor(lower) is not None and detect_time_range(lower) is not None


def _has_complex_keyword(lower: str) -> bool:
    return COMPLEX_PATTERN.search(lower) is not None


DEFAULT_RULES: List[ClassificationRule] = [
    ClassificationRule("structured_pattern", _matches_structured_pattern, QueryType.STRUCTURED),
    ClassificationRule("vendor_and_time_range", _has_vendor_and_time_range, QueryType.STRUCTURED),
    ClassificationRule("complex_keyword", _has_complex_keyword, QueryType.COMPLEX),
    ClassificationRule("default", lambda lower: True, QueryType.SEMANTIC),
]


class QueryClassifier:
    """Classifies a sanitized query as STRUCTURED, SEMANTIC or COMPLEX."""

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def classify(self, query: str) -> QueryType:
        return self._first_match(query)[1]

    def explain(self, query: str) -> str:
        """Name of the rule that decided the classification."""
        return self._first_match(query)[0]

    def classify_with_rule(self, query: str) -> Tuple[str, QueryType]:
        return self._first_match(query)

    def _first_match(self, query: str) -> Tuple[str, QueryType]:
        lower = (query or '').lower().strip()
        for rule in self.rules:
            if rule.predicate(lower):
                return rule.name, rule.query_type
        return "default", QueryType.SEMANTIC
