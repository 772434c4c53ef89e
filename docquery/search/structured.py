"""
Structured query builder.

Extracts a filter set (vendor, category, date range, amount bounds, aggregation flags)
from a sanitized query with independent best-effort extractors, and turns it into
parameterized SQL over the documents table. Every value is bound, never interpolated.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from ..core.config import SQL_MAX_LIMIT
from ..core.schema import Aggregation, Document, FilterSet, ParameterizedSQL, datetime_to_ms
from .lexicon import CATEGORIES, VENDOR_ALIASES, VENDOR_STOP_WORDS

MONTHS = [
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December'
]

_MIN_AMOUNT_RE = re.compile(r'\b(?:over|above|more than)\s+\$?(\d+(?:\.\d{1,2})?)')
_MAX_AMOUNT_RE = re.compile(r'\b(?:under|below|less than)\s+\$?(\d+(?:\.\d{1,2})?)')
_YEAR_RE = re.compile(r'\b(?:in|for|from|during)\s+(20\d{2})\b')

_VENDOR_ALIAS_RES = [(re.compile(r'\b' + re.escape(alias) + r'\b'), name) for alias, name in VENDOR_ALIASES.items()]
_PREPOSITION_RE = re.compile(
    r"\b(?:at|from|on)\s+([a-z][a-z0-9'&\s]*?)(?=\s+(?:" + '|'.join(VENDOR_STOP_WORDS) + r")\b|$)"
)
_VENDOR_TEXT_RE = re.compile(r"[^a-z0-9'&\s]")

# A free-form phrase starting with one of these is a time or document-type phrase, not a vendor
_NOT_VENDOR_WORDS = frozenset(
    VENDOR_STOP_WORDS
    + [m.lower() for m in MONTHS]
    + CATEGORIES
    + ['the', 'my', 'a', 'an', 'today', 'yesterday', 'week', 'month', 'year', 'all', 'any']
)

VENDOR_MIN_LENGTH = 2
VENDOR_MAX_LENGTH = 30


@dataclass
class DateRange:
    start: datetime
    end: datetime
    label: str


def _format_date(value: datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def format_date_range(start: Optional[datetime], end: Optional[datetime]) -> str:
    """Format a date range for display."""
    if start is None and end is None:
        return ''

    if start is not None and end is not None:
        if start.month == end.month and start.year == end.year:
            return f"{MONTHS[start.month - 1]} {start.year}"
        return f"{_format_date(start)} - {_format_date(end)}"

    if start is not None:
        return f"since {_format_date(start)}"
    return f"until {_format_date(end)}"


def detect_vendor(query: str) -> Optional[str]:
    """Detect a vendor from the alias table, else from the phrase after at/from/on."""
    lower = (query or '').lower()

    for pattern, name in _VENDOR_ALIAS_RES:
        if pattern.search(lower):
            return name

    text = ' '.join(_VENDOR_TEXT_RE.sub(' ', lower).split())
    for match in _PREPOSITION_RE.finditer(text):
        phrase = match.group(1).strip()
        if not phrase or phrase.split()[0] in _NOT_VENDOR_WORDS:
            continue
        if VENDOR_MIN_LENGTH <= len(phrase) <= VENDOR_MAX_LENGTH:
            return phrase.title()

    return None


def detect_category(query: str) -> Optional[str]:
    lower = (query or '').lower()
    for category in CATEGORIES:
        if category in lower:
            return category
    return None


def detect_time_range(query: str, now: Optional[datetime] = None) -> Optional[DateRange]:
    """
    Detect a date range. Exactly one rule applies, the first that matches.

    Trailing windows (last/past week, month, year) end at ``now``; "this" windows start
    at the calendar boundary; an explicit year covers the whole year.
    """
    lower = (query or '').lower()
    now = now or datetime.now().astimezone()

    trailing = [
        (r'\b(?:last|past)\s+week\b', 7),
        (r'\b(?:last|past)\s+month\b', 30),
        (r'\b(?:last|past)\s+year\b', 365),
    ]
    for pattern, days in trailing:
        if re.search(pattern, lower):
            return DateRange(now - timedelta(days=days), now, f"last {days} days")

    if re.search(r'\bthis\s+week\b', lower):
        monday = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
        return DateRange(monday, now, f"{_format_date(monday)} - {_format_date(now)}")

    if re.search(r'\bthis\s+month\b', lower):
        first = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return DateRange(first, now, format_date_range(first, now))

    if re.search(r'\bthis\s+year\b', lower):
        jan_first = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
        return DateRange(jan_first, now, str(now.year))

    year_match = _YEAR_RE.search(lower)
    if year_match:
        year = int(year_match.group(1))
        start = now.replace(year=year, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
        end = now.replace(year=year, month=12, day=31, hour=23, minute=59, second=59, microsecond=999000)
        return DateRange(start, end, str(year))

    return None


def detect_amounts(query: str) -> Tuple[Optional[float], Optional[float]]:
    """Return (min_amount, max_amount)."""
    lower = (query or '').lower()
    min_match = _MIN_AMOUNT_RE.search(lower)
    max_match = _MAX_AMOUNT_RE.search(lower)
    return (
        float(min_match.group(1)) if min_match else None,
        float(max_match.group(1)) if max_match else None,
    )


class StructuredQueryBuilder:
    """Turns a structured query into a FilterSet and parameterized SQL."""

    def __init__(self, max_limit: int = SQL_MAX_LIMIT):
        self.max_limit = max_limit

    def extract_filters(self, query: str, now: Optional[datetime] = None) -> FilterSet:
        lower = (query or '').lower()
        min_amount, max_amount = detect_amounts(lower)
        date_range = detect_time_range(lower, now)

        return FilterSet(
            vendor=detect_vendor(lower),
            category=detect_category(lower),
            start_date=date_range.start if date_range else None,
            end_date=date_range.end if date_range else None,
            date_range_label=date_range.label if date_range else None,
            min_amount=min_amount,
            max_amount=max_amount,
            want_sum='total' in lower or 'how much' in lower or bool(re.search(r'\bsum\b', lower)),
            want_average='average' in lower or bool(re.search(r'\bavg\b', lower)),
            want_count='how many' in lower or bool(re.search(r'\bcount\b', lower)),
        )

    def to_sql(self, filters: FilterSet) -> ParameterizedSQL:
        sql = "SELECT * FROM documents WHERE 1=1"
        params: List[object] = []

        if filters.vendor:
            sql += " AND vendor LIKE ?"
            params.append(f"%{filters.vendor}%")
        if filters.category:
            sql += " AND category = ?"
            params.append(filters.category)
        if filters.start_date:
            sql += " AND transaction_date >= ?"
            params.append(datetime_to_ms(filters.start_date))
        if filters.end_date:
            sql += " AND transaction_date <= ?"
            params.append(datetime_to_ms(filters.end_date))
        if filters.min_amount is not None:
            sql += " AND amount >= ?"
            params.append(filters.min_amount)
        if filters.max_amount is not None:
            sql += " AND amount <= ?"
            params.append(filters.max_amount)

        sql += f" ORDER BY transaction_date DESC LIMIT {self.max_limit}"
        return ParameterizedSQL(sql=sql, params=tuple(params))

    def build(self, query: str, now: Optional[datetime] = None) -> Tuple[FilterSet, ParameterizedSQL]:
        """Extract filters and build the SQL that applies them."""
        filters = self.extract_filters(query, now)
        return filters, self.to_sql(filters)

    def aggregate(self, filters: FilterSet, documents: Sequence[Document], query: str = '') -> Optional[Aggregation]:
        """Sum/average/count the returned rows when the query asks for it. Null amounts count as 0."""
        lower = (query or '').lower()
        if not (filters.has_aggregation or 'how much' in lower or 'total' in lower):
            return None

        total = round(sum(doc.amount or 0.0 for doc in documents), 2)
        count = len(documents)
        return Aggregation(
            total_amount=total,
            average_amount=round(total / count, 2) if count else None,
            document_count=count,
            vendor=filters.vendor,
            category=filters.category,
            date_range=filters.date_range_label or format_date_range(filters.start_date, filters.end_date) or None,
        )
