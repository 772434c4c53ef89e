"""
SQL validator for statements the engine did not build itself (LLM-generated SQL)
and for its own builder output.

Only a single read-only SELECT over allow-listed tables passes. The result is a SafeSQL
value, which the read-only gateway requires and which only this module can create.
"""

import re
from typing import List

from ..core.config import SQL_MAX_LIMIT
from ..core.errors import SecurityError

_VALIDATOR_TOKEN = object()

BLOCKED_KEYWORDS = [
    'INSERT', 'UPDATE', 'DELETE', 'DROP', 'ALTER', 'CREATE', 'TRUNCATE', 'REPLACE',
    'EXEC', 'EXECUTE', 'PRAGMA', 'ATTACH', 'DETACH', 'VACUUM', 'SAVEPOINT',
    'RELEASE', 'ROLLBACK', 'COMMIT', 'BEGIN',
]

ALLOWED_TABLES = frozenset(['documents', 'user_settings'])

_BLOCKED_RE = re.compile(r'\b(' + '|'.join(BLOCKED_KEYWORDS) + r')\b', re.IGNORECASE)
_SELECT_RE = re.compile(r'\bSELECT\b', re.IGNORECASE)
_UNION_RE = re.compile(r'\bUNION\b', re.IGNORECASE)
_FROM_CLAUSE_RE = re.compile(
    r'\bFROM\s+(.+?)(?=\bWHERE\b|\bGROUP\b|\bORDER\b|\bLIMIT\b|\bHAVING\b'
    r'|\b(?:NATURAL|INNER|LEFT|RIGHT|FULL|CROSS|OUTER)\b|\bJOIN\b|$)',
    re.IGNORECASE
)
_JOIN_RE = re.compile(r'\bJOIN\s+(\S+)', re.IGNORECASE)
_LIMIT_KEYWORD_RE = re.compile(r'\bLIMIT\b', re.IGNORECASE)
_LIMIT_RE = re.compile(r'\bLIMIT\s+(\d+)(\s+OFFSET\s+\d+)?\s*$', re.IGNORECASE)
_WHITESPACE_RE = re.compile(r'\s+')
_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")
_QUOTED_IDENTIFIER_RE = re.compile(r'"[^"]*"|`[^`]*`|\[[^\]]*\]')
_WORD_RE = re.compile(r'^\w+$')


class SafeSQL:
    """A SELECT statement that passed validation. Only SQLValidator can construct one."""

    __slots__ = ('_sql',)

    def __init__(self, sql: str, _token: object = None):
        if _token is not _VALIDATOR_TOKEN:
            raise TypeError("SafeSQL can only be created by SQLValidator.validate()")
        self._sql = sql

    @property
    def sql(self) -> str:
        return self._sql

    def __str__(self) -> str:
        return self._sql

    def __repr__(self) -> str:
        return f"SafeSQL({self._sql!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, SafeSQL) and other._sql == self._sql

    def __hash__(self) -> int:
        return hash(self._sql)


def _strip_identifier(name: str) -> str:
    return name.strip().strip('"`[]').lower()


def _mask_quoted(statement: str) -> str:
    """
    Hide string literals and quoted identifiers from keyword and table analysis.

    Length is preserved so offsets still apply to the original statement. A literal
    becomes underscores, which is neither a number nor an allowed table name; a quoted
    identifier keeps its name when it is a plain word and is otherwise underscores too.
    """
    def literal(match):
        return "_" * len(match.group(0))

    def identifier(match):
        name = match.group(0)[1:-1]
        if _WORD_RE.match(name):
            return " " + name + " "
        return "_" * len(match.group(0))

    return _QUOTED_IDENTIFIER_RE.sub(identifier, _STRING_LITERAL_RE.sub(literal, statement))


class SQLValidator:
    """Validates SQL text and caps its result size."""

    def __init__(self, allowed_tables=ALLOWED_TABLES, max_limit: int = SQL_MAX_LIMIT):
        self.allowed_tables = frozenset(t.lower() for t in allowed_tables)
        self.max_limit = max_limit

    def validate(self, sql: str) -> SafeSQL:
        """
        Validate a statement and return it as SafeSQL.

        A missing LIMIT is appended and a larger one is rewritten to the cap.

        Raises:
            SecurityError: The statement is not a single read-only SELECT over allowed tables
        """
        statement = _WHITESPACE_RE.sub(' ', sql or '').strip()
        if not statement:
            raise SecurityError("Empty SQL statement")

        upper = statement.upper()

        if not upper.startswith('SELECT '):
            raise SecurityError("Only SELECT statements are allowed")

        if ';' in statement:
            raise SecurityError("Multiple statements are not allowed")

        if '--' in statement or '/*' in statement:
            raise SecurityError("SQL comments are not allowed")

        blocked = _BLOCKED_RE.search(statement)
        if blocked:
            raise SecurityError(f"Blocked SQL keyword: {blocked.group(1)}")

        if len(_SELECT_RE.findall(statement)) > 1:
            raise SecurityError("Subqueries are not allowed")

        if _UNION_RE.search(statement):
            raise SecurityError("UNION is not allowed")

        # Structure is read with literals and quoted names masked out
        masked = _mask_quoted(statement)
        if any(quote in masked for quote in ('\'', '"', '`')):
            raise SecurityError("Unbalanced quotes")

        tables = self._tables(masked)
        if not tables:
            raise SecurityError("Statement does not read from a table")
        for table in tables:
            if table not in self.allowed_tables:
                raise SecurityError(f"Table not allowed: {table}")

        return SafeSQL(self._enforce_limit(statement, masked), _token=_VALIDATOR_TOKEN)

    def referenced_tables(self, sql: str) -> List[str]:
        """Tables named after every FROM (including comma joins) and JOIN."""
        statement = _WHITESPACE_RE.sub(' ', sql or '').strip()
        return self._tables(_mask_quoted(statement))

    def _tables(self, masked: str) -> List[str]:
        tables = []

        for from_match in _FROM_CLAUSE_RE.finditer(masked):
            for part in from_match.group(1).split(','):
                words = part.split()
                if words:
                    tables.append(_strip_identifier(words[0]))
                else:
                    tables.append('')

        for join_match in _JOIN_RE.finditer(masked):
            tables.append(_strip_identifier(join_match.group(1)))

        return tables

    def _enforce_limit(self, statement: str, masked: str) -> str:
        if not _LIMIT_KEYWORD_RE.search(masked):
            return f"{statement} LIMIT {self.max_limit}"

        limit_match = _LIMIT_RE.search(masked)
        if limit_match is None or len(_LIMIT_KEYWORD_RE.findall(masked)) > 1:
            raise SecurityError("LIMIT must be a single literal at the end of the statement")

        if int(limit_match.group(1)) <= self.max_limit:
            return statement

        start, end = limit_match.span(1)
        return statement[:start] + str(self.max_limit) + statement[end:]

    def looks_like_valid_select(self, sql: str) -> bool:
        """Quick shape check used before attempting full validation."""
        upper = _WHITESPACE_RE.sub(' ', sql or '').strip().upper()
        return upper.startswith('SELECT') and ' FROM ' in f" {upper} " and ';' not in upper
