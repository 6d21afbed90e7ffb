"""Field extractors for MySQL slow-query log entries.

Each extractor scans every line of an entry for its own marker and returns the
first match (or None). Extractors are independent: one failing never stops the
others.

Example entry:
    # Time: 2024-01-01T10:00:00
    # User@Host: app[app] @ 10.0.0.5
    # Query_time: 1.5  Lock_time: 0.1  Rows_sent: 3  Rows_examined: 500
    # Schema: orders
    SELECT * FROM orders;
"""

import logging
import re
from typing import Iterable

from slowlog_alert.models import ParsedEntry, RawLine

logger = logging.getLogger(__name__)

TIMING_RE = re.compile(
    r"Query_time:\s*(\d+(?:\.\d+)?)\s+"
    r"Lock_time:\s*(\d+(?:\.\d+)?)\s+"
    r"Rows_sent:\s*(\d+)\s+"
    r"Rows_examined:\s*(\d+)"
)
IDENTITY_RE = re.compile(
    r"^#\s*User@Host:\s*([^\[]*?)\[[^\]]*\]\s*@\s*([^\s\[]*)\s*(?:\[([^\]]*)\])?"
)
SCHEMA_HEADER_RE = re.compile(r"^#.*\b(?:Schema|Database):[ \t]*(?![\w.]+:)([^\s;]+)")
USE_RE = re.compile(r"^use\s+`?([^`;\s]+)`?\s*;", re.IGNORECASE)

STATEMENT_VERBS = (
    "SELECT", "INSERT", "UPDATE", "DELETE", "REPLACE", "WITH",
    "CREATE", "ALTER", "DROP", "TRUNCATE", "CALL", "LOAD",
)
STATEMENT_RE = re.compile(
    r"^\s*(?:%s)\b" % "|".join(STATEMENT_VERBS), re.IGNORECASE
)

_parse_errors = 0


def get_parse_error_count() -> int:
    return _parse_errors


def _texts(lines: Iterable) -> list[str]:
    return [line.text if isinstance(line, RawLine) else line for line in lines]


def extract_timing(lines) -> tuple[float, float, int, int] | None:
    """Return (query_time, lock_time, rows_sent, rows_examined) from the first timing line."""
    for text in _texts(lines):
        m = TIMING_RE.search(text)
        if m:
            try:
                return float(m.group(1)), float(m.group(2)), int(m.group(3)), int(m.group(4))
            except ValueError:
                logger.debug("Bad timing values in %r", text[:200])
                return None
    return None


def extract_identity(lines) -> tuple[str, str] | None:
    """Return (user, host). Host falls back to the bracketed IP when the hostname is empty."""
    for text in _texts(lines):
        m = IDENTITY_RE.match(text)
        if m:
            user, hostname, ip = m.group(1), m.group(2), m.group(3)
            return user.strip(), hostname or (ip or "").strip()
    return None


def extract_schema(lines) -> str | None:
    for text in _texts(lines):
        m = SCHEMA_HEADER_RE.match(text) or USE_RE.match(text)
        if m:
            return m.group(1)
    return None


def extract_statement(lines) -> str | None:
    """Return the first line that looks like an SQL statement, stripped."""
    for text in _texts(lines):
        if STATEMENT_RE.match(text):
            return text.strip()
    return None


def parse_entry(lines) -> ParsedEntry | None:
    """Build a ParsedEntry from an entry's lines.

    Returns None when the entry carries no timing line (server banners,
    half-written headers). Every other missing field keeps its default.
    """
    global _parse_errors
    timing = extract_timing(lines)
    if timing is None:
        _parse_errors += 1
        logger.debug("Skipping entry without timing line (%d lines)", len(lines))
        return None

    query_time, lock_time, rows_sent, rows_examined = timing
    user, host = extract_identity(lines) or ("", "")
    return ParsedEntry(
        query_time=query_time,
        lock_time=lock_time,
        rows_sent=rows_sent,
        rows_examined=rows_examined,
        database=extract_schema(lines) or "",
        user=user,
        host=host,
        sql=extract_statement(lines) or "",
    )
