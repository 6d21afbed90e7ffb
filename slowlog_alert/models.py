"""Data model for the slow-log pipeline."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RawLine:
    text: str      # line content without the trailing newline
    offset: int    # byte position of the line start in the current file


@dataclass(frozen=True)
class ParsedEntry:
    """One slow-query record extracted from the log.

    Fields without a matching source line keep their defaults.
    """

    query_time: float = 0.0
    lock_time: float = 0.0
    rows_sent: int = 0
    rows_examined: int = 0
    database: str = ""
    user: str = ""
    host: str = ""
    sql: str = ""
