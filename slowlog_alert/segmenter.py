"""Groups a flat line stream into slow-log entries."""

import enum
import logging
import re

from slowlog_alert.models import RawLine

logger = logging.getLogger(__name__)

TIME_HEADER_RE = re.compile(r"^#\s*Time:")
USER_HEADER_RE = re.compile(r"^#\s*User@Host:")
BOOKKEEPING_RE = re.compile(r"^\s*(?:SET\s+timestamp\s*=|use\s+)", re.IGNORECASE)


class BoundaryPolicy(enum.Enum):
    START = "start"   # a header line opens a new entry
    END = "end"       # a terminated statement closes the current entry


def is_statement_end(text: str) -> bool:
    stripped = text.rstrip()
    if not stripped.endswith(";") or stripped.startswith("#"):
        return False
    return not BOOKKEEPING_RE.match(stripped)


class EntrySegmenter:
    """Accumulates lines into the single pending entry and emits it on a boundary.

    Only one boundary policy is applied per instance. Blank lines are never
    content or boundaries. An entry growing past ``max_lines`` is discarded
    together with the rest of its lines up to the next boundary.
    """

    def __init__(self, policy: BoundaryPolicy = BoundaryPolicy.START, max_lines: int = 1000):
        self._policy = policy
        self._max_lines = max_lines
        self._pending: list[RawLine] = []
        self._discarding = False
        self._overflows = 0

    @property
    def policy(self) -> BoundaryPolicy:
        return self._policy

    @property
    def pending(self) -> list[RawLine]:
        return list(self._pending)

    @property
    def overflows(self) -> int:
        return self._overflows

    def reset(self):
        self._pending = []
        self._discarding = False

    def feed(self, line: RawLine) -> list[RawLine] | None:
        """Consume one line. Returns a completed entry when a boundary closes one."""
        if not line.text.strip():
            return None
        if self._policy is BoundaryPolicy.START:
            return self._feed_start(line)
        return self._feed_end(line)

    def flush(self) -> list[RawLine] | None:
        """Hand over whatever is pending (stream end or interruption)."""
        entry = self._pending
        self.reset()
        return entry or None

    def _is_start(self, text: str) -> bool:
        if TIME_HEADER_RE.match(text):
            return True
        if USER_HEADER_RE.match(text):
            # MySQL omits "# Time:" for queries logged within the same second
            return not (self._pending and TIME_HEADER_RE.match(self._pending[-1].text))
        return False

    def _feed_start(self, line: RawLine) -> list[RawLine] | None:
        if self._is_start(line.text):
            closed = self._pending
            self._pending = [line]
            self._discarding = False
            return closed or None
        self._append(line)
        return None

    def _feed_end(self, line: RawLine) -> list[RawLine] | None:
        self._append(line)
        if self._discarding:
            if is_statement_end(line.text):
                self._discarding = False
            return None
        if not is_statement_end(line.text):
            return None
        closed = self._pending
        self._pending = []
        return closed

    def _append(self, line: RawLine):
        if self._discarding:
            return
        if len(self._pending) >= self._max_lines:
            self._overflows += 1
            logger.warning(
                "Entry exceeded %d lines (started at offset %d), discarding it",
                self._max_lines, self._pending[0].offset,
            )
            self._pending = []
            self._discarding = True
            return
        self._pending.append(line)
