"""Slow-query threshold check and alert rendering."""

import logging

from slowlog_alert.models import ParsedEntry
from slowlog_alert.notifier import Notifier
from slowlog_alert.stats import Stats

logger = logging.getLogger(__name__)

ALERT_TITLE = "Slow query alert"
TEST_ALERT_TITLE = "Slow query alert (test)"

ALERT_TEMPLATE = (
    '<font color="warning">**{title}**</font>\n'
    '> **Query time:** <font color="warning">{query_time:.2f} s</font>\n'
    '> **Lock time:** <font color="comment">{lock_time:.2f} s</font>\n'
    '> **Database:** <font color="comment">{database}</font>\n'
    '> **User:** <font color="comment">{user}</font>\n'
    '> **Host:** <font color="comment">{host}</font>\n'
    '> **SQL:** <font color="comment">{sql}</font>\n'
    '> **Rows sent:** <font color="comment">{rows_sent}</font>\n'
    '> **Rows examined:** <font color="comment">{rows_examined}</font>\n'
)

SAMPLE_ENTRY = ParsedEntry(
    query_time=0.5,
    lock_time=0.5,
    rows_sent=1,
    rows_examined=10000,
    database="database",
    user="user",
    host="localhost",
    sql="select * from table",
)


def render_alert(entry: ParsedEntry, title: str = ALERT_TITLE) -> str:
    return ALERT_TEMPLATE.format(
        title=title,
        query_time=entry.query_time,
        lock_time=entry.lock_time,
        database=entry.database,
        user=entry.user,
        host=entry.host,
        sql=entry.sql,
        rows_sent=entry.rows_sent,
        rows_examined=entry.rows_examined,
    )


class SlowQueryEvaluator:
    """Sends exactly one notification for each entry at or above the threshold."""

    def __init__(self, threshold: float, notifier: Notifier, stats: Stats | None = None):
        self._threshold = threshold
        self._notifier = notifier
        self._stats = stats

    @property
    def threshold(self) -> float:
        return self._threshold

    def is_slow(self, entry: ParsedEntry) -> bool:
        return entry.query_time >= self._threshold

    def evaluate(self, entry: ParsedEntry) -> bool:
        """Returns True when the entry was slow and an alert was dispatched."""
        if not self.is_slow(entry):
            return False
        if self._stats:
            self._stats.incr("slow_queries")
        logger.info(
            "Slow query: %.3fs (threshold %.3fs) db=%s user=%s",
            entry.query_time, self._threshold, entry.database or "-", entry.user or "-",
        )
        self._notifier.notify(render_alert(entry))
        return True


def send_test_alert(notifier: Notifier) -> bool:
    """Post the fixed sample alert."""
    logger.info("Sending test webhook request...")
    return notifier.notify(render_alert(SAMPLE_ENTRY, title=TEST_ALERT_TITLE))
