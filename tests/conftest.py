"""Shared pytest fixtures for the slowlog-alert test suite."""

import pytest

from slowlog_alert.config import ENV_VARS
from slowlog_alert.models import RawLine

SCENARIO_LINES = [
    "# Time: 2024-01-01T10:00:00",
    "# User@Host: app[app] @ 10.0.0.5",
    "# Query_time: 1.5  Lock_time: 0.1  Rows_sent: 3  Rows_examined: 500",
    "# Schema: orders",
    "SELECT * FROM orders;",
]

MYSQL8_LINES = [
    "# Time: 2024-03-02T14:21:07.123456Z",
    "# User@Host: root[root] @ localhost [127.0.0.1]  Id:    42",
    "# Query_time: 3.000215  Lock_time: 0.000004 Rows_sent: 1  Rows_examined: 120000",
    "use shop;",
    "SET timestamp=1709389267;",
    "select sleep(3), count(*) from items;",
]


class RecordingNotifier:
    """Notifier double that records every alert it receives."""

    def __init__(self, ok: bool = True):
        self.sent: list[str] = []
        self._ok = ok

    def notify(self, content: str) -> bool:
        self.sent.append(content)
        return self._ok


def to_raw(texts: list[str]) -> list[RawLine]:
    lines = []
    offset = 0
    for text in texts:
        lines.append(RawLine(text, offset))
        offset += len(text.encode("utf-8")) + 1
    return lines


@pytest.fixture()
def scenario_lines() -> list[str]:
    return list(SCENARIO_LINES)


@pytest.fixture()
def mysql8_lines() -> list[str]:
    return list(MYSQL8_LINES)


@pytest.fixture()
def make_raw():
    """Return a helper turning text lines into RawLine values with byte offsets."""
    return to_raw


@pytest.fixture()
def recorder() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def clean_env(monkeypatch):
    """Remove every config env var so host settings never leak into tests."""
    for env_name in ENV_VARS.values():
        monkeypatch.delenv(env_name, raising=False)
