"""Thread-safe counters for the watcher's shutdown summary."""

import threading


class Stats:
    def __init__(self):
        self._lock = threading.Lock()
        self._counts = {
            "entries": 0,
            "slow_queries": 0,
            "alerts_sent": 0,
            "alerts_failed": 0,
            "alerts_dropped": 0,
            "restarts": 0,
        }

    def incr(self, name: str, amount: int = 1):
        with self._lock:
            self._counts[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> dict:
        with self._lock:
            return dict(self._counts)
