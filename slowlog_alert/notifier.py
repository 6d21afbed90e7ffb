"""Webhook delivery: direct POST and an optional queued dispatcher."""

import logging
import queue
import threading
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit, urlunsplit

import requests

from slowlog_alert.stats import Stats

logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    def notify(self, content: str) -> bool: ...


def build_payload(content: str) -> dict:
    """Markdown message body understood by WeCom-style group robots."""
    return {"msgtype": "markdown", "markdown": {"content": content}}


def mask_url(url: str) -> str:
    """Hide the query string, which usually carries the robot key."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "***", ""))


class WebhookNotifier:
    """Posts alert content to a webhook URL.

    Failures are logged and reported through the return value; nothing is raised.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        max_attempts: int = 1,
        session: requests.Session | None = None,
        stats: Stats | None = None,
    ):
        self._url = url
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._session = session or requests.Session()
        self._stats = stats

    def notify(self, content: str) -> bool:
        payload = build_payload(content)
        for attempt in range(1, self._max_attempts + 1):
            try:
                resp = self._session.post(
                    self._url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    timeout=self._timeout,
                )
                resp.raise_for_status()
            except requests.RequestException as e:
                logger.warning(
                    "Webhook notification failed (attempt %d/%d): %s",
                    attempt, self._max_attempts, e,
                )
                continue
            logger.info("Webhook notification sent")
            self._count("alerts_sent")
            return True

        self._count("alerts_failed")
        return False

    def close(self):
        self._session.close()

    def _count(self, name: str):
        if self._stats:
            self._stats.incr(name)


class QueuedNotifier:
    """Producer-consumer dispatcher that decouples log reading from webhook I/O.

    notify() enqueues and returns immediately; a consumer thread posts in
    order. A full queue is logged and counted as dropped. The consumer exits
    on the poison pill from close(), or once shutdown is set and the queue
    is empty.
    """

    def __init__(
        self,
        inner: Notifier,
        shutdown_event: threading.Event,
        maxsize: int = 100,
        stats: Stats | None = None,
    ):
        self._inner = inner
        self._shutdown = shutdown_event
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._stats = stats
        self._thread: threading.Thread | None = None

    def start(self):
        self._thread = threading.Thread(target=self._consumer_loop, name="notifier", daemon=True)
        self._thread.start()

    def notify(self, content: str) -> bool:
        try:
            self._queue.put_nowait(content)
        except queue.Full:
            if self._stats:
                self._stats.incr("alerts_dropped")
            logger.warning("Notification queue full (%d), dropping alert", self._queue.maxsize)
            return False
        return True

    def close(self, timeout: float = 10.0):
        """Send poison pill and wait for queued alerts to be delivered."""
        if not self._thread:
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Notification queue still full after %.1fs, not waiting for delivery", timeout)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Notifier thread did not finish, %d alert(s) undelivered", self._queue.qsize())
        self._thread = None

    def _consumer_loop(self):
        while True:
            try:
                content = self._queue.get(timeout=1.0)
            except queue.Empty:
                if self._shutdown.is_set():
                    return
                continue
            if content is None:
                return
            try:
                self._inner.notify(content)
            except Exception:
                if self._stats:
                    self._stats.incr("alerts_failed")
                logger.exception("Notifier raised, alert not delivered")
