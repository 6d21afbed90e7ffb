#!/usr/bin/env python3
"""Slow Query Alert: entry point."""

import logging
import signal
import sys
import threading

from slowlog_alert.alerting import SlowQueryEvaluator, send_test_alert
from slowlog_alert.config import ConfigError, build_cli_parser, load_config
from slowlog_alert.notifier import QueuedNotifier, WebhookNotifier, mask_url
from slowlog_alert.parsers import get_parse_error_count
from slowlog_alert.stats import Stats
from slowlog_alert.supervisor import Supervisor

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [SLOWLOG] %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(argv)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        build_cli_parser().print_usage(sys.stderr)
        return 2
    logging.getLogger().setLevel(config.log_level.upper())

    stats = Stats()
    webhook = WebhookNotifier(
        config.webhook_url,
        timeout=config.notify_timeout,
        max_attempts=config.notify_attempts,
        stats=stats,
    )

    if config.test:
        try:
            return 0 if send_test_alert(webhook) else 1
        finally:
            webhook.close()

    logger.info("Webhook URL: %s", mask_url(config.webhook_url))
    logger.info("Slow query log: %s", config.slow_log_file)
    logger.info("Slow query threshold: %.2f s", config.threshold)
    logger.info(
        "Boundary policy=%s, from_beginning=%s, follow_rotation=%s, dispatch=%s",
        config.boundary.value, config.from_beginning, config.follow_rotation,
        "queued" if config.async_dispatch else "inline",
    )

    shutdown_event = threading.Event()
    notifier = webhook
    queued = None
    if config.async_dispatch:
        queued = QueuedNotifier(webhook, shutdown_event, maxsize=config.queue_size, stats=stats)
        queued.start()
        notifier = queued

    evaluator = SlowQueryEvaluator(config.threshold, notifier, stats)
    supervisor = Supervisor(config, evaluator, shutdown_event, stats)

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        supervisor.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Monitoring slow query log. Press Ctrl+C to stop.")
    try:
        supervisor.run()
    finally:
        if queued:
            queued.close()
        webhook.close()
        counts = stats.snapshot()
        logger.info(
            "Stats: %d entries, %d slow, %d alerts sent, %d failed, %d dropped, "
            "%d restarts, %d unparseable entries",
            counts["entries"], counts["slow_queries"], counts["alerts_sent"],
            counts["alerts_failed"], counts["alerts_dropped"], counts["restarts"],
            get_parse_error_count(),
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
