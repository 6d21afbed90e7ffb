"""Supervisor: runs the tailing pipeline in a worker thread and restarts it on failure."""

import enum
import logging
import threading

from slowlog_alert.alerting import SlowQueryEvaluator
from slowlog_alert.config import Config
from slowlog_alert.line_source import LineSource, LogSourceError
from slowlog_alert.models import RawLine
from slowlog_alert.parsers import parse_entry
from slowlog_alert.segmenter import EntrySegmenter
from slowlog_alert.stats import Stats

logger = logging.getLogger(__name__)


class SupervisorState(enum.Enum):
    RUNNING = "running"
    RESTARTING = "restarting"


class Pipeline:
    """One line source instance feeding segmenter -> parser -> evaluator, in arrival order."""

    def __init__(
        self,
        source: LineSource,
        segmenter: EntrySegmenter,
        evaluator: SlowQueryEvaluator,
        stats: Stats | None = None,
    ):
        self._source = source
        self._segmenter = segmenter
        self._evaluator = evaluator
        self._stats = stats
        self.error: Exception | None = None

    def run(self):
        """Consume lines until shutdown or a source failure; the open entry is always flushed."""
        try:
            for line in self._source.lines():
                entry_lines = self._segmenter.feed(line)
                if entry_lines:
                    self._process(entry_lines)
        except LogSourceError as e:
            self.error = e
            logger.error("Line source failed: %s", e)
        except Exception as e:
            self.error = e
            logger.exception("Unexpected pipeline failure")
        finally:
            pending = self._segmenter.flush()
            if pending:
                self._process(pending)

    def _process(self, lines: list[RawLine]):
        entry = parse_entry(lines)
        if entry is None:
            return
        if self._stats:
            self._stats.incr("entries")
        self._evaluator.evaluate(entry)


class Supervisor:
    """Keeps one pipeline running until shutdown_event is set.

    RUNNING -> RESTARTING when the worker exits on a source failure, then back
    to RUNNING after ``restart_delay``. Only the first pipeline honours
    ``from_beginning``; restarts always start at the end of the file so a
    reopened log is not re-ingested.
    """

    def __init__(
        self,
        config: Config,
        evaluator: SlowQueryEvaluator,
        shutdown_event: threading.Event,
        stats: Stats | None = None,
    ):
        self._config = config
        self._evaluator = evaluator
        self._shutdown = shutdown_event
        self._stats = stats
        self._state = SupervisorState.RUNNING
        self._restarts = 0

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def restarts(self) -> int:
        return self._restarts

    def stop(self):
        """Request shutdown. Safe to call from a signal handler.

        Only sets the event; the join loop in _run_pipeline wakes the source.
        """
        self._shutdown.set()

    def run(self):
        from_beginning = self._config.from_beginning
        while not self._shutdown.is_set():
            self._state = SupervisorState.RUNNING
            error = self._run_pipeline(from_beginning)
            from_beginning = False
            if self._shutdown.is_set():
                break

            self._state = SupervisorState.RESTARTING
            self._restarts += 1
            if self._stats:
                self._stats.incr("restarts")
            logger.info(
                "Restarting line source in %.1fs (restart #%d, cause: %s)",
                self._config.restart_delay, self._restarts, error,
            )
            self._shutdown.wait(self._config.restart_delay)

        logger.info("Supervisor stopped after %d restart(s)", self._restarts)

    def _run_pipeline(self, from_beginning: bool):
        source = LineSource(
            self._config.slow_log_file,
            self._shutdown,
            follow_rotation=self._config.follow_rotation,
            from_beginning=from_beginning,
            poll_interval=self._config.poll_interval,
            change_events=self._config.change_events,
        )
        segmenter = EntrySegmenter(self._config.boundary, self._config.max_entry_lines)
        pipeline = Pipeline(source, segmenter, self._evaluator, self._stats)
        worker = threading.Thread(target=pipeline.run, name="slowlog-pipeline", daemon=True)
        worker.start()
        # Join with a timeout so the controlling thread stays responsive to signals
        while worker.is_alive():
            worker.join(timeout=0.5)
            if self._shutdown.is_set():
                source.wake()

        return pipeline.error
