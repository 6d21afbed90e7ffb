"""Tests for the pipeline and its supervisor."""

import os
import signal
import threading
import time

from slowlog_alert import supervisor as supervisor_module
from slowlog_alert.alerting import SlowQueryEvaluator
from slowlog_alert.config import Config
from slowlog_alert.line_source import LogOpenError, LogReadError
from slowlog_alert.segmenter import EntrySegmenter
from slowlog_alert.stats import Stats
from slowlog_alert.supervisor import Pipeline, Supervisor, SupervisorState


def _config(path, **overrides):
    values = dict(
        webhook_url="http://hooks.local/alert",
        slow_log_file=str(path),
        poll_interval=0.05,
        restart_delay=0.05,
        change_events=False,
    )
    values.update(overrides)
    return Config(**values)


def _start(supervisor):
    t = threading.Thread(target=supervisor.run, daemon=True)
    t.start()
    return t


def _write_lines(path, lines, mode="a"):
    with open(str(path), mode) as fh:
        fh.write("\n".join(lines) + "\n")
        fh.flush()


class _ScriptedSource:
    """Line source double: yields the given lines, then raises ``error`` if set."""

    def __init__(self, lines, error=None):
        self._lines = lines
        self._error = error

    def lines(self):
        yield from self._lines
        if self._error:
            raise self._error

    def wake(self):
        pass


class TestPipeline:
    def test_flushes_pending_entry_on_source_failure(self, recorder, scenario_lines, make_raw):
        stats = Stats()
        source = _ScriptedSource(make_raw(scenario_lines), LogReadError("disk gone"))
        pipeline = Pipeline(source, EntrySegmenter(), SlowQueryEvaluator(0.5, recorder), stats)

        pipeline.run()

        assert isinstance(pipeline.error, LogReadError)
        assert len(recorder.sent) == 1
        assert stats.get("entries") == 1

    def test_entries_emitted_in_stream_order(self, recorder, make_raw):
        texts = []
        for i in range(1, 4):
            texts += [
                f"# Time: 2024-01-01T10:00:0{i}",
                f"# Query_time: {i}  Lock_time: 0  Rows_sent: 0  Rows_examined: 0",
                f"SELECT {i};",
            ]
        pipeline = Pipeline(_ScriptedSource(make_raw(texts)), EntrySegmenter(),
                            SlowQueryEvaluator(0.5, recorder))
        pipeline.run()

        assert pipeline.error is None
        assert [c.count(f"SELECT {i};") for i, c in enumerate(recorder.sent, 1)] == [1, 1, 1]

    def test_entry_without_timing_is_skipped(self, recorder, make_raw):
        stats = Stats()
        source = _ScriptedSource(make_raw(["# Time: 2024-01-01T10:00:00", "SELECT 1;"]))
        Pipeline(source, EntrySegmenter(), SlowQueryEvaluator(0.0, recorder), stats).run()
        assert recorder.sent == []
        assert stats.get("entries") == 0


class TestSupervisor:
    def test_scenario_above_threshold(self, tmp_path, recorder, scenario_lines):
        f = tmp_path / "slow.log"
        _write_lines(f, scenario_lines, mode="w")
        shutdown = threading.Event()
        sup = Supervisor(_config(f, from_beginning=True), SlowQueryEvaluator(0.5, recorder), shutdown)

        t = _start(sup)
        time.sleep(0.3)
        # Last entry has no closing boundary yet
        assert recorder.sent == []
        sup.stop()
        t.join(timeout=3)

        assert not t.is_alive()
        assert len(recorder.sent) == 1
        assert "SELECT * FROM orders;" in recorder.sent[0]

    def test_scenario_below_threshold(self, tmp_path, recorder, scenario_lines):
        f = tmp_path / "slow.log"
        _write_lines(f, scenario_lines, mode="w")
        shutdown = threading.Event()
        sup = Supervisor(_config(f, from_beginning=True), SlowQueryEvaluator(2.0, recorder), shutdown)

        t = _start(sup)
        time.sleep(0.3)
        sup.stop()
        t.join(timeout=3)

        assert recorder.sent == []

    def test_next_header_closes_entry_while_running(self, tmp_path, recorder, scenario_lines):
        f = tmp_path / "slow.log"
        f.write_text("")
        shutdown = threading.Event()
        sup = Supervisor(_config(f), SlowQueryEvaluator(0.5, recorder), shutdown)

        t = _start(sup)
        time.sleep(0.2)
        _write_lines(f, scenario_lines + ["# Time: 2024-01-01T10:00:05"])
        time.sleep(0.3)

        assert len(recorder.sent) == 1
        assert sup.state is SupervisorState.RUNNING
        sup.stop()
        t.join(timeout=3)

    def test_restarts_until_file_appears(self, tmp_path, recorder, scenario_lines):
        f = tmp_path / "slow.log"
        stats = Stats()
        shutdown = threading.Event()
        sup = Supervisor(_config(f), SlowQueryEvaluator(0.5, recorder), shutdown, stats)

        t = _start(sup)
        time.sleep(0.4)
        assert sup.restarts >= 2
        assert stats.get("restarts") == sup.restarts

        f.write_text("# Time: 2024-01-01T09:59:00\n")
        time.sleep(0.3)
        restarts = sup.restarts
        _write_lines(f, scenario_lines + ["# Time: 2024-01-01T10:00:05"])
        time.sleep(0.3)

        assert sup.restarts == restarts
        assert sup.state is SupervisorState.RUNNING
        assert len(recorder.sent) == 1
        sup.stop()
        t.join(timeout=3)
        assert not t.is_alive()

    def test_from_beginning_only_for_first_pipeline(self, tmp_path, monkeypatch, recorder):
        starts = []

        class FailingSource:
            def __init__(self, path, shutdown_event, **kwargs):
                starts.append(kwargs["from_beginning"])

            def lines(self):
                raise LogOpenError("not there")

            def wake(self):
                pass

        monkeypatch.setattr(supervisor_module, "LineSource", FailingSource)
        shutdown = threading.Event()
        sup = Supervisor(
            _config(tmp_path / "slow.log", from_beginning=True),
            SlowQueryEvaluator(0.5, recorder), shutdown,
        )

        t = _start(sup)
        time.sleep(0.3)
        sup.stop()
        t.join(timeout=3)

        assert len(starts) >= 3
        assert starts[0] is True
        assert set(starts[1:]) == {False}

    def test_signal_handler_stops_supervisor_on_main_thread(self, tmp_path, recorder, scenario_lines):
        f = tmp_path / "slow.log"
        _write_lines(f, scenario_lines, mode="w")
        shutdown = threading.Event()
        sup = Supervisor(_config(f, from_beginning=True), SlowQueryEvaluator(0.5, recorder), shutdown)

        previous = signal.signal(signal.SIGUSR1, lambda signum, frame: sup.stop())
        timer = threading.Timer(0.3, os.kill, args=(os.getpid(), signal.SIGUSR1))
        try:
            timer.start()
            t0 = time.monotonic()
            sup.run()
            elapsed = time.monotonic() - t0
        finally:
            timer.join(timeout=2)
            signal.signal(signal.SIGUSR1, previous)

        assert shutdown.is_set()
        assert elapsed < 3.0
        assert len(recorder.sent) == 1

    def test_stop_only_sets_event(self, tmp_path, recorder):
        shutdown = threading.Event()
        sup = Supervisor(_config(tmp_path / "slow.log"), SlowQueryEvaluator(0.5, recorder), shutdown)
        sup.stop()
        sup.stop()
        assert shutdown.is_set()

    def test_stop_before_run(self, tmp_path, recorder):
        shutdown = threading.Event()
        sup = Supervisor(_config(tmp_path / "slow.log"), SlowQueryEvaluator(0.5, recorder), shutdown)
        sup.stop()
        sup.run()
        assert sup.restarts == 0
