"""Tests for the sync scheduler."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from flowsync.errors import ConfigurationError
from flowsync.models import InstanceSyncResult, SweepReport
from flowsync.scheduler import SchedulerState, SyncScheduler, setup_logging


def _report(**kwargs) -> SweepReport:
    return SweepReport(started_at=datetime.now(timezone.utc), **kwargs)


@pytest.fixture
def engine():
    mock = MagicMock()
    mock.run_sweep.return_value = _report()
    return mock


class TestSchedulerState:
    def test_initial_snapshot(self):
        snap = SchedulerState().snapshot()
        assert snap["running"] is False
        assert snap["sweeps_completed"] == 0
        assert snap["last_report"] is None

    def test_record_sweep(self):
        state = SchedulerState()
        state.record_sweep(_report(instances=[InstanceSyncResult(instance="dev", error="HTTP 500")]))
        assert state.sweeps_completed == 1
        assert state.last_sweep is not None
        assert any("dev" in e for e in state.errors)
        assert state.snapshot()["last_report"]["instances"][0]["instance"] == "dev"

    def test_aborted_sweep_counts_as_failed(self):
        state = SchedulerState()
        state.record_sweep(_report(aborted=True, abort_reason="reset failed"))
        assert state.sweeps_failed == 1
        assert "reset failed" in state.errors[-1]

    def test_errors_are_capped(self):
        state = SchedulerState()
        for i in range(60):
            state.record_error(f"e{i}")
        assert len(state.errors) == 50
        assert state.errors[-1].endswith("e59")


class TestRunOnce:
    def test_returns_report(self, config, engine):
        scheduler = SyncScheduler(config, engine=engine)
        assert scheduler.run_once() is engine.run_sweep.return_value
        assert scheduler.state.sweeps_completed == 1

    def test_crash_is_logged_not_raised(self, config, engine, caplog):
        engine.run_sweep.side_effect = RuntimeError("disk full")
        scheduler = SyncScheduler(config, engine=engine)

        with caplog.at_level(logging.ERROR, logger="flowsync.scheduler"):
            assert scheduler.run_once() is None

        assert "critical error" in caplog.text
        assert scheduler.state.sweeps_failed == 1

    def test_reloads_config_before_each_sweep(self, config, engine):
        updated = config.model_copy(update={"sync_interval_minutes": 5})
        scheduler = SyncScheduler(config, engine=engine, config_loader=lambda: updated)

        scheduler.run_once()

        assert scheduler.config is updated
        assert engine.config is updated
        assert scheduler.interval_seconds == 300

    def test_failed_reload_keeps_previous_config(self, config, engine):
        def broken():
            raise ConfigurationError("FLOWISE_INSTANCES_JSON env is not valid JSON")

        scheduler = SyncScheduler(config, engine=engine, config_loader=broken)
        scheduler.run_once()

        assert scheduler.config is config
        engine.run_sweep.assert_called_once()
        assert any("Config" in e for e in scheduler.state.errors)


class TestRunForever:
    def test_sweeps_immediately_and_stops(self, config, engine):
        scheduler = SyncScheduler(config, engine=engine)

        def stop_after_first(*args, **kwargs):
            scheduler.stop()
            return _report()

        engine.run_sweep.side_effect = stop_after_first
        worker = threading.Thread(target=scheduler.run_forever)
        worker.start()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert engine.run_sweep.call_count == 1
        assert scheduler.state.running is False

    def test_waits_interval_minus_sweep_time(self, config, engine):
        ticks = iter([0.0, 20.0])
        scheduler = SyncScheduler(config, engine=engine, clock=lambda: next(ticks))
        waits = []

        def fake_wait(timeout=None):
            waits.append(timeout)
            scheduler._stop_event.set()
            return True

        scheduler._stop_event.wait = fake_wait
        scheduler.run_forever()

        assert waits == [40.0]

    def test_keeps_running_after_a_crash(self, config, engine):
        scheduler = SyncScheduler(config, engine=engine)
        outcomes = [RuntimeError("boom"), None]

        def sweep():
            outcome = outcomes.pop(0)
            if outcome is None:
                scheduler.stop()
                return _report()
            raise outcome

        engine.run_sweep.side_effect = sweep
        scheduler._stop_event.wait = lambda timeout=None: scheduler._stop_event.is_set()
        scheduler.run_forever()

        assert engine.run_sweep.call_count == 2
        assert scheduler.state.sweeps_failed == 1
        assert scheduler.state.sweeps_completed == 1


def test_setup_logging_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "flowsync.log"
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging(log_file)
        logging.getLogger("flowsync.test").info("hello from test")
        for handler in root.handlers:
            handler.flush()
        assert "[flowsync.test] INFO: hello from test" in log_file.read_text()
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)
