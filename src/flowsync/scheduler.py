"""
FlowSync scheduler -- the long-running sync loop.

Runs one sweep at startup and then one per configured interval,
forever. Sweeps never overlap: the next one is scheduled only after
the current one has finished. A sweep that blows up is logged and the
loop waits for the next tick.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .errors import ConfigurationError
from .models import FlowSyncConfig, SweepReport
from .sync.engine import SyncEngine

logger = logging.getLogger("flowsync.scheduler")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Configure console and optional file logging for the service."""
    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level)


class SchedulerState:
    """Thread-safe record of what the scheduler has done so far."""

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at: Optional[datetime] = None
        self.last_sweep: Optional[datetime] = None
        self.sweeps_completed: int = 0
        self.sweeps_failed: int = 0
        self.errors: list[str] = []
        self.last_report: Optional[SweepReport] = None
        self.running: bool = False

    def snapshot(self) -> dict:
        """Return a JSON-safe view of the current state."""
        with self._lock:
            return {
                "running": self.running,
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "last_sweep": self.last_sweep.isoformat() if self.last_sweep else None,
                "sweeps_completed": self.sweeps_completed,
                "sweeps_failed": self.sweeps_failed,
                "recent_errors": self.errors[-10:],
                "last_report": (
                    self.last_report.model_dump(mode="json") if self.last_report else None
                ),
            }

    def record_sweep(self, report: SweepReport) -> None:
        with self._lock:
            self.last_sweep = datetime.now(timezone.utc)
            self.last_report = report
            if report.aborted:
                self.sweeps_failed += 1
            else:
                self.sweeps_completed += 1

        if report.aborted:
            self.record_error(f"Sweep aborted: {report.abort_reason}")
        for name in report.failed_instances:
            self.record_error(f"Instance {name} failed")

    def record_crash(self, exc: BaseException) -> None:
        with self._lock:
            self.last_sweep = datetime.now(timezone.utc)
            self.sweeps_failed += 1
        self.record_error(f"Sweep: {exc}")

    def record_error(self, error: str) -> None:
        """Record an error, keeping only the last 50."""
        with self._lock:
            ts = datetime.now(timezone.utc).isoformat()
            self.errors.append(f"[{ts}] {error}")
            if len(self.errors) > 50:
                self.errors = self.errors[-50:]


class SyncScheduler:
    """Drives SyncEngine sweeps on a fixed interval.

    Args:
        config: Configuration for the first sweep.
        engine: Engine to drive. Built from ``config`` when omitted.
        config_loader: Called before every sweep to pick up config
            changes. A failing reload keeps the previous config.
        clock: Monotonic time source, in seconds.
    """

    def __init__(
        self,
        config: FlowSyncConfig,
        engine: Optional[SyncEngine] = None,
        config_loader: Optional[Callable[[], FlowSyncConfig]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.engine = engine or SyncEngine(config)
        self.config_loader = config_loader
        self.state = SchedulerState()
        self._clock = clock
        self._stop_event = threading.Event()

    @property
    def interval_seconds(self) -> float:
        return self.config.sync_interval_minutes * 60

    def _reload_config(self) -> None:
        if self.config_loader is None:
            return
        try:
            config = self.config_loader()
        except ConfigurationError as exc:
            logger.error(
                "Configuration reload failed, keeping previous configuration: %s", exc,
            )
            self.state.record_error(f"Config: {exc}")
            return
        self.config = config
        self.engine.config = config

    def run_once(self) -> Optional[SweepReport]:
        """Run a single sweep; never raises.

        Returns:
            The sweep report, or None if the sweep crashed.
        """
        self._reload_config()
        try:
            report = self.engine.run_sweep()
        except Exception as exc:
            logger.exception("A critical error occurred during scheduled sync")
            self.state.record_crash(exc)
            return None

        self.state.record_sweep(report)
        return report

    def run_forever(self) -> None:
        """Sweep now, then every interval, until stop() or a signal."""
        restore = self._setup_signals()
        self.state.running = True
        self.state.started_at = datetime.now(timezone.utc)
        logger.info(
            "Scheduler starting -- repo=%s interval=%dmin",
            self.engine.repo_path, self.config.sync_interval_minutes,
        )

        try:
            while not self._stop_event.is_set():
                started = self._clock()
                self.run_once()
                elapsed = self._clock() - started
                self._stop_event.wait(timeout=max(0.0, self.interval_seconds - elapsed))
        except KeyboardInterrupt:
            pass
        finally:
            self.state.running = False
            restore()
            logger.info("Scheduler stopped.")

    def stop(self) -> None:
        self._stop_event.set()

    def _setup_signals(self) -> Callable[[], None]:
        """Stop on SIGTERM/SIGINT; returns a callable restoring old handlers."""
        if threading.current_thread() is not threading.main_thread():
            return lambda: None

        previous = {}
        for sig in (signal.SIGTERM, signal.SIGINT):
            previous[sig] = signal.signal(sig, self._handle_signal)

        def restore() -> None:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        return restore

    def _handle_signal(self, signum, frame):
        logger.info("Received signal %s -- stopping", signal.Signals(signum).name)
        self._stop_event.set()
