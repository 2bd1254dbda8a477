"""
Status-polling and change-broadcast loop.

``DatabaseMonitor`` wires the pieces together:

    poll scheduler tick -> connectivity guard -> sampler -> change detection
    -> status log (db-log) + broadcaster (db-status)

While the database is unreachable the poll scheduler is stopped and a second
scheduler (the reconnector) probes every ``reconnect_delay`` seconds.  A
successful probe stops the reconnector and restarts polling, whose first
cycle runs immediately.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from flask import Flask, current_app

from dbstatus.core.status_log import StatusLog
from dbstatus.core.telemetry import get_meter
from dbstatus.database.stats import StatsSource
from dbstatus.services.broadcaster import Broadcaster
from dbstatus.services.guard import ConnectivityGuard
from dbstatus.services.sampler import StatusSampler
from dbstatus.services.scheduler import Scheduler, TimerFactory
from dbstatus.services.state import MonitorState
from dbstatus.services.status import Status, describe_slow_process, should_log

logger = logging.getLogger(__name__)

EXTENSION_KEY = "db_monitor"

# OpenTelemetry Metrics
meter = get_meter()
poll_counter = meter.create_counter(
    "db_status.poll.count",
    description="Number of status poll cycles performed",
)
poll_failure_counter = meter.create_counter(
    "db_status.poll.failures",
    description="Number of poll cycles that ended disconnected",
)


class DatabaseMonitor:
    def __init__(
        self,
        source: StatsSource,
        status_log: StatusLog,
        *,
        interval: float = 3.0,
        reconnect_delay: float = 5.0,
        timer_factory: Optional[TimerFactory] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.state = MonitorState()
        self.source = source
        self.status_log = status_log
        self.broadcaster = Broadcaster(self.state)
        self.guard = ConnectivityGuard(
            source,
            self.state,
            self.log,
            on_connected=self._on_connected,
            on_disconnected=self._on_disconnected,
        )
        self.sampler = StatusSampler(source, self.guard, self.log, clock=clock)
        self.poller = Scheduler(
            self.poll_once,
            interval,
            name="status-poller",
            initial_delay=0.0,
            timer_factory=timer_factory,
        )
        self.reconnector = Scheduler(
            self.reconnect,
            reconnect_delay,
            name="reconnector",
            initial_delay=reconnect_delay,
            timer_factory=timer_factory,
        )
        # Poll cycles and reconnect attempts never interleave.
        self._cycle_lock = threading.RLock()
        self._shut_down = False

        status_log.add_listener(self.broadcaster.broadcast_log)
        source.add_error_listener(self._on_source_error)

    def log(self, message: str) -> str:
        return self.status_log.write(message)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Make the first connection attempt; polling or reconnecting starts from its outcome."""
        with self._cycle_lock:
            connected = self.guard.ensure_connection()
        if not connected:
            self.reconnector.start()
        return connected

    def shutdown(self) -> None:
        """Stop scheduling, close subscribers, close the status log, then dispose the pool."""
        if self._shut_down:
            return
        self._shut_down = True

        self.poller.stop()
        self.reconnector.stop()
        self.log("Database monitor shutting down")

        closed = self.broadcaster.close_all()
        logger.info("Closed %d subscriber channel(s)", closed)

        try:
            self.status_log.close()
        except OSError:
            logger.error("Error while closing the status log", exc_info=True)

        try:
            self.source.dispose()
        except Exception:
            logger.error("Error while closing the database connection pool", exc_info=True)
        else:
            logger.info("Database connection pool closed")

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def poll_once(self) -> Status:
        with self._cycle_lock:
            status = self.sampler.sample()
            poll_counter.add(1)

            if status.is_connected:
                if should_log(self.state.last_status, status):
                    self.log(status.summary())
                    for process in status.slow_processes:
                        self.log(describe_slow_process(process))
                self.state.last_status = status
            else:
                poll_failure_counter.add(1)

            self.broadcaster.broadcast_status(status)
        return status

    def reconnect(self) -> bool:
        with self._cycle_lock:
            return self.guard.ensure_connection()

    def snapshot(self) -> Dict[str, Any]:
        last = self.state.last_status
        now = datetime.now(timezone.utc)
        return {
            "connected": self.guard.is_connected,
            "status": last.to_dict() if last is not None else None,
            "subscribers": [
                {
                    "id": subscriber.id,
                    "transport": subscriber.transport,
                    "connectedSeconds": round((now - subscriber.registered_at).total_seconds(), 3),
                }
                for subscriber in self.broadcaster.subscribers()
            ],
            "polling": self.poller.is_running,
        }


    # ------------------------------------------------------------------
    # Connectivity transitions
    # ------------------------------------------------------------------

    def _on_connected(self) -> None:
        self.reconnector.stop()
        if not self._shut_down:
            self.poller.start()

    def _on_disconnected(self) -> None:
        self.poller.stop()
        if not self._shut_down:
            self.reconnector.start()

    def _on_source_error(self, exc: BaseException) -> None:
        self.log(f"Database pool error: {exc}")
        self.guard.mark_disconnected()


def get_monitor(app: Optional[Flask] = None) -> DatabaseMonitor:
    """Return the monitor attached to *app* (default: the current app)."""
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def start_monitor(app: Flask) -> DatabaseMonitor:
    """Kick off the monitor attached to *app* and return it."""
    monitor = get_monitor(app)
    monitor.start()
    return monitor
