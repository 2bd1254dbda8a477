from contextlib import contextmanager

import pytest

from dbstatus.core.errors import StatsSourceError
from dbstatus.core.status_log import StatusLog
from dbstatus.database.stats import StatsSession, StatsSource
from dbstatus.services.broadcaster import Subscriber
from dbstatus.services.monitor import DatabaseMonitor
from dbstatus.services.status import ProcessInfo


class _FakeSession(StatsSession):
    def __init__(self, source):
        self._source = source

    def _maybe_fail(self, query):
        if self._source.fail_on == query:
            raise StatsSourceError(f"{query} failed: Lost connection to MySQL server")

    def active_connections(self):
        self._maybe_fail("active_connections")
        return self._source.active

    def process_list(self):
        self._maybe_fail("process_list")
        return list(self._source.processes)

    def max_connections(self):
        self._maybe_fail("max_connections")
        return self._source.max_conn


class FakeStatsSource(StatsSource):
    """In-memory stats source that counts pooled units and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.active = 5
        self.processes = [ProcessInfo(id=i, elapsed_seconds=0, state="Sleep") for i in range(10)]
        self.max_conn = 151
        self.fail_on = None
        self.probe_failures = []
        self.probes = 0
        self.acquired = 0
        self.released = 0
        self.disposed = False
        self.dispose_error = None

    @property
    def in_use(self):
        return self.acquired - self.released

    def probe(self):
        self.probes += 1
        if self.probe_failures:
            raise self.probe_failures.pop(0)

    @contextmanager
    def session(self):
        self.acquired += 1
        try:
            yield _FakeSession(self)
        finally:
            self.released += 1

    def dispose(self):
        if self.dispose_error is not None:
            raise self.dispose_error
        self.disposed = True

    def emit_error(self, exc):
        self._notify_error(exc)


class ManualTimer:
    def __init__(self, delay, function, *args):
        self.delay = delay
        self.function = function
        self.args = args
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def pending(self):
        return self.started and not self.cancelled and not self.fired

    def fire(self):
        self.fired = True
        self.function(*self.args)


class ManualTimers:
    """Timer factory whose timers only fire when a test says so."""

    def __init__(self):
        self.created = []

    def __call__(self, delay, function, *args):
        timer = ManualTimer(delay, function, *args)
        self.created.append(timer)
        return timer

    def pending_for(self, scheduler):
        pending = [t for t in self.created if t.pending and t.function.__self__ is scheduler]
        return pending[-1] if pending else None

    def fire(self, scheduler):
        timer = self.pending_for(scheduler)
        assert timer is not None, f"no pending timer for {scheduler.name}"
        timer.fire()
        return timer


class RecordingSubscriber(Subscriber):
    transport = "test"

    def __init__(self, subscriber_id=None, fail=False):
        super().__init__(subscriber_id)
        self.events = []
        self.fail = fail
        self.closed = False
        self.on_send = None

    def send(self, event, data):
        if self.fail:
            raise ConnectionResetError("client went away")
        self.events.append((event, data))
        if self.on_send is not None:
            self.on_send(event, data)

    def close(self):
        self.closed = True

    def named(self, event):
        return [data for name, data in self.events if name == event]


class StepClock:
    def __init__(self, start=1_700_000_000_000, step=1000):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def stats_source():
    return FakeStatsSource()


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def status_log(tmp_path):
    log = StatusLog(tmp_path / "db_status.log")
    yield log
    log.close()


@pytest.fixture
def monitor(stats_source, status_log, timers):
    return DatabaseMonitor(
        stats_source,
        status_log,
        interval=3,
        reconnect_delay=5,
        timer_factory=timers,
        clock=StepClock(),
    )


def read_lines(status_log):
    return status_log.path.read_text(encoding="utf-8").splitlines()
