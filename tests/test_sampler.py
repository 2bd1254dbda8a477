import pytest

from conftest import StepClock
from dbstatus.core.errors import StatsSourceError
from dbstatus.services.guard import ConnectivityGuard
from dbstatus.services.sampler import StatusSampler
from dbstatus.services.state import MonitorState
from dbstatus.services.status import ConnectionState, ProcessInfo


@pytest.fixture
def log():
    return []


@pytest.fixture
def guard(stats_source, log):
    return ConnectivityGuard(stats_source, MonitorState(), log.append)


@pytest.fixture
def sampler(stats_source, guard, log):
    return StatusSampler(stats_source, guard, log.append, clock=StepClock())


def test_connected_sample(sampler, stats_source):
    stats_source.active = 7
    stats_source.processes = [
        ProcessInfo(id=1, elapsed_seconds=1),
        ProcessInfo(id=2, elapsed_seconds=8, state="Sending data"),
    ]
    stats_source.max_conn = 200

    status = sampler.sample()

    assert status.state is ConnectionState.CONNECTED
    assert (status.active_connections, status.total_processes, status.slow_queries, status.max_connections) == (
        7,
        2,
        1,
        200,
    )
    assert stats_source.acquired == 1
    assert stats_source.in_use == 0


def test_skips_queries_when_probe_fails(sampler, stats_source):
    stats_source.probe_failures = [StatsSourceError("Can't connect to MySQL server")]

    status = sampler.sample()

    assert status.state is ConnectionState.DISCONNECTED
    assert stats_source.acquired == 0


@pytest.mark.parametrize("query", ["active_connections", "process_list", "max_connections"])
def test_query_failure_yields_disconnected_and_releases_unit(sampler, stats_source, guard, log, query):
    sampler.sample()
    stats_source.fail_on = query

    status = sampler.sample()

    assert status.state is ConnectionState.DISCONNECTED
    assert status.to_dict()["activeConnections"] == 0
    assert not guard.is_connected
    assert stats_source.acquired == 2
    assert stats_source.in_use == 0
    assert log[-1].startswith("Error while checking database status:")
    assert "Lost connection to MySQL server" in log[-1]


def test_timestamps_never_go_backwards(stats_source, guard, log):
    readings = iter([5000, 4000, 6000])
    sampler = StatusSampler(stats_source, guard, log.append, clock=lambda: next(readings))

    stamps = [sampler.sample().timestamp for _ in range(3)]
    assert stamps == [5000, 5000, 6000]
