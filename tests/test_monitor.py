from conftest import RecordingSubscriber, read_lines
from dbstatus.core.errors import StatsSourceError
from dbstatus.services.broadcaster import LOG_EVENT, STATUS_EVENT
from dbstatus.services.status import ProcessInfo, Status


def idle_processes(count=10):
    return [ProcessInfo(id=i, elapsed_seconds=0, state="Sleep") for i in range(count)]


def test_start_connects_and_polls_immediately(monitor, timers):
    assert monitor.start()

    assert monitor.poller.is_running
    assert not monitor.reconnector.is_running
    assert timers.pending_for(monitor.poller).delay == 0

    timers.fire(monitor.poller)
    assert monitor.state.last_status.active_connections == 5
    assert timers.pending_for(monitor.poller).delay == 3


def test_unchanged_cycles_are_broadcast_but_not_logged(monitor, stats_source, status_log, timers):
    subscriber = RecordingSubscriber()
    monitor.broadcaster.register(subscriber)
    monitor.start()
    monitor.state.last_status = Status.connected(
        active_connections=5, processes=idle_processes(), max_connections=151, timestamp=1
    )
    already_logged = len(read_lines(status_log))

    for active in (5, 5, 6):
        stats_source.active = active
        timers.fire(monitor.poller)

    new_lines = read_lines(status_log)[already_logged:]
    assert len(new_lines) == 1
    assert new_lines[0].endswith("Status update - active connections: 6, processes: 10, slow queries: 0")
    assert [s["activeConnections"] for s in subscriber.named(STATUS_EVENT)] == [5, 5, 6]


def test_first_cycle_is_always_logged(monitor, status_log, timers):
    monitor.start()
    timers.fire(monitor.poller)
    timers.fire(monitor.poller)

    summaries = [line for line in read_lines(status_log) if "Status update" in line]
    assert len(summaries) == 1


def test_slow_processes_get_their_own_lines(monitor, stats_source, status_log, timers):
    stats_source.processes = idle_processes(3) + [
        ProcessInfo(id=41, elapsed_seconds=9, state="Sending data"),
        ProcessInfo(id=42, elapsed_seconds=300, state="Waiting for table metadata lock"),
    ]
    monitor.start()
    timers.fire(monitor.poller)

    lines = read_lines(status_log)
    assert lines[-3].endswith("Status update - active connections: 5, processes: 5, slow queries: 2")
    assert lines[-2].endswith("ID: 41, Time: 9s, State: Sending data")
    assert lines[-1].endswith("ID: 42, Time: 300s, State: Waiting for table metadata lock")


def test_log_lines_are_pushed_to_subscribers(monitor, status_log, timers):
    subscriber = RecordingSubscriber()
    monitor.broadcaster.register(subscriber)
    monitor.start()
    timers.fire(monitor.poller)

    assert subscriber.named(LOG_EVENT) == read_lines(status_log)


def test_recovers_after_two_failed_probes(monitor, stats_source, timers):
    stats_source.probe_failures = [StatsSourceError("Connection refused"), StatsSourceError("Connection refused")]

    assert not monitor.start()
    assert not monitor.poller.is_running
    assert timers.pending_for(monitor.reconnector).delay == 5

    timers.fire(monitor.reconnector)
    assert not monitor.poller.is_running
    assert monitor.reconnector.is_running

    timers.fire(monitor.reconnector)
    assert monitor.poller.is_running
    assert not monitor.reconnector.is_running
    assert timers.pending_for(monitor.reconnector) is None

    # The first cycle after recovery is not delayed by a full interval.
    assert timers.pending_for(monitor.poller).delay == 0
    assert timers.fire(monitor.poller) is not None
    assert monitor.state.last_status.is_connected
    assert stats_source.probes == 3


def test_failure_mid_cycle(monitor, stats_source, status_log, timers):
    subscriber = RecordingSubscriber()
    monitor.broadcaster.register(subscriber)
    monitor.start()
    timers.fire(monitor.poller)
    previous = monitor.state.last_status

    stats_source.fail_on = "process_list"
    timers.fire(monitor.poller)

    last_pushed = subscriber.named(STATUS_EVENT)[-1]
    assert last_pushed["status"] == "disconnected"
    assert last_pushed["activeConnections"] == 0
    assert not monitor.state.connected
    assert stats_source.acquired == 2
    assert stats_source.in_use == 0
    assert monitor.state.last_status is previous

    assert not monitor.poller.is_running
    assert timers.pending_for(monitor.poller) is None
    assert timers.pending_for(monitor.reconnector).delay == 5
    assert "Error while checking database status" in read_lines(status_log)[-1]

    stats_source.fail_on = None
    timers.fire(monitor.reconnector)
    assert monitor.poller.is_running
    assert read_lines(status_log)[-1].endswith("Database connection restored")


def test_pool_error_forces_disconnect(monitor, stats_source, status_log, timers):
    monitor.start()
    timers.fire(monitor.poller)

    stats_source.emit_error(ConnectionResetError("Lost connection to MySQL server during query"))

    assert not monitor.state.connected
    assert not monitor.poller.is_running
    assert monitor.reconnector.is_running
    assert read_lines(status_log)[-1].endswith(
        "Database pool error: Lost connection to MySQL server during query"
    )


def test_snapshot(monitor, timers):
    assert monitor.snapshot() == {"connected": False, "status": None, "subscribers": [], "polling": False}

    subscriber = RecordingSubscriber()
    monitor.broadcaster.register(subscriber)
    monitor.start()
    timers.fire(monitor.poller)
    snapshot = monitor.snapshot()

    assert snapshot["connected"] is True
    assert snapshot["polling"] is True
    assert snapshot["status"]["totalProcesses"] == 10
    [listed] = snapshot["subscribers"]
    assert listed["id"] == subscriber.id
    assert listed["transport"] == subscriber.transport
    assert listed["connectedSeconds"] >= 0


def test_shutdown_order(monitor, stats_source, status_log, timers, monkeypatch):
    calls = []
    subscriber = RecordingSubscriber()
    subscriber.close = lambda: calls.append("subscribers")
    monitor.broadcaster.register(subscriber)

    close_log = status_log.close
    dispose = stats_source.dispose
    monkeypatch.setattr(status_log, "close", lambda: (calls.append("log"), close_log()))
    monkeypatch.setattr(stats_source, "dispose", lambda: (calls.append("pool"), dispose()))

    monitor.start()
    monitor.shutdown()

    assert calls == ["subscribers", "log", "pool"]
    assert not monitor.poller.is_running
    assert timers.pending_for(monitor.poller) is None
    assert subscriber.named(LOG_EVENT)[-1].endswith("Database monitor shutting down")
    assert read_lines(status_log)[-1].endswith("Database monitor shutting down")
    assert status_log.closed
    assert stats_source.disposed


def test_shutdown_survives_pool_errors(monitor, stats_source, caplog):
    stats_source.dispose_error = RuntimeError("pool is busy")
    monitor.start()

    monitor.shutdown()
    monitor.shutdown()

    assert "Error while closing the database connection pool" in caplog.text
    assert not stats_source.disposed


def test_no_reconnect_after_shutdown(monitor, stats_source, timers):
    monitor.start()
    monitor.shutdown()

    stats_source.emit_error(ConnectionResetError("gone"))

    assert not monitor.reconnector.is_running
    assert not monitor.poller.is_running
