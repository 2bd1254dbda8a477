"""
Status snapshots and change detection.

A :class:`Status` is one immutable sample of database health.  Only the
connected path carries counters; a disconnected snapshot is always zeroed.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

# Processes running longer than this many seconds count as slow queries.
SLOW_QUERY_SECONDS = 5


class ConnectionState(str, enum.Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class ProcessInfo:
    """One row of the server's process list."""

    id: Any
    elapsed_seconds: float
    state: Optional[str] = None
    info: Optional[str] = None

    @property
    def is_slow(self) -> bool:
        return self.elapsed_seconds > SLOW_QUERY_SECONDS


@dataclass(frozen=True)
class Status:
    active_connections: int
    total_processes: int
    slow_queries: int
    max_connections: int
    state: ConnectionState
    timestamp: int  # epoch milliseconds
    slow_processes: Tuple[ProcessInfo, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        counters = (self.active_connections, self.total_processes, self.slow_queries, self.max_connections)
        if any(value < 0 for value in counters):
            raise ValueError(f"Status counters must be non-negative, got {counters}")
        if self.slow_queries > self.total_processes:
            raise ValueError(
                f"slow_queries ({self.slow_queries}) exceeds total_processes ({self.total_processes})"
            )
        if self.state is ConnectionState.DISCONNECTED and (any(counters) or self.slow_processes):
            raise ValueError("A disconnected status cannot carry counters")

    @classmethod
    def connected(
        cls,
        *,
        active_connections: int,
        processes: Sequence[ProcessInfo],
        max_connections: int,
        timestamp: int,
    ) -> "Status":
        """Build a connected snapshot, deriving the slow-query count from *processes*."""
        slow = tuple(p for p in processes if p.is_slow)
        return cls(
            active_connections=active_connections,
            total_processes=len(processes),
            slow_queries=len(slow),
            max_connections=max_connections,
            state=ConnectionState.CONNECTED,
            timestamp=timestamp,
            slow_processes=slow,
        )

    @classmethod
    def disconnected(cls, timestamp: int) -> "Status":
        return cls(
            active_connections=0,
            total_processes=0,
            slow_queries=0,
            max_connections=0,
            state=ConnectionState.DISCONNECTED,
            timestamp=timestamp,
        )

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def summary(self) -> str:
        return (
            f"Status update - active connections: {self.active_connections}, "
            f"processes: {self.total_processes}, slow queries: {self.slow_queries}"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire payload for the ``db-status`` event."""
        return {
            "activeConnections": self.active_connections,
            "totalProcesses": self.total_processes,
            "slowQueries": self.slow_queries,
            "maxConnections": self.max_connections,
            "status": self.state.value,
            "timestamp": self.timestamp,
        }


def should_log(prev: Optional[Status], curr: Status) -> bool:
    """
    Decide whether *curr* is worth a log entry.

    True for the first snapshot, or when the connection count, process count
    or slow-query count moved.  ``max_connections`` and ``timestamp`` are
    ignored.
    """
    if prev is None:
        return True
    return (
        prev.active_connections != curr.active_connections
        or prev.total_processes != curr.total_processes
        or prev.slow_queries != curr.slow_queries
    )


def format_seconds(value: float) -> str:
    """Render a duration in plain notation, dropping the fraction when it is zero."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def describe_slow_process(process: ProcessInfo) -> str:
    return f"ID: {process.id}, Time: {format_seconds(process.elapsed_seconds)}s, State: {process.state}"

