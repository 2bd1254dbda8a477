"""
Fan-out of status snapshots and log lines to connected subscribers.

Subscribers are kept in a dict keyed by subscriber id, so removal while a
broadcast is iterating is well defined: the broadcast walks a copy and skips
any id that disappeared in the meantime.
"""

from __future__ import annotations

import abc
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dbstatus.core.telemetry import get_meter
from dbstatus.services.state import MonitorState
from dbstatus.services.status import Status

logger = logging.getLogger(__name__)

STATUS_EVENT = "db-status"
LOG_EVENT = "db-log"

meter = get_meter()
subscriber_gauge = meter.create_up_down_counter(
    "db_status.subscribers",
    description="Number of connected push subscribers",
)


class Subscriber(abc.ABC):
    """An open push channel to one client."""

    transport = "unknown"

    def __init__(self, subscriber_id: Optional[str] = None) -> None:
        self.id = subscriber_id or uuid.uuid4().hex
        self.registered_at = datetime.now(timezone.utc)

    @abc.abstractmethod
    def send(self, event: str, data: Any) -> None:
        """Buffer one event for the client.  Must not block on network I/O."""

    def close(self) -> None:
        """Close the underlying channel."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class Broadcaster:
    def __init__(self, state: MonitorState) -> None:
        self._state = state
        self._subscribers: Dict[str, Subscriber] = {}
        # Re-entrant: a failing delivery unregisters from inside a broadcast.
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return subscriber.id in self._subscribers

    def get(self, subscriber_id: str) -> Optional[Subscriber]:
        return self._subscribers.get(subscriber_id)

    def subscribers(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subscribers.values())

    def register(self, subscriber: Subscriber) -> None:
        """Add *subscriber* and replay the current status to it alone."""
        with self._lock:
            if subscriber.id in self._subscribers:
                return
            self._subscribers[subscriber.id] = subscriber
            subscriber_gauge.add(1, {"transport": subscriber.transport})
            logger.info("Subscriber %s registered (%s)", subscriber.id, subscriber.transport)

            last = self._state.last_status
            if last is not None:
                if not self._state.connected:
                    # Joined during an outage: show it, not the last good sample.
                    last = Status.disconnected(last.timestamp)
                self._deliver(subscriber, STATUS_EVENT, last.to_dict())

    def unregister(self, subscriber: Subscriber) -> bool:
        with self._lock:
            removed = self._subscribers.pop(subscriber.id, None)
        if removed is None:
            return False
        subscriber_gauge.add(-1, {"transport": subscriber.transport})
        logger.info("Subscriber %s unregistered", subscriber.id)
        return True

    def broadcast(self, event: str, payload: Any) -> int:
        """Deliver to every active subscriber.  Returns the number of successful deliveries."""
        delivered = 0
        with self._lock:
            for subscriber_id, subscriber in list(self._subscribers.items()):
                if subscriber_id not in self._subscribers:
                    continue
                if self._deliver(subscriber, event, payload):
                    delivered += 1
        return delivered

    def broadcast_status(self, status: Status) -> int:
        return self.broadcast(STATUS_EVENT, status.to_dict())

    def broadcast_log(self, line: str) -> int:
        return self.broadcast(LOG_EVENT, line)

    def close_all(self) -> int:
        """Close and forget every subscriber.  Returns how many were closed."""
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()

        for subscriber in subscribers:
            subscriber_gauge.add(-1, {"transport": subscriber.transport})
            self._close(subscriber)
        return len(subscribers)

    def _deliver(self, subscriber: Subscriber, event: str, payload: Any) -> bool:
        try:
            subscriber.send(event, payload)
        except Exception as exc:
            logger.warning("Dropping subscriber %s after failed delivery: %s", subscriber.id, exc)
            self.unregister(subscriber)
            self._close(subscriber)
            return False
        return True

    @staticmethod
    def _close(subscriber: Subscriber) -> None:
        try:
            subscriber.close()
        except Exception:
            logger.warning("Error closing subscriber %s", subscriber.id, exc_info=True)
