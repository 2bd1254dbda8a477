"""Connectivity guard: the single gate every poll cycle passes through."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from dbstatus.core.errors import StatsSourceError
from dbstatus.database.stats import StatsSource
from dbstatus.services.state import MonitorState

logger = logging.getLogger(__name__)


class ConnectivityGuard:
    """
    Track whether the stats source is reachable.

    ``ensure_connection`` is free while connected.  While disconnected it
    probes the source; a successful probe flips the flag, writes a recovery
    event and fires ``on_connected``.  ``mark_disconnected`` fires
    ``on_disconnected`` only on an actual transition.
    """

    def __init__(
        self,
        source: StatsSource,
        state: MonitorState,
        log: Callable[[str], Any],
        *,
        on_connected: Optional[Callable[[], None]] = None,
        on_disconnected: Optional[Callable[[], None]] = None,
    ) -> None:
        self._source = source
        self._state = state
        self._log = log
        self._lock = threading.Lock()
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected

    @property
    def is_connected(self) -> bool:
        return self._state.connected

    def ensure_connection(self) -> bool:
        if self._state.connected:
            return True

        try:
            self._source.probe()
        except StatsSourceError as exc:
            if self._state.ever_connected:
                self._log(f"Database reconnect attempt failed: {exc}")
            else:
                self._log(f"Initial database connection failed: {exc}")
            return False

        with self._lock:
            if self._state.connected:
                return True
            self._state.connected = True
            first = not self._state.ever_connected
            self._state.ever_connected = True

        self._log("Database connection established" if first else "Database connection restored")
        if self.on_connected is not None:
            self.on_connected()
        return True

    def mark_disconnected(self) -> bool:
        with self._lock:
            if not self._state.connected:
                return False
            self._state.connected = False

        logger.warning("Stats source marked disconnected")
        if self.on_disconnected is not None:
            self.on_disconnected()
        return True
