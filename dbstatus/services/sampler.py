from __future__ import annotations

import time
from typing import Any, Callable, Optional

from dbstatus.core.errors import StatsSourceError
from dbstatus.database.stats import StatsSource
from dbstatus.services.guard import ConnectivityGuard
from dbstatus.services.status import Status


def epoch_millis() -> int:
    return int(time.time() * 1000)


class StatusSampler:
    """
    Take one status sample from the stats source.

    All three queries run inside a single ``session()`` so they share one
    pooled connection; the connection is returned to the pool whether the
    queries succeed or not.
    """

    def __init__(
        self,
        source: StatsSource,
        guard: ConnectivityGuard,
        log: Callable[[str], Any],
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._source = source
        self._guard = guard
        self._log = log
        self._clock = clock or epoch_millis
        self._last_timestamp = 0

    def _now(self) -> int:
        # Wall clocks can step backwards; snapshot timestamps may not.
        self._last_timestamp = max(self._clock(), self._last_timestamp)
        return self._last_timestamp

    def sample(self) -> Status:
        if not self._guard.ensure_connection():
            return Status.disconnected(self._now())

        try:
            with self._source.session() as stats:
                active_connections = stats.active_connections()
                processes = stats.process_list()
                max_connections = stats.max_connections()
        except StatsSourceError as exc:
            self._log(f"Error while checking database status: {exc}")
            self._guard.mark_disconnected()
            return Status.disconnected(self._now())

        return Status.connected(
            active_connections=active_connections,
            processes=processes,
            max_connections=max_connections,
            timestamp=self._now(),
        )
