"""Fixed-interval scheduler built on re-armed timers."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

TimerFactory = Callable[..., Any]


def daemon_timer(delay: float, function: Callable[..., None], *args: Any) -> threading.Timer:
    timer = threading.Timer(delay, function, args=args)
    timer.daemon = True
    return timer


class Scheduler:
    """
    Run *task* every *interval* seconds until stopped.

    The first run happens *initial_delay* seconds after :meth:`start`.  The
    next timer is only armed once the current run returns, so runs never
    overlap.  :meth:`stop` cancels the pending timer before returning; a run
    that is already executing finishes but does not re-arm.
    """

    def __init__(
        self,
        task: Callable[[], Any],
        interval: float,
        *,
        name: str = "scheduler",
        initial_delay: float = 0.0,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._task = task
        self.interval = interval
        self.initial_delay = initial_delay
        self.name = name
        self._timer_factory = timer_factory or daemon_timer
        self._lock = threading.Lock()
        self._timer = None
        self._running = False
        # Bumped on every start/stop so stale timers can tell they were superseded.
        self._generation = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> bool:
        """Enter Running.  Returns False (and does nothing) if already running."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            self._generation += 1
            self._arm(self.initial_delay, self._generation)
        logger.info("%s started (interval=%ss)", self.name, self.interval)
        return True

    def stop(self) -> bool:
        """Enter Stopped.  Returns False if it was not running."""
        with self._lock:
            if not self._running:
                return False
            self._running = False
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info("%s stopped", self.name)
        return True

    def _arm(self, delay: float, generation: int) -> None:
        timer = self._timer_factory(delay, self._tick, generation)
        self._timer = timer
        timer.start()

    def _tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None

        try:
            self._task()
        except Exception:
            logger.error("Error in %s cycle", self.name, exc_info=True)

        with self._lock:
            if generation == self._generation:
                self._arm(self.interval, generation)
