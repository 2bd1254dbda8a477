"""
Append-only status log.

Every event is written as ``<ISO-8601 timestamp> - <message>`` to a single
file opened in append mode for the lifetime of the process.  Each written
line is handed to the registered listeners (the broadcaster pushes it to
subscribers as ``db-log``) and mirrored to the ``dbstatus.status`` logger.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

status_logger = logging.getLogger("dbstatus.status")

LineListener = Callable[[str], None]


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """UTC timestamp with millisecond precision, e.g. ``2024-05-01T12:00:00.000Z``."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StatusLog:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._stream = open(self.path, "a", encoding="utf-8")
        self._lock = threading.Lock()
        self._listeners: List[LineListener] = []

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def add_listener(self, listener: LineListener) -> None:
        self._listeners.append(listener)

    def write(self, message: str) -> str:
        """Append *message* and notify listeners.  Returns the timestamped line."""
        line = f"{iso_timestamp()} - {message}"
        with self._lock:
            if self._stream.closed:
                status_logger.warning("Status log already closed, dropping file write: %s", message)
            else:
                self._stream.write(line + "\n")
                self._stream.flush()

        status_logger.info(message)
        for listener in list(self._listeners):
            listener(line)
        return line

    def close(self) -> None:
        with self._lock:
            if not self._stream.closed:
                self._stream.flush()
                self._stream.close()
