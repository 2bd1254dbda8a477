from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dbstatus.services.status import Status


@dataclass
class MonitorState:
    """Process-wide monitor state, owned by a single ``DatabaseMonitor``."""

    # Overwritten on every successful poll; replayed to new subscribers.
    last_status: Optional[Status] = None
    connected: bool = False
    ever_connected: bool = False
