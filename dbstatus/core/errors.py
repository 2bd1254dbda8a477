"""Exception types shared across the monitor."""


class MonitorError(Exception):
    """Base class for every error raised by the monitor."""


class StatsSourceError(MonitorError):
    """A probe or stats query against the monitored database failed."""


class SubscriberClosed(MonitorError):
    """Delivery was attempted on a subscriber channel that is already closed."""
