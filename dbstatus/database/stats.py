"""
Stats source for the monitored database.

The monitor only talks to the :class:`StatsSource` interface: a cheap
liveness probe plus a ``session()`` that pins one pooled connection so the
three stats queries of a poll cycle all see the same server view.
:class:`MySQLStatsSource` implements it on top of a pooled SQLAlchemy
engine.
"""

from __future__ import annotations

import abc
import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, List, Union

from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from dbstatus.core.errors import StatsSourceError
from dbstatus.services.status import ProcessInfo

logger = logging.getLogger(__name__)

ErrorListener = Callable[[BaseException], None]


def _translate_errors(func):
    """Re-raise driver and result-shape failures as :class:`StatsSourceError`."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SQLAlchemyError as exc:
            raise StatsSourceError(str(exc)) from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise StatsSourceError(f"Unexpected stats result: {exc}") from exc

    return wrapper


class StatsSession(abc.ABC):
    """The queries available while one unit of work is reserved."""

    @abc.abstractmethod
    def active_connections(self) -> int: ...

    @abc.abstractmethod
    def process_list(self) -> List[ProcessInfo]: ...

    @abc.abstractmethod
    def max_connections(self) -> int: ...


class StatsSource(abc.ABC):
    def __init__(self) -> None:
        self._error_listeners: List[ErrorListener] = []

    @abc.abstractmethod
    def probe(self) -> None:
        """Raise :class:`StatsSourceError` if the database is unreachable."""

    @abc.abstractmethod
    def session(self):
        """Context manager yielding a :class:`StatsSession` bound to one pooled connection."""

    @abc.abstractmethod
    def dispose(self) -> None:
        """Drain and close the underlying pool."""

    def add_error_listener(self, listener: ErrorListener) -> None:
        """Register *listener* for fatal, out-of-band connection errors."""
        self._error_listeners.append(listener)

    def _notify_error(self, exc: BaseException) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(exc)
            except Exception:
                logger.error("Stats source error listener failed", exc_info=True)


class _MySQLSession(StatsSession):
    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def _variable(self, sql: str) -> int:
        # SHOW STATUS / SHOW VARIABLES rows are (Variable_name, Value)
        row = self._conn.execute(text(sql)).first()
        if row is None:
            raise StatsSourceError(f"Query returned no rows: {sql}")
        return int(row[1])

    @_translate_errors
    def active_connections(self) -> int:
        return self._variable("SHOW STATUS LIKE 'Threads_connected'")

    @_translate_errors
    def process_list(self) -> List[ProcessInfo]:
        rows = self._conn.execute(text("SHOW PROCESSLIST")).mappings().all()
        return [
            ProcessInfo(
                id=row["Id"],
                elapsed_seconds=float(row.get("Time") or 0),
                state=row.get("State"),
                info=row.get("Info"),
            )
            for row in rows
        ]

    @_translate_errors
    def max_connections(self) -> int:
        return self._variable("SHOW VARIABLES LIKE 'max_connections'")


class MySQLStatsSource(StatsSource):
    def __init__(self, engine: Engine) -> None:
        super().__init__()
        self.engine = engine
        event.listen(engine, "handle_error", self._on_handle_error)

    @classmethod
    def from_url(cls, url: Union[str, URL], pool_size: int = 10, **engine_kwargs: Any) -> "MySQLStatsSource":
        """Create the pooled engine and instrument it for OpenTelemetry."""
        kwargs: dict = {
            "echo": False,
            "pool_size": pool_size,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }
        kwargs.update(engine_kwargs)
        engine = create_engine(url, **kwargs)
        SQLAlchemyInstrumentor().instrument(engine=engine)
        return cls(engine)

    def _on_handle_error(self, context) -> None:
        # Only connection-level failures are fatal; bad statements are handled by the caller.
        # A failed pre-ping is recovered by the pool itself.
        if context.is_pre_ping:
            return
        if context.is_disconnect:
            self._notify_error(context.original_exception)

    @_translate_errors
    def probe(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    @contextmanager
    def session(self) -> Iterator[StatsSession]:
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as exc:
            raise StatsSourceError(str(exc)) from exc
        try:
            yield _MySQLSession(conn)
        finally:
            conn.close()

    def dispose(self) -> None:
        self.engine.dispose()
