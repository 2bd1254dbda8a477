"""Server-sent events transport for status and log pushes."""

from __future__ import annotations

import json
import queue
from contextlib import suppress
from typing import Any, Iterator

from flask import Blueprint, Response, current_app

from dbstatus.core.errors import SubscriberClosed
from dbstatus.services.broadcaster import Subscriber
from dbstatus.services.monitor import get_monitor

events_bp = Blueprint("events", __name__)

_CLOSE = object()


def format_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class QueueSubscriber(Subscriber):
    """
    SSE subscriber backed by a bounded queue.

    ``send`` only enqueues; the response generator returned by ``stream``
    drains the queue on the client's connection.  A client that lets the
    queue fill up is treated as gone.
    """

    transport = "sse"

    def __init__(self, keepalive: float = 15.0, maxsize: int = 1000) -> None:
        super().__init__()
        self._keepalive = keepalive
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: str, data: Any) -> None:
        if self._closed:
            raise SubscriberClosed(f"Subscriber {self.id} is closed")
        try:
            self._queue.put_nowait(format_sse(event, data))
        except queue.Full as exc:
            raise SubscriberClosed(f"Subscriber {self.id} is not keeping up") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake up the stream; if the queue is full it exits on the closed flag instead.
        with suppress(queue.Full):
            self._queue.put_nowait(_CLOSE)

    def stream(self) -> Iterator[str]:
        while not self._closed:
            try:
                item = self._queue.get(timeout=self._keepalive)
            except queue.Empty:
                yield ": keep-alive\n\n"
                continue
            if item is _CLOSE:
                return
            yield item


@events_bp.route("/events")
def stream_events():
    monitor = get_monitor()
    subscriber = QueueSubscriber(keepalive=current_app.config["SSE_KEEPALIVE"])
    monitor.broadcaster.register(subscriber)

    def on_close() -> None:
        monitor.broadcaster.unregister(subscriber)
        subscriber.close()

    response = Response(subscriber.stream(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    response.call_on_close(on_close)
    return response
