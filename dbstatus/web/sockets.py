"""SocketIO event handlers."""

from typing import Any

from flask import request

from dbstatus import socketio
from dbstatus.services.broadcaster import Subscriber
from dbstatus.services.monitor import get_monitor


class SocketIOSubscriber(Subscriber):
    """A Socket.IO client, addressed by its session id."""

    transport = "socketio"

    def __init__(self, sid: str) -> None:
        super().__init__(subscriber_id=sid)

    def send(self, event: str, data: Any) -> None:
        socketio.emit(event, data, to=self.id)

    def close(self) -> None:
        socketio.server.disconnect(self.id)


@socketio.on("connect")
def handle_connect():
    get_monitor().broadcaster.register(SocketIOSubscriber(request.sid))


@socketio.on("disconnect")
def handle_disconnect(reason=None):
    broadcaster = get_monitor().broadcaster
    subscriber = broadcaster.get(request.sid)
    if subscriber is not None:
        broadcaster.unregister(subscriber)
