"""
Database status monitor — entry point.

All application logic lives inside the ``dbstatus`` package.
Run with:  uv run python main.py
"""

import signal
import sys

from dbstatus import create_app, socketio
from dbstatus.services.monitor import start_monitor

app = create_app()


def _shutdown(signum, frame):
    app.logger.info("Received signal %s, shutting down", signal.Signals(signum).name)
    monitor.shutdown()
    sys.exit(0)


if __name__ == "__main__":
    monitor = start_monitor(app)
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _shutdown)
    socketio.run(app, debug=False, host="0.0.0.0", port=app.config["PORT"])
