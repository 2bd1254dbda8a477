import eventlet

eventlet.monkey_patch()

import atexit  # noqa: E402

from dbstatus import create_app, socketio  # noqa: E402
from dbstatus.services.monitor import start_monitor  # noqa: E402

app = create_app()
monitor = start_monitor(app)
atexit.register(monitor.shutdown)

if __name__ == "__main__":
    # This file is intended to be run by Gunicorn:
    # gunicorn --worker-class eventlet -w 1 wsgi:app
    socketio.run(app)
