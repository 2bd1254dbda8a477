from typing import Any, Dict, Optional

from flask import Flask
from flask_socketio import SocketIO

socketio = SocketIO()


def create_app(
    config: Optional[Dict[str, Any]] = None,
    *,
    stats_source=None,
    timer_factory=None,
) -> Flask:
    """
    Application factory — creates and configures the Flask app.

    *config* overrides values from ``dbstatus.core.config.Config``.  Tests pass
    their own *stats_source* and *timer_factory*; otherwise a pooled MySQL
    source is built from ``DATABASE_URL``.  The monitor is attached but not
    started; call ``start_monitor(app)``.
    """
    app = Flask(
        __name__,
        template_folder="../templates",
        static_folder="../static",
    )
    app.config.from_object("dbstatus.core.config.Config")
    if config:
        app.config.update(config)

    from dbstatus.core.log import configure_logging
    from dbstatus.core.telemetry import init_telemetry

    configure_logging(app.config["LOG_LEVEL"])
    init_telemetry()

    # SocketIO handlers must be declared before init_app so every app picks them up
    from dbstatus.web import sockets  # noqa: F401

    # Initialize extensions
    socketio.init_app(app, cors_allowed_origins="*")

    # ---- Stats source + monitor -------------------------------------
    from dbstatus.core.status_log import StatusLog
    from dbstatus.database.stats import MySQLStatsSource
    from dbstatus.services.monitor import EXTENSION_KEY, DatabaseMonitor

    if stats_source is None:
        stats_source = MySQLStatsSource.from_url(
            app.config["DATABASE_URL"],
            pool_size=app.config["DB_POOL_SIZE"],
        )

    app.extensions[EXTENSION_KEY] = DatabaseMonitor(
        stats_source,
        StatusLog(app.config["STATUS_LOG_PATH"]),
        interval=app.config["MONITOR_INTERVAL"],
        reconnect_delay=app.config["RECONNECT_DELAY"],
        timer_factory=timer_factory,
    )
    # -----------------------------------------------------------------

    # Instrument Flask app for OpenTelemetry
    from opentelemetry.instrumentation.flask import FlaskInstrumentor

    FlaskInstrumentor().instrument_app(app)

    # Register blueprints
    from dbstatus.web.routes import register_blueprints

    register_blueprints(app)

    return app
