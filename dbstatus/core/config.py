"""Application configuration."""

import os
from pathlib import Path

from sqlalchemy.engine import URL

# Base directory of the db-status project
BASE_DIR = Path(__file__).resolve().parent.parent.parent


def build_database_url(host: str, port: str, user: str, password: str, database: str) -> URL:
    """Build a SQLAlchemy MySQL URL from the individual connection settings."""
    return URL.create(
        drivername="mysql+pymysql",
        username=user or None,
        password=password or None,
        host=host,
        port=int(port) if port else None,
        database=database or None,
    )


class Config:
    # Monitored database.  DATABASE_URL wins over the individual parts.
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = os.environ.get("DB_PORT", "3306")
    DB_USER = os.environ.get("DB_USER", "")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_NAME = os.environ.get("DB_NAME", "")
    DATABASE_URL = os.environ.get("DATABASE_URL") or build_database_url(
        DB_HOST, DB_PORT, DB_USER, DB_PASSWORD, DB_NAME
    )
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 10))

    MONITOR_INTERVAL = float(os.environ.get("MONITOR_INTERVAL", 3))  # seconds between status checks
    RECONNECT_DELAY = float(os.environ.get("RECONNECT_DELAY", 5))  # seconds between probes while down

    # Append-only, plain-text status log.
    STATUS_LOG_PATH = os.environ.get("STATUS_LOG_PATH", str(BASE_DIR / "db_status.log"))

    PORT = int(os.environ.get("PORT", 3000))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Seconds of silence before an SSE keep-alive comment is sent.
    SSE_KEEPALIVE = float(os.environ.get("SSE_KEEPALIVE", 15))
