"""
Application logging setup.

Console logs are emitted as structured JSON so they can be shipped to a log
aggregator as-is.  The plain-text status log lives in ``status_log``.
"""

import logging
import sys

from pythonjsonlogger import jsonlogger

_HANDLER_NAME = "dbstatus-console"


def configure_logging(level: str = "INFO") -> logging.Handler:
    """Attach the JSON console handler to the root logger (once) and set *level*."""
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            return handler

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    root.addHandler(handler)
    return handler
