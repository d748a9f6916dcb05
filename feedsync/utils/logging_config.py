"""
Logging setup for the Flask app and the importer pipeline loggers.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s in %(name)s: %(message)s"
_HANDLER_NAME = "feedsync-console"


def setup_logging(app) -> None:
    """
    Attach a console handler to the app logger and the ``feedsync`` package
    logger, using ``LOG_LEVEL`` from the app config. Safe to call repeatedly.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    for logger in (app.logger, logging.getLogger("feedsync")):
        logger.setLevel(level)
        if not any(getattr(handler, "name", None) == _HANDLER_NAME for handler in logger.handlers):
            handler = logging.StreamHandler(sys.stderr)
            handler.name = _HANDLER_NAME
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
        for handler in logger.handlers:
            if getattr(handler, "name", None) == _HANDLER_NAME:
                handler.setLevel(level)

    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
