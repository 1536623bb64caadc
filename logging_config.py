"""
logging_config.py - Centralized logging for the print shop backend.

All modules log through the root configuration installed here, so the
Flask app logger, blueprint loggers (current_app.logger) and library
modules (logging.getLogger(__name__)) share one format and one handler.
"""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"


def setup_logging(level: str | None = None):
    """
    Configures the global logging system.

    - Level comes from the argument, else LOG_LEVEL, else INFO.
    - Output goes to stdout (container friendly).
    - werkzeug request lines and SQLAlchemy engine echo are kept at WARNING.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
