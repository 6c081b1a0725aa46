# chatrelay/core/logging.py

import logging
import sys

from chatrelay.core.config import settings


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level_name: str | None = None) -> None:
    """
    Route relay logs (room lifecycle, joins/leaves, dropped frames, send
    errors) to stdout in one pipe-separated format.

    level_name overrides LOG_LEVEL; when uvicorn has already installed
    handlers only the level is adjusted. Per-frame websocket and access
    logs are held at WARNING so room events stay readable.
    """
    log_level_name = (level_name or settings.LOG_LEVEL).upper()
    level = getattr(logging, log_level_name, logging.INFO)

    # If logging is already configured (e.g. by Uvicorn), don't re-add handlers
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(DEFAULT_FORMAT)
    handler.setFormatter(formatter)

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    """Module logger for relay code, e.g. get_logger(__name__)."""
    return logging.getLogger(name)
