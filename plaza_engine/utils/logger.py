# plaza_engine/utils/logger.py
"""
Engine logging setup.
State transitions, reservation events and sweep passes all go through named
module loggers; the root logger fans them out to stderr and logs/engine.log.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from plaza_engine.config import settings

LOG_LEVEL = settings.LOG_LEVEL.upper()
LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")
LOG_FILE = os.path.join(LOG_DIR, "engine.log")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# engine.log rolls at 5 MB and keeps 10 old files
_MAX_BYTES = 5 * 1024 * 1024
_BACKUPS = 10

# Third-party loggers that drown out [STATE]/[RESERVE] lines at INFO
_QUIET = ("sqlalchemy.engine", "uvicorn.access")

_ready = False


def _setup():
    global _ready
    if _ready:
        return
    _ready = True

    os.makedirs(LOG_DIR, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers = [
        logging.StreamHandler(),
        RotatingFileHandler(LOG_FILE, maxBytes=_MAX_BYTES, backupCount=_BACKUPS, encoding="utf-8"),
    ]
    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)
    for handler in handlers:
        handler.setLevel(LOG_LEVEL)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _QUIET:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger for `name` (pass __name__)."""
    _setup()
    return logging.getLogger(name)
