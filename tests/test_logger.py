# tests/test_logger.py
"""Logging setup shared by every engine module."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import logging
from logging.handlers import RotatingFileHandler

from plaza_engine.utils.logger import LOG_FILE, get_logger


class TestGetLogger:
    def test_named_module_logger(self):
        logger = get_logger("plaza_engine.services.spot_state")
        assert logger.name == "plaza_engine.services.spot_state"

    def test_root_writes_engine_log_once(self):
        get_logger("a")
        get_logger("b")
        files = [h for h in logging.getLogger().handlers
                 if isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(LOG_FILE)]
        assert len(files) == 1
        assert files[0].maxBytes == 5 * 1024 * 1024

    def test_sql_echo_is_quiet(self):
        get_logger("plaza_engine")
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
