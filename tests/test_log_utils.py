import json
import logging
import os
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest
from rich.logging import RichHandler

from gitgrope import log_utils

pytestmark = [pytest.mark.unit]


class TestLogUtils:
    """Test suite for log_utils module."""

    def setup_method(self):
        """Reset logger state before each test."""
        log_utils._file_handler = None
        log_utils._file_json = False
        log_utils._initialize_logger()

    def teardown_method(self):
        log_utils._file_handler = None
        log_utils._file_json = False
        log_utils._initialize_logger()

    def test_logger_initialization(self):
        assert log_utils.logger.name == "gitgrope"
        assert not log_utils.logger.propagate
        assert len(log_utils.logger.handlers) == 1
        assert isinstance(log_utils.logger.handlers[0], RichHandler)

    def test_logger_initialization_with_env_var(self):
        with patch.dict(os.environ, {"GITGROPE_LOG_LEVEL": "debug"}):
            log_utils._initialize_logger()
            assert log_utils.logger.level == logging.DEBUG
            assert log_utils.logger.handlers[0].level == logging.DEBUG

    def test_logger_initialization_with_invalid_env_var(self):
        with patch.dict(os.environ, {"GITGROPE_LOG_LEVEL": "LOUD"}):
            log_utils._initialize_logger()
            assert log_utils.logger.level == logging.INFO

    def test_set_log_level_valid(self):
        log_utils.set_log_level("DEBUG")
        assert log_utils.logger.level == logging.DEBUG

        log_utils.set_log_level("warning")
        assert log_utils.logger.level == logging.WARNING
        assert log_utils.logger.handlers[0].level == logging.WARNING

    def test_set_log_level_invalid(self):
        original_level = log_utils.logger.level
        log_utils.set_log_level("INVALID_LEVEL")
        assert log_utils.logger.level == original_level

    def test_file_logging_replaces_console(self, tmp_path):
        log_file = tmp_path / "logs" / "gitgrope.log"

        log_utils.add_file_logging(log_file, level_name="DEBUG")

        handlers = log_utils.logger.handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], RotatingFileHandler)
        assert handlers[0].maxBytes == 50 * 1024 * 1024
        assert handlers[0].backupCount == 5
        assert log_utils.logger.level == logging.DEBUG

        log_utils.logger.info("acme/tool.v1.0.0: save release info")
        handlers[0].flush()
        assert "acme/tool.v1.0.0: save release info" in log_file.read_text()

    def test_file_logging_can_keep_console(self, tmp_path):
        log_utils.add_file_logging(tmp_path / "gitgrope.log", console=True)

        kinds = {type(h) for h in log_utils.logger.handlers}
        assert kinds == {RichHandler, RotatingFileHandler}

    def test_file_logging_replaces_previous_file_handler(self, tmp_path):
        log_utils.add_file_logging(tmp_path / "first.log")
        log_utils.add_file_logging(tmp_path / "second.log")

        files = [
            h.baseFilename
            for h in log_utils.logger.handlers
            if isinstance(h, RotatingFileHandler)
        ]
        assert files == [str(tmp_path / "second.log")]

    def test_file_logging_invalid_level_defaults_to_info(self, tmp_path):
        log_utils.add_file_logging(tmp_path / "gitgrope.log", level_name="LOUD")
        assert log_utils.logger.handlers[0].level == logging.INFO

    def test_file_logging_writes_json_lines(self, tmp_path):
        log_file = tmp_path / "gitgrope.log"
        log_utils.add_file_logging(log_file)

        log_utils.logger.info("acme/tool.v1.0.0: save release info")
        try:
            raise OSError("disk full")
        except OSError:
            log_utils.logger.exception("acme/tool.v1.0.0: error saving release info")
        log_utils.logger.handlers[0].flush()

        lines = log_file.read_text().splitlines()
        first, second = [json.loads(line) for line in lines]
        assert first["level"] == "info"
        assert first["msg"] == "acme/tool.v1.0.0: save release info"
        assert first["time"].endswith("+00:00")
        assert "error" not in first
        assert second["level"] == "error"
        assert "disk full" in second["error"]

    def test_file_logging_text_format(self, tmp_path):
        log_file = tmp_path / "gitgrope.log"
        log_utils.add_file_logging(log_file, json_format=False)

        log_utils.logger.info("acme/tool: no new release")
        log_utils.logger.handlers[0].flush()

        line = log_file.read_text().strip()
        assert line.endswith("INFO - acme/tool: no new release")
        assert not line.startswith("{")

    def test_set_log_level_keeps_json_file_format(self, tmp_path):
        log_file = tmp_path / "gitgrope.log"
        log_utils.add_file_logging(log_file)

        log_utils.set_log_level("DEBUG")

        assert isinstance(
            log_utils.logger.handlers[0].formatter, log_utils.JsonFormatter
        )
