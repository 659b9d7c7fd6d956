"""Tests for logging setup."""

import io
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from skillflow.logging_config import LOGGER_NAME, setup_logging


@pytest.fixture(autouse=True)
def clean_logger():
	logger = logging.getLogger(LOGGER_NAME)
	saved_handlers = logger.handlers[:]
	saved_level = logger.level
	logger.handlers = []
	yield logger
	for handler in logger.handlers:
		handler.close()
	logger.handlers = saved_handlers
	logger.setLevel(saved_level)


def test_console_handler(clean_logger):
	stream = io.StringIO()
	logger = setup_logging("DEBUG", stream=stream)

	assert logger is clean_logger
	assert logger.level == logging.DEBUG
	logging.getLogger("skillflow.skills.loader").info("Discovered 2 skills")
	assert "[INFO] Discovered 2 skills" in stream.getvalue()


def test_file_handler(tmp_path: Path):
	logger = setup_logging("WARNING", log_dir=tmp_path / "logs", stream=io.StringIO())

	file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
	assert len(file_handlers) == 1
	assert Path(file_handlers[0].baseFilename) == tmp_path / "logs" / "skillflow.log"
	assert file_handlers[0].level == logging.DEBUG


def test_no_duplicate_handlers():
	setup_logging("INFO", stream=io.StringIO())
	logger = setup_logging("ERROR", stream=io.StringIO())
	assert len(logger.handlers) == 1
	assert logger.level == logging.ERROR


def test_invalid_level_defaults_to_info():
	logger = setup_logging("LOUD", stream=io.StringIO())
	assert logger.level == logging.INFO
