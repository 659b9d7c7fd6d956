"""Logging setup for the skillflow package logger."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO

LOGGER_NAME = "skillflow"
LOG_FILENAME = "skillflow.log"

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s"


def _console_handler(stream: TextIO, level: int) -> logging.Handler:
	handler = logging.StreamHandler(stream)
	handler.setLevel(level)
	handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
	return handler


def _file_handler(log_dir: Path) -> logging.Handler:
	log_dir.mkdir(parents=True, exist_ok=True)
	handler = RotatingFileHandler(
		log_dir / LOG_FILENAME,
		maxBytes=10 * 1024 * 1024,  # 10 MB
		backupCount=5,
		encoding="utf-8",
	)
	handler.setLevel(logging.DEBUG)  # every record reaches the file
	handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
	return handler


def setup_logging(
	level: Optional[str] = None,
	log_dir: Optional[Path] = None,
	stream: Optional[TextIO] = None,
) -> logging.Logger:
	"""
	Configure the "skillflow" logger that every module logger propagates to.

	Args:
		level: Log level name. Falls back to SKILLFLOW_LOG_LEVEL, LOG_LEVEL, then INFO.
		log_dir: Directory for the rotating log file; console only if None
		stream: Console stream (default stderr, since stdout carries MCP stdio)

	Returns:
		The package logger. Calling again only updates the level.
	"""
	level = level or os.getenv("SKILLFLOW_LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO")
	log_level = getattr(logging, level.upper(), logging.INFO)

	logger = logging.getLogger(LOGGER_NAME)
	logger.setLevel(log_level)
	if logger.handlers:
		return logger

	logger.addHandler(_console_handler(stream or sys.stderr, log_level))
	if log_dir is not None:
		logger.addHandler(_file_handler(Path(log_dir)))
	return logger
