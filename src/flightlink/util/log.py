"""
Logging for the flightlink station.

Console output goes through Rich; an optional file handler writes one JSON
object per line so a flight's log can be replayed or grepped afterwards.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from rich.logging import RichHandler

ROOT_LOGGER = "flightlink"


class JSONFormatter(logging.Formatter):
    """
    Formatter that serializes log records to JSON.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def get_logger(name: str) -> logging.Logger:
    """
    Return the logger for a module.

    Handlers live on the package root logger (see configure_logging), so
    module loggers only need to propagate.
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def configure_logging(level: int | str = logging.INFO, json_log: Path | None = None) -> logging.Logger:
    """
    Attach the console handler (and optionally a JSON file handler) once.

    Parameters
    ----------
    level
        Log level (int or string), defaults to INFO.
    json_log
        When given, structured JSON lines are appended to this file.

    Returns
    -------
    logging.Logger
        The package root logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        console_handler = RichHandler(rich_tracebacks=True)
        logger.addHandler(console_handler)

    if json_log is not None and not any(
        isinstance(h, logging.FileHandler) for h in logger.handlers
    ):
        json_log.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(json_log, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger
