"""Logging utility with support for LOG prefix and an optional log file."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOGGER_NAME = "herald"

_RESET = '\033[0m'
_BOLD = '\033[1m'

# ANSI color per level
_LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}


class ColoredFormatter(logging.Formatter):
    """Console formatter: bold [LOG] prefix, colored level tag, optional time."""

    def __init__(self, show_timestamps: bool = False):
        super().__init__()
        self.show_timestamps = show_timestamps

    def format(self, record: logging.LogRecord) -> str:
        prefix = f"{_BOLD}[LOG]{_RESET}"
        if self.show_timestamps:
            prefix += " " + datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        # INFO lines stay clean, everything else carries its level
        if record.levelno == logging.INFO:
            return f"{prefix} {message}"
        color = _LEVEL_COLORS.get(record.levelno, _RESET)
        return f"{prefix} {color}[{record.levelname}]{_RESET} {message}"


class AppLogger:
    """Process-wide herald logger."""

    _instance: Optional['AppLogger'] = None
    _logger: Optional[logging.Logger] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._logger is None:
            self.configure()

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def configure(
        self,
        level: str = "INFO",
        show_timestamps: bool = False,
        log_file: Optional[Union[str, Path]] = None
    ) -> None:
        """(Re)build the handlers of the herald logger.

        Args:
            level: Logging level name
            show_timestamps: Prefix console lines with HH:MM:SS
            log_file: Optional path of a plain-text log file
        """
        numeric_level = logging.getLevelName(level.upper())
        if not isinstance(numeric_level, int):
            numeric_level = logging.INFO

        herald_logger = logging.getLogger(LOGGER_NAME)
        herald_logger.setLevel(numeric_level)
        for handler in list(herald_logger.handlers):
            herald_logger.removeHandler(handler)
            handler.close()

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(ColoredFormatter(show_timestamps=show_timestamps))
        herald_logger.addHandler(console)

        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s %(levelname)-8s %(message)s"
            ))
            herald_logger.addHandler(file_handler)

        # Herald output never reaches the root logger
        herald_logger.propagate = False
        self._logger = herald_logger


# Global logger instance
logger = AppLogger()


def setup_logging(
    level: str = "INFO",
    show_timestamps: bool = False,
    log_file: Optional[Union[str, Path]] = None
):
    """Set up logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        show_timestamps: Whether console lines carry a timestamp
        log_file: Optional file that receives a copy of every record
    """
    logger.configure(level=level, show_timestamps=show_timestamps, log_file=log_file)
    log_debug(f"Logging configured at {level.upper()}")


# Convenience functions
def log_info(message: str):
    logger.logger.info(message)


def log_debug(message: str):
    logger.logger.debug(message)


def log_warning(message: str):
    logger.logger.warning(message)


def log_error(message: str):
    logger.logger.error(message)
