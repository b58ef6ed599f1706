"""
Logging setup for the adventure engine

Every module logs through a named logger:

    from adventure.utils.logger import get_logger
    logger = get_logger(__name__)

The application calls ``setup_logging`` once at start. Engine log lines carry
a ``[Component]`` prefix (``[Orchestrator]``, ``[MemoryStore]``, ...) so a
single turn can be followed across phases with grep.
"""

import logging
import sys
from pathlib import Path
from typing import Literal, Optional, Tuple

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
NAME_COLOR = "\033[94m"
RESET = "\033[0m"

# Client libraries that log every HTTP request or embedding batch at INFO
NOISY_LOGGERS: Tuple[str, ...] = ("httpx", "httpcore", "urllib3", "openai", "chromadb")

_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"
_TIMESTAMP_FORMAT = "%(asctime)s | " + _FORMAT
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level and logger name for terminals"""

    def format(self, record):
        # Work on a copy so file handlers sharing the record stay uncolored
        colored = logging.makeLogRecord(record.__dict__)
        color = LEVEL_COLORS.get(record.levelname)
        if color:
            colored.levelname = f"{color}{record.levelname}{RESET}"
        colored.name = f"{NAME_COLOR}{record.name}{RESET}"
        return super().format(colored)


def _formatter(colored: bool, include_timestamp: bool) -> logging.Formatter:
    fmt = _TIMESTAMP_FORMAT if include_timestamp else _FORMAT
    datefmt = _DATE_FORMAT if include_timestamp else None
    formatter_class = ColoredFormatter if colored else logging.Formatter
    return formatter_class(fmt, datefmt=datefmt)


def setup_logging(
    level: LogLevel = "INFO",
    log_file: Optional[str] = None,
    enable_colors: bool = True,
    include_timestamp: bool = True,
) -> None:
    """
    Configure the root logger for the application

    Replaces any existing root handlers with a stdout handler and, when
    ``log_file`` is given, a plain-text file handler. Colors are only used
    when stdout is a terminal.

    Args:
        level: Logging level name
        log_file: Optional path of a log file, parent directories are created
        enable_colors: Color console output when attached to a terminal
        include_timestamp: Prefix every line with the time
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers = []
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(enable_colors and sys.stdout.isatty(), include_timestamp))
    handlers.append(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(_formatter(False, include_timestamp))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers = []
    for handler in handlers:
        handler.setLevel(numeric_level)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized at {level} level")
    if log_file:
        root_logger.info(f"Logging to file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, usually called with ``__name__``"""
    return logging.getLogger(name)


class LogLevelContext:
    """
    Temporarily change the level of one logger (the root logger by default).

        with LogLevelContext("DEBUG", "adventure.engine"):
            await session.perform_turn(...)
    """

    def __init__(self, level: LogLevel, logger_name: Optional[str] = None):
        self.level = getattr(logging, level.upper())
        self.logger = logging.getLogger(logger_name)
        self.old_level: Optional[int] = None

    def __enter__(self):
        self.old_level = self.logger.level
        self.logger.setLevel(self.level)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.logger.setLevel(self.old_level)
